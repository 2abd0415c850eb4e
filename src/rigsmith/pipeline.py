"""Generation orchestration: resolve families, build, write and index."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from rigsmith.errors import GenerationError, RigsmithError, WriteError
from rigsmith.generators import get_generator
from rigsmith.generators.base import PROVENANCE_MARKER, ArtifactTree
from rigsmith.intent.model import ALL_FAMILIES, FAMILIES
from rigsmith.writer import OutputWriter

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.generators.base import GenerationOptions
    from rigsmith.intent.model import Intent

logger = logging.getLogger(__name__)

INDEX_FILE = "README.md"


@dataclass
class FamilyResult:
    """Outcome of one artifact family."""

    family: str
    files: list[Path] = field(default_factory=list)
    error: str | None = None
    stage: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class GenerationReport:
    output_dir: Path
    results: list[FamilyResult] = field(default_factory=list)
    index: Path | None = None
    index_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.index_error is None and all(r.ok for r in self.results)

    @property
    def failed(self) -> list[FamilyResult]:
        return [r for r in self.results if not r.ok]

    @property
    def files(self) -> list[Path]:
        return [path for r in self.results for path in r.files]


def resolve_families(intent: Intent, options: GenerationOptions) -> list[str]:
    """Families to generate, in canonical order.

    ``options.families`` overrides the Intent; ``all`` expands to every
    family.  Unknown names are kept so they fail on their own.
    """
    requested = list(options.families) if options.families else [intent.family]
    if ALL_FAMILIES in requested:
        return list(FAMILIES)
    known = [f for f in FAMILIES if f in requested]
    unknown = [f for f in dict.fromkeys(requested) if f not in FAMILIES]
    return known + unknown


def run_generation(
    analysis: Analysis,
    intent: Intent,
    options: GenerationOptions,
    writer: OutputWriter | None = None,
) -> GenerationReport:
    """Build and write every selected family, then the top-level index.

    A failing family is recorded in the report and never stops the
    remaining ones.
    """
    writer = writer or OutputWriter()
    families = resolve_families(intent, options)
    run_options = replace(options, families=tuple(families))
    report = GenerationReport(output_dir=Path(options.output_dir))

    for family in families:
        result = FamilyResult(family)
        try:
            generator = get_generator(family)
            result.files = generator.generate(analysis, intent, run_options, writer)
        except WriteError as exc:
            logger.warning("Writing %s failed: %s", family, exc)
            result.files = exc.written
            result.error, result.stage = str(exc), exc.stage
        except RigsmithError as exc:
            logger.warning("Generating %s failed: %s", family, exc)
            result.error, result.stage = str(exc), exc.stage
        except Exception as exc:
            logger.exception("Unexpected failure generating %s", family)
            result.error, result.stage = str(exc) or type(exc).__name__, GenerationError.stage
        report.results.append(result)

    index = ArtifactTree("index")
    index.add(INDEX_FILE, render_index(analysis, intent, report, run_options))
    try:
        report.index = writer.write(index, Path(options.output_dir))[0]
    except WriteError as exc:
        logger.warning("Writing the index failed: %s", exc)
        report.index_error = str(exc)
    return report


def render_index(
    analysis: Analysis,
    intent: Intent,
    report: GenerationReport,
    options: GenerationOptions,
) -> str:
    """Markdown overview of what was generated."""
    lines = [
        f"# Infrastructure for {analysis.project_name}",
        "",
        f"<!-- {PROVENANCE_MARKER} {options.generated_at} -->",
        "",
        intent.summary,
        "",
        "## Environments",
        "",
    ]
    lines += [f"- {env}" for env in intent.environments]
    lines += ["", "## Components", ""]
    lines += [
        f"- **{component}**: {intent.specifications.get(component, '')}"
        for component in intent.components
    ]
    lines += ["", "## Artifacts", "", "| Family | Directory | Files | Status |", "|---|---|---|---|"]
    for result in report.results:
        status = "ok" if result.ok else f"failed ({result.stage})"
        lines.append(f"| {result.family} | `{result.family}/` | {len(result.files)} | {status} |")
    if intent.recommendations:
        lines += ["", "## Recommendations", ""]
        lines += [f"- {item}" for item in intent.recommendations]
    return "\n".join(lines) + "\n"
