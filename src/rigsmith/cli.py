"""rigsmith CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click

from rigsmith import __version__
from rigsmith.errors import RigsmithError
from rigsmith.intent.model import ALL_FAMILIES, FAMILIES

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.config import RigConfig

logger = logging.getLogger(__name__)


def _setup_logging(*, verbose: bool, quiet: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(exc: RigsmithError) -> NoReturn:
    click.echo(f"Error [{exc.label()}]: {exc}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="rigsmith")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """rigsmith - analyze a project and generate its infrastructure code."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _setup_logging(verbose=verbose, quiet=quiet)


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------


def _load(project: Path | None) -> tuple[Path, RigConfig]:
    from rigsmith.config import load_config

    project_root = (project or Path.cwd()).resolve()
    try:
        return project_root, load_config(project_root)
    except RigsmithError as exc:
        _fail(exc)


def _analyze(project_root: Path, config: RigConfig, *, probe: bool) -> Analysis:
    from rigsmith.analysis import ProjectAnalyzer
    from rigsmith.analysis.ports import probe_listening_ports
    from rigsmith.inventory import GcloudLister, ResourceInventory

    inventory = ResourceInventory(GcloudLister()) if config.context.configured else None
    analyzer = ProjectAnalyzer(
        project_root,
        config.context,
        inventory=inventory,
        port_probe=probe_listening_ports if probe and config.probe_ports else None,
    )
    return analyzer.analyze()


_PROJECT_OPTION = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
_NO_PROBE_OPTION = click.option(
    "--no-probe", is_flag=True, help="Skip probing locally listening ports."
)
_NO_AI_OPTION = click.option(
    "--no-ai", is_flag=True, help="Use keyword interpretation only."
)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@main.command()
@_PROJECT_OPTION
@click.option("--json", "output_json", is_flag=True, help="Structured JSON output.")
@click.option(
    "--report",
    "output_report",
    is_flag=True,
    help="Write a markdown report to infra-reports/.",
)
@_NO_PROBE_OPTION
def analyze(
    *,
    project: Path | None,
    output_json: bool,
    output_report: bool,
    no_probe: bool,
) -> None:
    """Detect the project's stack, services, ports and cloud footprint."""
    from rigsmith.analysis import analysis_to_dict

    project_root, config = _load(project)
    analysis = _analyze(project_root, config, probe=not no_probe)

    if output_json:
        click.echo(json.dumps(analysis_to_dict(analysis), ensure_ascii=False, indent=2))
        return

    if output_report:
        from rigsmith.report import save_report

        path = save_report(analysis, project_root)
        click.echo(f"Report saved to {path}")
        return

    from rich.console import Console

    from rigsmith.report import render_analysis

    render_analysis(analysis, Console())


@main.command()
@click.argument("goal")
@_PROJECT_OPTION
@click.option("--json", "output_json", is_flag=True, help="Structured JSON output.")
@_NO_AI_OPTION
@_NO_PROBE_OPTION
def interpret(
    goal: str,
    *,
    project: Path | None,
    output_json: bool,
    no_ai: bool,
    no_probe: bool,
) -> None:
    """Turn GOAL into a structured generation plan."""
    from rigsmith.intent import build_interpreter, render_intent

    project_root, config = _load(project)
    analysis = _analyze(project_root, config, probe=not no_probe)
    try:
        intent = build_interpreter(config, use_recommender=not no_ai).interpret(goal, analysis)
    except RigsmithError as exc:
        _fail(exc)

    if output_json:
        click.echo(json.dumps(intent.to_dict(), ensure_ascii=False, indent=2))
        return

    from rich.console import Console

    render_intent(intent, Console())


@main.command()
@click.argument(
    "family",
    required=False,
    type=click.Choice([*FAMILIES, ALL_FAMILIES]),
)
@click.option("--goal", default="", help="What the infrastructure should provide.")
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory (default: from config, 'infrastructure/').",
)
@click.option(
    "--import-existing",
    is_flag=True,
    help="Add terraform import blocks for resources already in the cloud project.",
)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the confirmation prompt.")
@_NO_AI_OPTION
@_NO_PROBE_OPTION
@_PROJECT_OPTION
def generate(
    family: str | None,
    *,
    goal: str,
    output: Path | None,
    import_existing: bool,
    assume_yes: bool,
    no_ai: bool,
    no_probe: bool,
    project: Path | None,
) -> None:
    """Generate FAMILY artifacts (or the family implied by --goal)."""
    from rich.console import Console

    from rigsmith.generators import GenerationOptions
    from rigsmith.intent import build_interpreter, confirm_intent
    from rigsmith.pipeline import run_generation

    project_root, config = _load(project)
    analysis = _analyze(project_root, config, probe=not no_probe)
    try:
        intent = build_interpreter(config, use_recommender=not no_ai).interpret(goal, analysis)
    except RigsmithError as exc:
        _fail(exc)

    console = Console()
    if not confirm_intent(intent, console, assume_yes=assume_yes):
        click.echo("Cancelled.")
        return

    options = GenerationOptions(
        output_dir=output or project_root / config.output_dir,
        families=(family,) if family else None,
        import_existing=import_existing,
        context=config.context,
    )
    report = run_generation(analysis, intent, options)

    for result in report.results:
        if result.ok:
            console.print(
                f"[green]✓[/] {result.family}: {len(result.files)} files "
                f"in {report.output_dir / result.family}"
            )
        else:
            click.echo(f"Error [{result.stage}:{result.family}]: {result.error}", err=True)
    if report.index is not None:
        console.print(f"Index: {report.index}")
    if report.index_error:
        click.echo(f"Error [write:index]: {report.index_error}", err=True)
    if not report.ok:
        sys.exit(1)
