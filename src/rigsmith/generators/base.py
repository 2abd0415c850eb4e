"""Shared generator plumbing: artifact trees, documents, sizing and registry."""

from __future__ import annotations

import abc
import logging
import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

import yaml

from rigsmith.config import AccountContext
from rigsmith.errors import GenerationError
from rigsmith.intent.model import FAMILIES

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rigsmith.analysis.model import Analysis, Endpoint
    from rigsmith.intent.model import Intent
    from rigsmith.writer import OutputWriter

logger = logging.getLogger(__name__)

PROVENANCE_MARKER = "Generated at:"


# ---------------------------------------------------------------------------
# Artifact tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GeneratedFile:
    path: str  # POSIX path relative to the output directory
    content: str


class ArtifactTree:
    """Ordered set of files produced by one artifact family."""

    def __init__(self, family: str) -> None:
        self.family = family
        self._files: dict[str, GeneratedFile] = {}

    def add(self, path: str, content: str) -> None:
        """Append a file.  Adding the same path twice is an error."""
        if path in self._files:
            msg = f"Duplicate generated path: {path}"
            raise GenerationError(msg, scope=self.family)
        if not content.endswith("\n"):
            content += "\n"
        self._files[path] = GeneratedFile(path, content)

    def get(self, path: str) -> GeneratedFile | None:
        return self._files.get(path)

    @property
    def paths(self) -> list[str]:
        return list(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __iter__(self) -> Iterator[GeneratedFile]:
        return iter(self._files.values())

    def __len__(self) -> int:
        return len(self._files)


# ---------------------------------------------------------------------------
# Text assembly
# ---------------------------------------------------------------------------


class Document:
    """Text built from named sections that can be switched off independently."""

    def __init__(self) -> None:
        self._sections: list[tuple[str, str]] = []
        self._disabled: set[str] = set()

    def section(self, name: str, text: str, *, enabled: bool = True) -> Document:
        if any(existing == name for existing, _ in self._sections):
            msg = f"Duplicate section: {name}"
            raise ValueError(msg)
        self._sections.append((name, text.strip("\n")))
        if not enabled:
            self._disabled.add(name)
        return self

    def render(self) -> str:
        parts = [text for name, text in self._sections if name not in self._disabled and text]
        return "\n\n".join(parts) + "\n"


def provenance_header(title: str, generated_at: str, comment: str = "#") -> str:
    """Comment header naming the file and when it was generated."""
    return (
        f"{comment} {title}\n"
        f"{comment} Generated by rigsmith. Review before applying.\n"
        f"{comment} {PROVENANCE_MARKER} {generated_at}"
    )


def strip_provenance(text: str) -> str:
    """Drop every line that carries the provenance marker."""
    return "".join(
        line for line in text.splitlines(keepends=True) if PROVENANCE_MARKER not in line
    )


class _PlainDumper(yaml.SafeDumper):
    """SafeDumper that never emits anchors for repeated objects."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def dump_yaml(data: Any) -> str:
    return yaml.dump(data, Dumper=_PlainDumper, sort_keys=False, default_flow_style=False)


def yaml_documents(*documents: Any) -> str:
    """Several YAML documents joined with ``---``."""
    return "---\n".join(dump_yaml(doc) for doc in documents)


def slugify(name: str) -> str:
    cleaned = "".join(c if c.isalnum() else "-" for c in name.lower())
    return "-".join(part for part in cleaned.split("-") if part) or "app"


def project_relative(analysis: Analysis, options: GenerationOptions, *parts: str) -> str:
    """POSIX path of ``output_dir/parts`` as seen from the project root."""
    root = Path(analysis.project_root or ".").resolve()
    target = Path(options.output_dir, *parts).resolve()
    return Path(os.path.relpath(target, root)).as_posix()


# ---------------------------------------------------------------------------
# Application port
# ---------------------------------------------------------------------------

# Well-known data-service ports; never the application's own.
DATA_PORTS = frozenset({5432, 3306, 27017, 6379, 11211, 5672, 15672, 9092})

_NODE_WEB = frozenset({"React", "Next.js", "Express.js", "Vue.js", "NestJS", "Nuxt.js"})


def app_endpoints(analysis: Analysis) -> list[Endpoint]:
    """Declared endpoints that belong to the application itself.

    Live-probe sockets and data-service ports are excluded.
    """
    return [
        e
        for e in analysis.endpoints
        if e.source != "probe"
        and e.port not in DATA_PORTS
        and (e.container_port or e.port) not in DATA_PORTS
    ]


def app_port(analysis: Analysis) -> int:
    """Port the application container listens on."""
    endpoints = app_endpoints(analysis)
    if endpoints:
        return endpoints[0].container_port or endpoints[0].port
    return 3000 if _NODE_WEB & set(analysis.tech_stack) else 8080


# ---------------------------------------------------------------------------
# Environment sizing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EnvironmentProfile:
    """Per-environment sizing applied by every generator."""

    name: str
    units: int
    instance_type: str
    autoscaling: bool
    min_units: int
    max_units: int
    db_tier: str
    db_availability: str  # ZONAL or REGIONAL
    db_backups: bool
    deletion_protection: bool
    retention_days: int
    storage_class: str
    cidr_block: int  # second octet of the VPC range

    @property
    def vpc_cidr(self) -> str:
        return f"10.{self.cidr_block}.0.0/16"

    @property
    def public_subnet_cidr(self) -> str:
        return f"10.{self.cidr_block}.1.0/24"

    @property
    def private_subnet_cidr(self) -> str:
        return f"10.{self.cidr_block}.2.0/24"


PROFILES: dict[str, EnvironmentProfile] = {
    "dev": EnvironmentProfile(
        name="dev",
        units=1,
        instance_type="e2-micro",
        autoscaling=False,
        min_units=1,
        max_units=1,
        db_tier="db-f1-micro",
        db_availability="ZONAL",
        db_backups=False,
        deletion_protection=False,
        retention_days=7,
        storage_class="REGIONAL",
        cidr_block=0,
    ),
    "staging": EnvironmentProfile(
        name="staging",
        units=2,
        instance_type="e2-small",
        autoscaling=False,
        min_units=2,
        max_units=2,
        db_tier="db-g1-small",
        db_availability="ZONAL",
        db_backups=True,
        deletion_protection=False,
        retention_days=30,
        storage_class="REGIONAL",
        cidr_block=1,
    ),
    "prod": EnvironmentProfile(
        name="prod",
        units=3,
        instance_type="n2-standard-2",
        autoscaling=True,
        min_units=3,
        max_units=10,
        db_tier="db-n1-standard-2",
        db_availability="REGIONAL",
        db_backups=True,
        deletion_protection=True,
        retention_days=90,
        storage_class="MULTI_REGIONAL",
        cidr_block=2,
    ),
}


def profile_for(environment: str) -> EnvironmentProfile:
    """Sizing for *environment*; unknown names get the dev profile."""
    profile = PROFILES.get(environment)
    if profile is None:
        return replace(PROFILES["dev"], name=environment)
    return profile


# ---------------------------------------------------------------------------
# Generator contract
# ---------------------------------------------------------------------------


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class GenerationOptions:
    """Knobs shared by every generator for one run."""

    output_dir: Path = Path("infrastructure")
    families: tuple[str, ...] | None = None
    import_existing: bool = False
    context: AccountContext = field(default_factory=AccountContext)
    generated_at: str = field(default_factory=_now)


class ArtifactGenerator(abc.ABC):
    """One artifact family.

    :meth:`build` is pure; :meth:`generate` builds and writes.
    """

    family: ClassVar[str]
    description: ClassVar[str] = ""

    @abc.abstractmethod
    def build(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> ArtifactTree:
        """Produce this family's files without touching the filesystem."""

    def new_tree(self) -> ArtifactTree:
        return ArtifactTree(self.family)

    def header(self, title: str, options: GenerationOptions, comment: str = "#") -> str:
        return provenance_header(title, options.generated_at, comment)

    def generate(
        self,
        analysis: Analysis,
        intent: Intent,
        options: GenerationOptions,
        writer: OutputWriter,
    ) -> list[Path]:
        tree = self.build(analysis, intent, options)
        logger.info("Built %d %s files", len(tree), self.family)
        return writer.write(tree, options.output_dir)


_REGISTRY: dict[str, type[ArtifactGenerator]] = {}


def register(cls: type[ArtifactGenerator]) -> type[ArtifactGenerator]:
    """Class decorator adding a generator to the family registry."""
    if cls.family not in FAMILIES:
        msg = f"Unknown artifact family: {cls.family}"
        raise ValueError(msg)
    _REGISTRY[cls.family] = cls
    return cls


def get_generator(family: str) -> ArtifactGenerator:
    try:
        return _REGISTRY[family]()
    except KeyError:
        msg = f"No generator registered for {family!r}"
        raise GenerationError(msg, scope=family) from None
