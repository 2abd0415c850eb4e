"""Analysis record: an immutable snapshot of what was detected in a project."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rigsmith.inventory.resources import ResourceGroup

SERVICE_CATEGORIES: tuple[str, ...] = ("database", "cache", "queue", "storage")


@dataclass(frozen=True)
class ServiceEvidence:
    """A detected data service and the signal that justified it."""

    category: str  # database, cache, queue, storage
    type: str  # canonical service type, e.g. "postgresql"
    evidence_source: str  # dependency name, env-var key or file path

    def __post_init__(self) -> None:
        if not self.evidence_source:
            msg = f"Service {self.type!r} has no evidence source."
            raise ValueError(msg)
        if self.category not in SERVICE_CATEGORIES:
            msg = f"Unknown service category: {self.category!r}"
            raise ValueError(msg)


@dataclass(frozen=True)
class Endpoint:
    """A network port the project listens on."""

    port: int
    container_port: int | None = None
    process: str | None = None
    source: str = ""  # compose file, script name or "probe"


@dataclass(frozen=True)
class Suggestion:
    """A suggested next command."""

    command: str
    description: str


@dataclass(frozen=True)
class InfrastructureSummary:
    """Cloud footprint found through the resource inventory."""

    provider: str
    resource_count: int
    resource_types: tuple[str, ...]
    estimated_monthly_cost: int
    groups: tuple[ResourceGroup, ...] = ()
    failed_categories: tuple[str, ...] = ()


@dataclass(frozen=True)
class Analysis:
    """Everything the analyzer learned about one project."""

    project_name: str
    project_root: str = ""
    project_type: str | None = None
    tech_stack: tuple[str, ...] = ()
    package_manager: str | None = None
    dependencies: tuple[str, ...] = ()
    has_container_build: bool = False
    has_orchestration: bool = False
    has_provisioning_code: bool = False
    has_ci: bool = False
    needs_orchestration: bool = False
    infra_files: tuple[str, ...] = ()
    databases: tuple[ServiceEvidence, ...] = ()
    caches: tuple[ServiceEvidence, ...] = ()
    queues: tuple[ServiceEvidence, ...] = ()
    storage: tuple[ServiceEvidence, ...] = ()
    endpoints: tuple[Endpoint, ...] = ()
    env_keys: tuple[str, ...] = ()
    infrastructure: InfrastructureSummary | None = None
    recommendations: tuple[str, ...] = ()
    suggestions: tuple[Suggestion, ...] = field(default_factory=tuple)

    @property
    def services(self) -> tuple[ServiceEvidence, ...]:
        return self.databases + self.caches + self.queues + self.storage

    def has_service(self, category: str) -> bool:
        return any(s.category == category for s in self.services)

    def service_types(self, category: str) -> list[str]:
        return [s.type for s in self.services if s.category == category]


def analysis_to_dict(analysis: Analysis) -> dict[str, Any]:
    """Convert an Analysis to a JSON-serializable dict."""
    data = asdict(analysis)
    # tuples -> lists keeps json.dumps output stable across Python versions
    return _listify(data)


def _listify(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _listify(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_listify(v) for v in value]
    return value


def summarize_for_prompt(analysis: Analysis) -> dict[str, Any]:
    """Compact Analysis view handed to the recommendation service.

    Only detected labels and counts; env keys are listed but never values.
    """
    summary: dict[str, Any] = {
        "project": analysis.project_name,
        "type": analysis.project_type or "Unknown",
        "tech_stack": list(analysis.tech_stack),
        "package_manager": analysis.package_manager,
        "has_docker": analysis.has_container_build,
        "has_kubernetes": analysis.has_orchestration,
        "has_terraform": analysis.has_provisioning_code,
        "has_ci": analysis.has_ci,
        "databases": analysis.service_types("database"),
        "caches": analysis.service_types("cache"),
        "queues": analysis.service_types("queue"),
        "storage": analysis.service_types("storage"),
        "ports": [e.port for e in analysis.endpoints],
    }
    if analysis.infrastructure is not None:
        summary["cloud_resources"] = {
            "provider": analysis.infrastructure.provider,
            "count": analysis.infrastructure.resource_count,
            "types": list(analysis.infrastructure.resource_types),
        }
    return summary
