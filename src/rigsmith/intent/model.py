"""Intent: the structured plan of what to generate."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

CANONICAL_ENVIRONMENTS: tuple[str, ...] = ("dev", "staging", "prod")
DEFAULT_ENVIRONMENTS: tuple[str, ...] = ("dev", "prod")

COMPONENTS: tuple[str, ...] = ("compute", "storage", "networking", "database", "monitoring", "cicd")
BASELINE_COMPONENTS: tuple[str, ...] = ("compute", "storage", "networking")

FAMILIES: tuple[str, ...] = ("terraform", "kubernetes", "docker", "cicd", "monitoring", "security")
ALL_FAMILIES = "all"
DEFAULT_FAMILY = "terraform"

_ENVIRONMENT_ALIASES = {
    "development": "dev",
    "develop": "dev",
    "stage": "staging",
    "stg": "staging",
    "production": "prod",
    "prd": "prod",
}
_FAMILY_ALIASES = {
    "mixed": ALL_FAMILIES,
    "k8s": "kubernetes",
    "ci": "cicd",
    "ci/cd": "cicd",
    "security-configs": "security",
}
_COMPONENT_ALIASES = {
    "network": "networking",
    "db": "database",
    "databases": "database",
    "ci/cd": "cicd",
    "ci": "cicd",
}
_ENV_NAME_RE = re.compile(r"[^a-z0-9-]+")

DEFAULT_RECOMMENDATIONS: tuple[str, ...] = (
    "Consider adding CI/CD pipelines for automated deployment",
    "Keep generated modules under version control and review plans before applying",
    "Set up monitoring and alerting for production",
)


def default_specification(component: str, environments: tuple[str, ...]) -> str:
    """Specification text used when none was given for *component*."""
    if component == "compute":
        if "prod" in environments:
            return "Production-grade instances with auto-scaling"
        return "Cost-optimized instances"
    return {
        "storage": "Object storage with lifecycle policies",
        "networking": "VPC with public and private subnets",
        "database": "Managed database service with backups",
        "monitoring": "Logging, metrics, and alerting",
        "cicd": "Automated build, test and deploy pipeline",
    }[component]


def default_summary(environments: tuple[str, ...], components: tuple[str, ...]) -> str:
    return f"Create {' and '.join(environments)} environments with {', '.join(components)}"


def normalize_environments(names: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Lower-case, alias, slugify and de-duplicate, keeping first occurrence."""
    result: list[str] = []
    for raw in names:
        name = _ENV_NAME_RE.sub("-", str(raw).strip().lower()).strip("-")
        name = _ENVIRONMENT_ALIASES.get(name, name)
        if name and name not in result:
            result.append(name)
    return tuple(result)


def normalize_components(names: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Keep known components once, in given order; unknown names are dropped."""
    result: list[str] = []
    for raw in names:
        name = str(raw).strip().lower()
        name = _COMPONENT_ALIASES.get(name, name)
        if name not in COMPONENTS:
            logger.debug("Dropping unknown component %r", raw)
            continue
        if name not in result:
            result.append(name)
    return tuple(result)


def normalize_family(name: str | None) -> str:
    if not name:
        return DEFAULT_FAMILY
    family = str(name).strip().lower()
    family = _FAMILY_ALIASES.get(family, family)
    if family == ALL_FAMILIES or family in FAMILIES:
        return family
    logger.warning("Unknown artifact family %r, using %s", name, DEFAULT_FAMILY)
    return DEFAULT_FAMILY


@dataclass(frozen=True)
class Intent:
    """Operator-confirmed description of what to generate.

    Construct through :meth:`create` to get normalization and defaults;
    direct construction only validates.
    """

    environments: tuple[str, ...]
    components: tuple[str, ...]
    specifications: dict[str, str] = field(default_factory=dict)
    summary: str = ""
    family: str = DEFAULT_FAMILY
    recommendations: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.environments:
            msg = "Intent needs at least one environment."
            raise ValueError(msg)
        if not self.components:
            msg = "Intent needs at least one component."
            raise ValueError(msg)
        unknown = [c for c in self.components if c not in COMPONENTS]
        if unknown:
            msg = f"Unknown components: {', '.join(unknown)}"
            raise ValueError(msg)
        if self.family != ALL_FAMILIES and self.family not in FAMILIES:
            msg = f"Unknown artifact family: {self.family!r}"
            raise ValueError(msg)

    @classmethod
    def create(
        cls,
        environments: list[str] | tuple[str, ...],
        components: list[str] | tuple[str, ...],
        *,
        specifications: dict[str, Any] | None = None,
        summary: str | None = None,
        family: str | None = None,
        recommendations: list[str] | tuple[str, ...] = (),
    ) -> Intent:
        """Normalize inputs and fill a specification for every component.

        Raises
        ------
        ValueError
            If no environment or no known component remains.
        """
        envs = normalize_environments(environments)
        comps = normalize_components(components)
        given = specifications or {}
        specs: dict[str, str] = {}
        for component in comps:
            text = given.get(component)
            if isinstance(text, str) and text.strip():
                specs[component] = text.strip()
            else:
                specs[component] = default_specification(component, envs)
        return cls(
            environments=envs,
            components=comps,
            specifications=specs,
            summary=(summary or "").strip() or default_summary(envs, comps),
            family=normalize_family(family),
            recommendations=tuple(str(r) for r in recommendations if str(r).strip()),
        )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Intent:
        """Validate a decoded JSON object into an Intent.

        Accepts ``intent`` or ``summary`` for the summary and
        ``infrastructure_type`` or ``family`` for the artifact family.

        Raises
        ------
        ValueError
            If a field has the wrong shape or a required list is empty.
        """
        environments = data.get("environments")
        components = data.get("components")
        if not isinstance(environments, list) or not all(isinstance(e, str) for e in environments):
            msg = "'environments' must be a list of strings"
            raise ValueError(msg)
        if not isinstance(components, list) or not all(isinstance(c, str) for c in components):
            msg = "'components' must be a list of strings"
            raise ValueError(msg)

        specifications = data.get("specifications") or {}
        if not isinstance(specifications, dict):
            msg = "'specifications' must be an object"
            raise ValueError(msg)
        recommendations = data.get("recommendations") or []
        if not isinstance(recommendations, list):
            msg = "'recommendations' must be a list"
            raise ValueError(msg)

        summary = data.get("summary") or data.get("intent")
        family = data.get("family") or data.get("infrastructure_type")
        return cls.create(
            environments,
            components,
            specifications=specifications,
            summary=summary if isinstance(summary, str) else None,
            family=family if isinstance(family, str) else None,
            recommendations=recommendations,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "environments": list(self.environments),
            "components": list(self.components),
            "specifications": dict(self.specifications),
            "family": self.family,
            "recommendations": list(self.recommendations),
        }
