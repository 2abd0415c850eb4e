"""Recommendation and next-step suggestion rules over an analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rigsmith.analysis.model import Suggestion

if TYPE_CHECKING:
    from collections.abc import Callable

    from rigsmith.analysis.model import Analysis

WEB_SERVER_DEPENDENCIES = (
    "express",
    "flask",
    "django",
    "fastapi",
    "koa",
    "fastify",
    "@nestjs/core",
    "spring-boot-starter-web",
)
MONITORING_RESOURCE_THRESHOLD = 3


def _serves_http(analysis: Analysis) -> bool:
    deps = [d.lower() for d in analysis.dependencies]
    return any(web in dep for dep in deps for web in WEB_SERVER_DEPENDENCIES)


def _resource_count(analysis: Analysis) -> int:
    return analysis.infrastructure.resource_count if analysis.infrastructure else 0


@dataclass(frozen=True)
class AdviceRule:
    """Fires ``text`` when ``when(analysis)`` holds."""

    when: Callable[[Analysis], bool]
    text: str


RECOMMENDATION_RULES: tuple[AdviceRule, ...] = (
    AdviceRule(
        lambda a: not a.has_container_build,
        "Add Docker containerization for consistent deployment",
    ),
    AdviceRule(
        lambda a: a.needs_orchestration and not a.has_orchestration,
        "Consider Kubernetes for container orchestration",
    ),
    AdviceRule(
        lambda a: a.infrastructure is not None and not a.has_provisioning_code,
        "Generate Terraform modules to manage existing infrastructure as code",
    ),
    AdviceRule(
        lambda a: not a.has_ci,
        "Set up CI/CD pipeline for automated deployment",
    ),
    AdviceRule(
        _serves_http,
        "Add security configurations and policies for web application",
    ),
    AdviceRule(
        lambda a: _resource_count(a) > MONITORING_RESOURCE_THRESHOLD,
        "Implement monitoring and alerting for infrastructure",
    ),
)

# (rule, command, description)
SUGGESTION_RULES: tuple[tuple[Callable[[Analysis], bool], str, str], ...] = (
    (
        lambda a: a.infrastructure is not None and not a.has_provisioning_code,
        "rigsmith generate terraform --import-existing",
        "Generate Terraform modules for existing infrastructure",
    ),
    (
        lambda a: not a.has_container_build,
        "rigsmith generate docker",
        "Create Dockerfile and docker-compose configuration",
    ),
    (
        lambda a: a.needs_orchestration and not a.has_orchestration,
        "rigsmith generate kubernetes",
        "Generate Kubernetes manifests for container deployment",
    ),
    (
        lambda a: not a.has_ci,
        "rigsmith generate cicd",
        "Create a GitHub Actions workflow for CI/CD",
    ),
    (
        lambda a: a.infrastructure is not None or bool(a.endpoints),
        "rigsmith generate monitoring",
        "Set up monitoring with Prometheus and Grafana",
    ),
    (
        lambda a: bool(a.tech_stack),
        "rigsmith generate security",
        "Generate security policies and configurations",
    ),
)


def recommend(analysis: Analysis) -> tuple[str, ...]:
    """Evaluate recommendation rules in order."""
    return tuple(r.text for r in RECOMMENDATION_RULES if r.when(analysis))


def suggest(analysis: Analysis) -> tuple[Suggestion, ...]:
    """Evaluate suggestion rules in order."""
    return tuple(
        Suggestion(command=command, description=description)
        for when, command, description in SUGGESTION_RULES
        if when(analysis)
    )
