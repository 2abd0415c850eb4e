"""Generators domain — one artifact family per module, registered on import."""

from rigsmith.generators import cicd, docker, kubernetes, monitoring, security, terraform
from rigsmith.generators.base import (
    ArtifactGenerator,
    ArtifactTree,
    Document,
    GeneratedFile,
    GenerationOptions,
    get_generator,
    strip_provenance,
)

__all__ = [
    "ArtifactGenerator",
    "ArtifactTree",
    "Document",
    "GeneratedFile",
    "GenerationOptions",
    "cicd",
    "docker",
    "get_generator",
    "kubernetes",
    "monitoring",
    "security",
    "strip_provenance",
    "terraform",
]
