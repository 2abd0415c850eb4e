"""Tech-stack, framework and infra-tooling detection."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rigsmith.analysis.manifests import read_text

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True)
class Ecosystem:
    """A language ecosystem recognised by its root-level manifests."""

    label: str  # project type, e.g. "Python"
    stack_label: str  # tech-stack label, e.g. "JavaScript/Node.js"
    manifests: tuple[str, ...]
    # (lockfile or manifest, package manager); first present wins, last entry is the fallback
    package_managers: tuple[tuple[str, str], ...]

    def matches(self, names: set[str]) -> bool:
        return any(m in names for m in self.manifests)

    def package_manager(self, names: set[str]) -> str:
        for marker, manager in self.package_managers:
            if marker in names:
                return manager
        return self.package_managers[-1][1]


ECOSYSTEMS: tuple[Ecosystem, ...] = (
    Ecosystem(
        "Node.js",
        "JavaScript/Node.js",
        ("package.json",),
        (("pnpm-lock.yaml", "pnpm"), ("yarn.lock", "yarn"), ("package.json", "npm")),
    ),
    Ecosystem(
        "Python",
        "Python",
        ("requirements.txt", "pyproject.toml", "Pipfile", "setup.py"),
        (("poetry.lock", "poetry"), ("Pipfile", "pipenv"), ("uv.lock", "uv"), ("", "pip")),
    ),
    Ecosystem(
        "Java",
        "Java",
        ("pom.xml", "build.gradle", "build.gradle.kts"),
        (("pom.xml", "maven"), ("", "gradle")),
    ),
    Ecosystem("Go", "Go", ("go.mod",), (("", "go mod"),)),
    Ecosystem("Rust", "Rust", ("Cargo.toml",), (("", "cargo"),)),
    Ecosystem("Ruby", "Ruby", ("Gemfile",), (("", "bundler"),)),
    Ecosystem("PHP", "PHP", ("composer.json",), (("", "composer"),)),
)


@dataclass(frozen=True)
class Framework:
    """A framework recognised by dependency names or marker files."""

    label: str
    dependencies: tuple[str, ...] = ()
    markers: tuple[str, ...] = ()
    kind: str = "server"  # "ui" or "server"


FRAMEWORKS: tuple[Framework, ...] = (
    Framework("React", ("react",), (), "ui"),
    Framework("Vue.js", ("vue",), ("vue.config.js",), "ui"),
    Framework("Angular", ("@angular/core", "angular"), ("angular.json",), "ui"),
    Framework("Next.js", ("next",), ("next.config.js", "next.config.mjs"), "ui"),
    Framework("Nuxt.js", ("nuxt",), ("nuxt.config.js", "nuxt.config.ts"), "ui"),
    Framework("Svelte", ("svelte", "@sveltejs/kit"), ("svelte.config.js",), "ui"),
    Framework("Express.js", ("express",)),
    Framework("NestJS", ("@nestjs/core",), ("nest-cli.json",)),
    Framework("Fastify", ("fastify",)),
    Framework("Koa", ("koa",)),
    Framework("Django", ("django",), ("manage.py",)),
    Framework("Flask", ("flask",)),
    Framework("FastAPI", ("fastapi",)),
    Framework("Spring Boot", ("spring-boot-starter-web", "spring-boot-starter-parent")),
)

UI_FRAMEWORKS = frozenset(f.label for f in FRAMEWORKS if f.kind == "ui")
SERVER_FRAMEWORKS = frozenset(f.label for f in FRAMEWORKS if f.kind == "server")

# Existing infrastructure files and directories worth reporting.
INFRA_CANDIDATES: tuple[str, ...] = (
    "Dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
    "terraform",
    "terragrunt.hcl",
    "kubernetes",
    "k8s",
    "helm",
    "charts",
    ".github/workflows",
    ".gitlab-ci.yml",
    "Jenkinsfile",
    ".circleci",
    "azure-pipelines.yml",
    "ansible",
    "playbook.yml",
)

_CONTAINER_FILES = frozenset(
    {"Dockerfile", "docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml"}
)
_CI_PATHS = (".github/workflows", ".gitlab-ci.yml", "Jenkinsfile", ".circleci", "azure-pipelines.yml")
_ORCHESTRATION_DIRS = ("k8s", "kubernetes", "helm", "charts", "manifests", "deploy")

_SOURCE_EXTENSIONS = frozenset(
    {".js", ".jsx", ".ts", ".tsx", ".py", ".java", ".go", ".rs", ".rb", ".php"}
)
_RECURSIVE_SKIP = frozenset(
    {
        "node_modules",
        "__pycache__",
        "venv",
        ".venv",
        "dist",
        "build",
        "target",
        "vendor",
        ".git",
        ".mypy_cache",
        ".ruff_cache",
        ".pytest_cache",
        "htmlcov",
        "coverage",
    }
)

LARGE_PROJECT_THRESHOLD = 20


@dataclass(frozen=True)
class StackReport:
    project_type: str | None = None
    package_manager: str | None = None
    tech_stack: tuple[str, ...] = ()
    ecosystems: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolingReport:
    has_container_build: bool = False
    has_orchestration: bool = False
    has_provisioning_code: bool = False
    has_ci: bool = False
    infra_files: tuple[str, ...] = field(default_factory=tuple)


def root_names(project_root: Path) -> set[str]:
    """File and directory names directly under *project_root*."""
    try:
        return {p.name for p in project_root.iterdir()}
    except OSError:
        return set()


def detect_stack(project_root: Path, dependencies: list[str] | tuple[str, ...]) -> StackReport:
    """Detect project type, package manager, ecosystems and frameworks.

    The first matching ecosystem sets the project type and package manager.
    A match in any further ecosystem escalates the type to ``Full-stack``.
    """
    names = root_names(project_root)
    project_type: str | None = None
    package_manager: str | None = None
    stack: list[str] = []
    ecosystems: list[str] = []

    for eco in ECOSYSTEMS:
        if not eco.matches(names):
            continue
        if project_type is None:
            project_type = eco.label
            package_manager = eco.package_manager(names)
        elif eco.label not in ecosystems:
            project_type = "Full-stack"
        ecosystems.append(eco.label)
        stack.append(eco.stack_label)

    dep_names = {d.lower() for d in dependencies}
    for fw in FRAMEWORKS:
        by_dep = any(d in dep_names for d in fw.dependencies)
        by_marker = any(m in names for m in fw.markers)
        if (by_dep or by_marker) and fw.label not in stack:
            stack.append(fw.label)

    return StackReport(
        project_type=project_type,
        package_manager=package_manager,
        tech_stack=tuple(stack),
        ecosystems=tuple(ecosystems),
    )


def primary_ecosystem(tech_stack: tuple[str, ...] | list[str]) -> str | None:
    """Project-type label of the first ecosystem present in *tech_stack*."""
    for eco in ECOSYSTEMS:
        if eco.stack_label in tech_stack:
            return eco.label
    return None


def _looks_like_k8s_manifest(path: Path) -> bool:
    text = read_text(path)
    return "apiVersion:" in text and "kind:" in text


def _has_orchestration(project_root: Path, names: set[str]) -> bool:
    candidates: list[Path] = [
        project_root / n for n in sorted(names) if n.endswith((".yaml", ".yml"))
    ]
    for dirname in _ORCHESTRATION_DIRS:
        directory = project_root / dirname
        if directory.is_dir():
            candidates.extend(sorted(directory.rglob("*.y*ml"))[:20])
    if (project_root / "Chart.yaml").is_file():
        return True
    return any(_looks_like_k8s_manifest(p) for p in candidates if p.is_file())


def _has_terraform(project_root: Path, names: set[str]) -> bool:
    if any(n.endswith(".tf") for n in names):
        return True
    tf_dir = project_root / "terraform"
    return tf_dir.is_dir() and next(tf_dir.rglob("*.tf"), None) is not None


def detect_tooling(project_root: Path) -> ToolingReport:
    """Detect existing container, orchestration, provisioning and CI tooling."""
    names = root_names(project_root)
    infra_files = tuple(c for c in INFRA_CANDIDATES if (project_root / c).exists())
    return ToolingReport(
        has_container_build=bool(names & _CONTAINER_FILES),
        has_orchestration=_has_orchestration(project_root, names),
        has_provisioning_code=_has_terraform(project_root, names),
        has_ci=any((project_root / p).exists() for p in _CI_PATHS),
        infra_files=infra_files,
    )


def count_source_files(project_root: Path, limit: int | None = None) -> int:
    """Count source files, skipping vendored and hidden directories.

    Stops early once *limit* is exceeded.
    """
    count = 0
    for _dirpath, dirnames, filenames in os.walk(project_root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in _RECURSIVE_SKIP and not d.startswith(".")
        )
        for filename in filenames:
            if os.path.splitext(filename)[1] in _SOURCE_EXTENSIONS:
                count += 1
                if limit is not None and count > limit:
                    return count
    return count


def needs_orchestration(project_root: Path, stack: StackReport) -> bool:
    """Multi-ecosystem projects and large codebases benefit from orchestration."""
    if stack.project_type == "Full-stack" or len(stack.ecosystems) > 1:
        return True
    limit = LARGE_PROJECT_THRESHOLD
    return count_source_files(project_root, limit=limit) > limit
