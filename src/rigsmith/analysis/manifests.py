"""Manifest readers: extract dependency names from project manifests."""

from __future__ import annotations

import json
import re
import tomllib
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

# PEP 508 name at the start of a requirement line ("Django>=4.2; python_version...")
_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_GO_REQUIRE_RE = re.compile(r"^\s*([\w.\-/]+)\s+v[\w.\-+]+", re.MULTILINE)
_POM_ARTIFACT_RE = re.compile(r"<artifactId>\s*([^<\s]+)\s*</artifactId>")
_GEM_RE = re.compile(r"""^\s*gem\s+['"]([^'"]+)['"]""", re.MULTILINE)


# ---------------------------------------------------------------------------
# Raw readers
# ---------------------------------------------------------------------------


def read_toml(path: Path) -> dict[str, Any]:
    """Read and parse a TOML file, returning empty dict on failure."""
    try:
        result: dict[str, Any] = tomllib.loads(path.read_bytes().decode("utf-8"))
        return result
    except (OSError, tomllib.TOMLDecodeError, UnicodeDecodeError, ValueError):
        return {}


def read_json(path: Path) -> dict[str, Any]:
    """Read and parse a JSON file, returning empty dict on failure."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return data
        return {}
    except (OSError, json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return {}


def read_text(path: Path) -> str:
    """Read a text file, returning an empty string on failure."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""


COMPOSE_FILES: tuple[str, ...] = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)


def read_compose(project_root: Path) -> tuple[str, dict[str, Any]] | None:
    """First compose file under *project_root* as ``(name, services)``.

    Returns ``None`` when no compose file exists or it has no services mapping.
    """
    for name in COMPOSE_FILES:
        path = project_root / name
        if not path.is_file():
            continue
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError):
            return None
        if not isinstance(data, dict):
            return None
        services = data.get("services")
        if isinstance(services, dict):
            return name, services
        return None
    return None


def _requirement_name(line: str) -> str | None:
    line = line.split("#", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    match = _REQUIREMENT_NAME_RE.match(line)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Per-manifest dependency parsers
# ---------------------------------------------------------------------------


def _package_json_deps(project_root: Path) -> list[str]:
    data = read_json(project_root / "package.json")
    deps: list[str] = []
    for section in ("dependencies", "devDependencies"):
        block = data.get(section)
        if isinstance(block, dict):
            deps.extend(str(name) for name in block)
    return deps


def _requirements_deps(project_root: Path) -> list[str]:
    deps: list[str] = []
    for line in read_text(project_root / "requirements.txt").splitlines():
        name = _requirement_name(line)
        if name:
            deps.append(name)
    return deps


def _pyproject_deps(project_root: Path) -> list[str]:
    """PEP 621 ``[project].dependencies`` and Poetry ``[tool.poetry.dependencies]``."""
    data = read_toml(project_root / "pyproject.toml")
    deps: list[str] = []

    project = data.get("project", {})
    if isinstance(project, dict):
        for spec in project.get("dependencies") or []:
            name = _requirement_name(str(spec))
            if name:
                deps.append(name)

    tool = data.get("tool", {})
    poetry = tool.get("poetry", {}) if isinstance(tool, dict) else {}
    if isinstance(poetry, dict):
        block = poetry.get("dependencies", {})
        if isinstance(block, dict):
            deps.extend(str(name) for name in block if str(name).lower() != "python")
    return deps


def _pipfile_deps(project_root: Path) -> list[str]:
    data = read_toml(project_root / "Pipfile")
    deps: list[str] = []
    for section in ("packages", "dev-packages"):
        block = data.get(section)
        if isinstance(block, dict):
            deps.extend(str(name) for name in block)
    return deps


def _go_mod_deps(project_root: Path) -> list[str]:
    return _GO_REQUIRE_RE.findall(read_text(project_root / "go.mod"))


def _cargo_deps(project_root: Path) -> list[str]:
    data = read_toml(project_root / "Cargo.toml")
    deps: list[str] = []
    for section in ("dependencies", "dev-dependencies"):
        block = data.get(section)
        if isinstance(block, dict):
            deps.extend(str(name) for name in block)
    return deps


def _pom_deps(project_root: Path) -> list[str]:
    artifacts = _POM_ARTIFACT_RE.findall(read_text(project_root / "pom.xml"))
    # First artifactId is the project itself.
    return artifacts[1:]


def _gemfile_deps(project_root: Path) -> list[str]:
    return _GEM_RE.findall(read_text(project_root / "Gemfile"))


def _composer_deps(project_root: Path) -> list[str]:
    data = read_json(project_root / "composer.json")
    deps: list[str] = []
    for section in ("require", "require-dev"):
        block = data.get(section)
        if isinstance(block, dict):
            deps.extend(str(name) for name in block if not str(name).startswith("ext-"))
    return [d for d in deps if d != "php"]


_PARSERS: tuple[Callable[[Path], list[str]], ...] = (
    _package_json_deps,
    _requirements_deps,
    _pyproject_deps,
    _pipfile_deps,
    _go_mod_deps,
    _cargo_deps,
    _pom_deps,
    _gemfile_deps,
    _composer_deps,
)


def read_dependencies(project_root: Path) -> list[str]:
    """Collect dependency names from every root-level manifest.

    Parameters
    ----------
    project_root:
        Root of the project to scan.

    Returns
    -------
    list[str]
        Dependency names in manifest order, de-duplicated case-insensitively
        (the first spelling wins).
    """
    seen: set[str] = set()
    result: list[str] = []
    for parser in _PARSERS:
        for name in parser(project_root):
            key = name.lower()
            if key not in seen:
                seen.add(key)
                result.append(name)
    return result


def read_scripts(project_root: Path) -> dict[str, str]:
    """Script commands from package.json and Procfile process lines.

    Only string-valued commands are kept; package.json wins on name clashes.
    """
    scripts: dict[str, str] = {}
    block = read_json(project_root / "package.json").get("scripts")
    if isinstance(block, dict):
        scripts.update({str(k): v for k, v in block.items() if isinstance(v, str)})

    for line in read_text(project_root / "Procfile").splitlines():
        name, sep, command = line.partition(":")
        name = name.strip()
        if sep and name and name not in scripts:
            scripts[name] = command.strip()
    return scripts
