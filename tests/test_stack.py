"""Tests for rigsmith.analysis.stack — ecosystem, framework and tooling detection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rigsmith.analysis.stack import (
    StackReport,
    count_source_files,
    detect_stack,
    detect_tooling,
    needs_orchestration,
    primary_ecosystem,
)

if TYPE_CHECKING:
    from pathlib import Path


def _write_file(path: Path, content: str = "") -> None:
    """Create parent dirs and write content to a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class TestDetectStack:
    def test_node_with_yarn(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "package.json", "{}")
        _write_file(tmp_path / "yarn.lock")
        report = detect_stack(tmp_path, ["react", "express"])
        assert report.project_type == "Node.js"
        assert report.package_manager == "yarn"
        assert report.tech_stack == ("JavaScript/Node.js", "React", "Express.js")

    def test_python_defaults_to_pip(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "requirements.txt", "flask\n")
        report = detect_stack(tmp_path, ["flask"])
        assert report.project_type == "Python"
        assert report.package_manager == "pip"
        assert "Flask" in report.tech_stack

    def test_python_with_poetry(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "pyproject.toml")
        _write_file(tmp_path / "poetry.lock")
        assert detect_stack(tmp_path, []).package_manager == "poetry"

    def test_second_ecosystem_escalates_to_full_stack(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "package.json", "{}")
        _write_file(tmp_path / "requirements.txt")
        report = detect_stack(tmp_path, [])
        assert report.project_type == "Full-stack"
        assert report.package_manager == "npm"
        assert report.ecosystems == ("Node.js", "Python")
        assert report.tech_stack == ("JavaScript/Node.js", "Python")

    def test_framework_by_marker_file(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "requirements.txt")
        _write_file(tmp_path / "manage.py")
        assert "Django" in detect_stack(tmp_path, []).tech_stack

    def test_nothing_detected(self, tmp_path: Path) -> None:
        report = detect_stack(tmp_path, [])
        assert report == StackReport()

    def test_primary_ecosystem(self) -> None:
        assert primary_ecosystem(("React", "Python")) == "Python"
        assert primary_ecosystem(("React",)) is None


class TestDetectTooling:
    def test_empty_project(self, tmp_path: Path) -> None:
        tooling = detect_tooling(tmp_path)
        assert not tooling.has_container_build
        assert not tooling.has_orchestration
        assert not tooling.has_provisioning_code
        assert not tooling.has_ci
        assert tooling.infra_files == ()

    def test_existing_tooling(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "Dockerfile", "FROM python:3.12\n")
        _write_file(tmp_path / ".github" / "workflows" / "ci.yml", "on: push\n")
        _write_file(tmp_path / "main.tf", 'provider "google" {}\n')
        _write_file(
            tmp_path / "k8s" / "deployment.yaml",
            "apiVersion: apps/v1\nkind: Deployment\n",
        )
        tooling = detect_tooling(tmp_path)
        assert tooling.has_container_build
        assert tooling.has_orchestration
        assert tooling.has_provisioning_code
        assert tooling.has_ci
        assert tooling.infra_files == ("Dockerfile", "k8s", ".github/workflows")

    def test_plain_yaml_is_not_orchestration(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "config.yaml", "debug: true\n")
        assert not detect_tooling(tmp_path).has_orchestration

    def test_nested_terraform(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "terraform" / "envs" / "prod" / "main.tf")
        assert detect_tooling(tmp_path).has_provisioning_code


class TestNeedsOrchestration:
    def test_full_stack(self, tmp_path: Path) -> None:
        report = StackReport(project_type="Full-stack", ecosystems=("Node.js", "Python"))
        assert needs_orchestration(tmp_path, report)

    def test_small_project(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "app.py")
        assert not needs_orchestration(tmp_path, StackReport(project_type="Python"))

    def test_large_project(self, tmp_path: Path) -> None:
        for i in range(25):
            _write_file(tmp_path / "src" / f"module_{i}.py")
        assert needs_orchestration(tmp_path, StackReport(project_type="Python"))

    def test_vendored_files_not_counted(self, tmp_path: Path) -> None:
        for i in range(30):
            _write_file(tmp_path / "node_modules" / "pkg" / f"f{i}.js")
        _write_file(tmp_path / "index.js")
        assert count_source_files(tmp_path) == 1
