"""Tests for rigsmith.pipeline — family resolution, isolation and the index."""

from __future__ import annotations

import unittest.mock
from dataclasses import replace
from typing import TYPE_CHECKING

from rigsmith.generators import strip_provenance
from rigsmith.generators.docker import DockerGenerator
from rigsmith.intent.model import FAMILIES, Intent
from rigsmith.pipeline import resolve_families, run_generation
from rigsmith.writer import OutputWriter

if TYPE_CHECKING:
    from pathlib import Path

    from rigsmith.analysis.model import Analysis
    from rigsmith.generators.base import GenerationOptions


def _snapshot(root: Path) -> dict[str, str]:
    return {
        p.relative_to(root).as_posix(): strip_provenance(p.read_text(encoding="utf-8"))
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


class TestResolveFamilies:
    def test_intent_family(self, intent: Intent, options: GenerationOptions) -> None:
        assert resolve_families(intent, options) == ["terraform"]

    def test_all_expands(self, options: GenerationOptions) -> None:
        intent = Intent.create(["dev"], ["compute"], family="all")
        assert resolve_families(intent, options) == list(FAMILIES)

    def test_override_in_canonical_order(self, intent: Intent, options: GenerationOptions) -> None:
        options = replace(options, families=("security", "docker", "docker"))
        assert resolve_families(intent, options) == ["docker", "security"]

    def test_unknown_names_are_kept(self, intent: Intent, options: GenerationOptions) -> None:
        options = replace(options, families=("helm", "docker"))
        assert resolve_families(intent, options) == ["docker", "helm"]


class TestRunGeneration:
    def test_writes_families_and_index(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("docker", "cicd"))
        report = run_generation(analysis, intent, options)

        assert report.ok
        assert [r.family for r in report.results] == ["docker", "cicd"]
        assert report.index == options.output_dir / "README.md"
        assert (options.output_dir / "docker/Dockerfile").is_file()
        assert (options.output_dir / "cicd/.github/workflows/ci.yml").is_file()

        index = report.index.read_text(encoding="utf-8")
        assert "# Infrastructure for shop" in index
        assert "<!-- Generated at: 2026-01-01T00:00:00+00:00 -->" in index
        assert "| docker | `docker/` | 4 | ok |" in index
        assert "- **database**:" in index

    def test_regeneration_is_idempotent(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("all",))
        run_generation(analysis, intent, options)
        first = _snapshot(options.output_dir)

        later = replace(options, generated_at="2026-06-30T12:00:00+00:00")
        run_generation(analysis, intent, later)

        assert _snapshot(options.output_dir) == first
        assert "2026-06-30T12:00:00+00:00" in (options.output_dir / "README.md").read_text()

    def test_same_timestamp_leaves_files_untouched(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("docker",))
        run_generation(analysis, intent, options)

        writer = OutputWriter()
        report = run_generation(analysis, intent, options, writer=writer)
        assert len(writer.unchanged) == len(report.files) + 1

    def test_failing_family_is_isolated(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("docker", "cicd", "security"))
        with unittest.mock.patch.object(
            DockerGenerator, "build", side_effect=RuntimeError("template exploded")
        ):
            report = run_generation(analysis, intent, options)

        assert not report.ok
        docker, cicd, security = report.results
        assert (docker.error, docker.stage, docker.files) == ("template exploded", "generation", [])
        assert cicd.ok
        assert security.ok
        assert not (options.output_dir / "docker").exists()
        assert "| docker | `docker/` | 0 | failed (generation) |" in report.index.read_text()

    def test_unknown_family_fails_alone(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("helm", "docker"))
        report = run_generation(analysis, intent, options)

        assert [r.family for r in report.failed] == ["helm"]
        assert report.failed[0].stage == "generation"
        assert "helm" in report.failed[0].error

    def test_write_failure_keeps_partial_files(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("docker",))
        options.output_dir.mkdir(parents=True)
        (options.output_dir / "docker").mkdir()
        (options.output_dir / "docker" / "docker-compose.yml").mkdir()

        report = run_generation(analysis, intent, options)

        (docker,) = report.results
        assert docker.stage == "write"
        assert [p.name for p in docker.files] == ["Dockerfile", "Dockerfile.dockerignore"]
        assert report.index is not None

    def test_index_write_failure(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("docker",))
        (options.output_dir / "README.md").mkdir(parents=True)

        report = run_generation(analysis, intent, options)

        assert report.results[0].ok
        assert report.index is None
        assert report.index_error is not None
        assert not report.ok
