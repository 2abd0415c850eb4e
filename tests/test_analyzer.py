"""Tests for rigsmith.analysis — ProjectAnalyzer end to end and advice rules."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rigsmith.analysis import (
    Analysis,
    Endpoint,
    ProjectAnalyzer,
    analysis_to_dict,
    estimate_monthly_cost,
    summarize_for_prompt,
)
from rigsmith.analysis.advice import recommend, suggest
from rigsmith.config import AccountContext
from rigsmith.errors import InventoryError
from rigsmith.inventory import CloudResource, InventorySnapshot, ResourceGroup, ResourceInventory

if TYPE_CHECKING:
    from pathlib import Path

CONFIGURED = AccountContext(project_id="acme", region="us-central1")

MONITORING_ADVICE = "Implement monitoring and alerting for infrastructure"
TERRAFORM_ADVICE = "Generate Terraform modules to manage existing infrastructure as code"


class FakeLister:
    def __init__(self, results: dict[str, Any]) -> None:
        self.results = results
        self.calls = 0

    def list_resources(
        self,
        context: AccountContext,
        category: str,
        region: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls += 1
        result = self.results.get(category, [])
        if isinstance(result, Exception):
            raise result
        return result


def _analyze(root: Path, **kwargs: Any) -> Analysis:
    kwargs.setdefault("port_probe", None)
    context = kwargs.pop("context", AccountContext())
    return ProjectAnalyzer(root, context, **kwargs).analyze()


class TestAnalyzeProject:
    def test_web_project(self, web_project: Path) -> None:
        analysis = _analyze(web_project)

        assert analysis.project_name == "shop"
        assert analysis.project_type == "Node.js"
        assert analysis.package_manager == "npm"
        assert analysis.tech_stack == ("JavaScript/Node.js", "React", "Express.js")
        assert analysis.service_types("database") == ["postgresql"]
        assert analysis.databases[0].evidence_source == "pg"
        assert analysis.service_types("cache") == ["redis"]
        assert [e.port for e in analysis.endpoints] == [3000, 5432, 8080]
        assert analysis.env_keys == ("DATABASE_URL", "REDIS_URL", "JWT_SECRET")
        assert analysis.has_container_build
        assert not analysis.has_ci
        assert analysis.infrastructure is None

    def test_recommendations(self, web_project: Path) -> None:
        analysis = _analyze(web_project)
        assert analysis.recommendations == (
            "Set up CI/CD pipeline for automated deployment",
            "Add security configurations and policies for web application",
        )
        commands = [s.command for s in analysis.suggestions]
        assert "rigsmith generate cicd" in commands
        assert "rigsmith generate docker" not in commands

    def test_env_values_never_stored(self, web_project: Path) -> None:
        dumped = json.dumps(analysis_to_dict(_analyze(web_project)))
        assert "hunter2" not in dumped
        assert "s3cr3t" not in dumped

    def test_empty_directory(self, tmp_path: Path) -> None:
        analysis = _analyze(tmp_path)
        assert analysis.project_type is None
        assert analysis.tech_stack == ()
        assert analysis.services == ()
        assert "Add Docker containerization for consistent deployment" in analysis.recommendations

    def test_failing_detector_is_isolated(self, web_project: Path) -> None:
        def broken_probe() -> list[Endpoint]:
            msg = "socket table unavailable"
            raise RuntimeError(msg)

        analysis = _analyze(web_project, port_probe=broken_probe)
        assert [e.port for e in analysis.endpoints] == [3000, 5432, 8080]

    def test_probe_results_are_merged(self, web_project: Path) -> None:
        def probe() -> list[Endpoint]:
            return [Endpoint(port=5432, process="postgres", source="probe")]

        analysis = _analyze(web_project, port_probe=probe)
        db = next(e for e in analysis.endpoints if e.port == 5432)
        assert db.process == "postgres"
        assert db.source == "docker-compose.yml:db"


class TestCloudFootprint:
    def test_every_category_failing(self, web_project: Path) -> None:
        lister = FakeLister(
            {
                c: InventoryError("not authenticated")
                for c in ("instances", "storage", "networks", "databases", "load-balancers")
            }
        )
        analysis = _analyze(
            web_project, context=CONFIGURED, inventory=ResourceInventory(lister)
        )
        assert analysis.infrastructure is None
        assert MONITORING_ADVICE not in analysis.recommendations
        assert TERRAFORM_ADVICE not in analysis.recommendations

    def test_partial_inventory(self, web_project: Path) -> None:
        lister = FakeLister(
            {
                "instances": [{"name": f"vm-{i}"} for i in range(4)],
                "storage": InventoryError("denied"),
            }
        )
        analysis = _analyze(
            web_project, context=CONFIGURED, inventory=ResourceInventory(lister)
        )
        infra = analysis.infrastructure
        assert infra is not None
        assert infra.provider == "GCP"
        assert infra.resource_count == 4
        assert infra.resource_types == ("instances",)
        assert infra.failed_categories == ("storage",)
        assert infra.estimated_monthly_cost == 100
        assert MONITORING_ADVICE in analysis.recommendations
        assert TERRAFORM_ADVICE in analysis.recommendations

    def test_unconfigured_context_skips_inventory(self, web_project: Path) -> None:
        lister = FakeLister({"instances": [{"name": "vm"}]})
        analysis = _analyze(web_project, inventory=ResourceInventory(lister))
        assert analysis.infrastructure is None
        assert lister.calls == 0

    def test_estimate_monthly_cost(self) -> None:
        snapshot = InventorySnapshot(
            groups=(
                ResourceGroup("instances", (CloudResource("1", "a"), CloudResource("2", "b"))),
                ResourceGroup("databases", (CloudResource("3", "c"),)),
                ResourceGroup("functions", (CloudResource("4", "d"),)),
                ResourceGroup("storage", error="denied"),
            )
        )
        assert estimate_monthly_cost(snapshot) == 110


class TestAdvice:
    def test_orchestration_advice(self) -> None:
        analysis = Analysis(project_name="x", needs_orchestration=True)
        assert "Consider Kubernetes for container orchestration" in recommend(analysis)
        assert "rigsmith generate kubernetes" in [s.command for s in suggest(analysis)]

    def test_existing_tooling_silences_advice(self) -> None:
        analysis = Analysis(
            project_name="x",
            has_container_build=True,
            has_orchestration=True,
            has_ci=True,
            needs_orchestration=True,
        )
        assert recommend(analysis) == ()


class TestSerialization:
    def test_analysis_to_dict_is_json(self, analysis: Analysis) -> None:
        data = json.loads(json.dumps(analysis_to_dict(analysis)))
        assert data["project_name"] == "shop"
        assert data["databases"] == [
            {"category": "database", "type": "postgresql", "evidence_source": "pg"}
        ]
        assert data["infrastructure"] is None

    def test_prompt_summary_has_no_values(self, analysis: Analysis) -> None:
        summary = summarize_for_prompt(analysis)
        assert summary["databases"] == ["postgresql"]
        assert summary["ports"] == [3000]
        assert "cloud_resources" not in summary
