"""Tests for rigsmith.generators.cicd."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import yaml

from rigsmith.analysis.model import Analysis
from rigsmith.generators.cicd import (
    WORKFLOW_PATH,
    CicdGenerator,
    build_workflow,
    toolchain_for,
)
from rigsmith.intent.model import Intent

if TYPE_CHECKING:
    from rigsmith.generators.base import GenerationOptions

THREE_ENVS = Intent.create(["dev", "staging", "prod"], ["compute"])


def _steps_text(job: dict[str, Any]) -> str:
    return "\n".join(str(step.get("run", "")) for step in job["steps"])


class TestToolchain:
    def test_node_npm(self, analysis: Analysis) -> None:
        toolchain = toolchain_for(analysis)
        assert toolchain is not None
        assert toolchain.install == "npm ci"
        assert toolchain.setup[-1]["uses"] == "actions/setup-node@v4"

    def test_python_poetry(self) -> None:
        toolchain = toolchain_for(
            Analysis(project_name="x", tech_stack=("Python",), package_manager="poetry")
        )
        assert toolchain is not None
        assert toolchain.test == "poetry run pytest"

    def test_no_ecosystem(self) -> None:
        assert toolchain_for(Analysis(project_name="x")) is None


class TestBuildWorkflow:
    def test_deploys_are_chained_in_order(
        self, analysis: Analysis, options: GenerationOptions
    ) -> None:
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert list(jobs) == ["build", "image", "deploy-dev", "deploy-staging", "deploy-prod"]
        assert jobs["image"]["needs"] == "build"
        assert jobs["deploy-dev"]["needs"] == ["image"]
        assert jobs["deploy-staging"]["needs"] == ["deploy-dev"]
        assert jobs["deploy-prod"]["needs"] == ["deploy-staging"]

    def test_prod_uses_protected_environment(
        self, analysis: Analysis, options: GenerationOptions
    ) -> None:
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert jobs["deploy-prod"]["environment"] == {"name": "production"}
        assert jobs["deploy-dev"]["environment"] == "dev"

    def test_deploys_only_on_main(self, analysis: Analysis, options: GenerationOptions) -> None:
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert "if" not in jobs["build"]
        assert all("refs/heads/main" in jobs[name]["if"] for name in jobs if name != "build")

    def test_image_tag_deploy_by_default(
        self, analysis: Analysis, options: GenerationOptions
    ) -> None:
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert 'add-tag "$IMAGE:${{ github.sha }}" "$IMAGE:staging"' in _steps_text(
            jobs["deploy-staging"]
        )

    def test_kubernetes_deploy(self, analysis: Analysis, options: GenerationOptions) -> None:
        options = replace(options, families=("kubernetes", "cicd"))
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        run = _steps_text(jobs["deploy-prod"])
        assert "kubectl apply -k infrastructure/kubernetes/overlays/prod" in run
        assert "get-credentials shop-prod --region europe-west1" in run

    def test_terraform_job_gates_first_deploy(
        self, analysis: Analysis, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("terraform", "cicd"))
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert jobs["deploy-dev"]["needs"] == ["image", "terraform"]
        validate = _steps_text(jobs["terraform"])
        assert "terraform -chdir=infrastructure/terraform/environments/prod validate" in validate
        assert "terraform -chdir=infrastructure/terraform/environments/dev apply" in _steps_text(
            jobs["deploy-dev"]
        )

    def test_existing_provisioning_code_adds_terraform_job(
        self, analysis: Analysis, options: GenerationOptions
    ) -> None:
        jobs = build_workflow(
            replace(analysis, has_provisioning_code=True), THREE_ENVS, options
        )["jobs"]
        assert "terraform -chdir=terraform/environments/dev validate" in _steps_text(
            jobs["terraform"]
        )

    def test_image_builds_generated_dockerfile(
        self, analysis: Analysis, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("docker", "cicd"))
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert "docker build -f infrastructure/docker/Dockerfile " in _steps_text(jobs["image"])

    def test_image_builds_project_dockerfile_without_docker_family(
        self, analysis: Analysis, options: GenerationOptions
    ) -> None:
        analysis = replace(analysis, has_container_build=True, infra_files=("Dockerfile",))
        options = replace(options, families=("cicd",))
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert "docker build -f Dockerfile " in _steps_text(jobs["image"])

        options = replace(options, families=("docker", "cicd"))
        jobs = build_workflow(analysis, THREE_ENVS, options)["jobs"]
        assert "docker build -f infrastructure/docker/Dockerfile " in _steps_text(jobs["image"])

    def test_image_name_uses_project(self, analysis: Analysis, options: GenerationOptions) -> None:
        workflow = build_workflow(analysis, THREE_ENVS, options)
        assert workflow["env"] == {"IMAGE": "gcr.io/shop-prod-123/shop"}
        assert workflow["permissions"] == {"contents": "read"}


class TestCicdGenerator:
    def test_workflow_file_parses(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = CicdGenerator().build(analysis, intent, options)
        item = tree.get(WORKFLOW_PATH)
        assert item is not None
        workflow = yaml.safe_load(item.content)
        assert workflow["on"]["push"] == {"branches": ["main"]}
        assert list(workflow["jobs"]) == ["build", "image", "deploy-dev", "deploy-prod"]

    def test_actions_are_pinned(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        options = replace(options, families=("terraform", "cicd"))
        item = CicdGenerator().build(analysis, intent, options).get(WORKFLOW_PATH)
        assert item is not None
        uses = re.findall(r"uses: (\S+)", item.content)
        assert uses
        assert all(re.search(r"@v\d+$", ref) for ref in uses)

    def test_readme_mentions_protection(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        item = CicdGenerator().build(analysis, intent, options).get("cicd/README.md")
        assert item is not None
        assert "`production` environment" in item.content
        assert "dev, prod" in item.content
