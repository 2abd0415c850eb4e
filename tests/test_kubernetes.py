"""Tests for rigsmith.generators.kubernetes."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

import yaml

from rigsmith.analysis.model import Analysis, Endpoint
from rigsmith.generators.kubernetes import KubernetesGenerator, plan_units

if TYPE_CHECKING:
    from rigsmith.generators.base import ArtifactTree, GenerationOptions
    from rigsmith.intent.model import Intent


def _load(tree: ArtifactTree, path: str) -> Any:
    item = tree.get(path)
    assert item is not None, path
    return yaml.safe_load(item.content)


def _load_all(tree: ArtifactTree, path: str) -> list[Any]:
    item = tree.get(path)
    assert item is not None, path
    return list(yaml.safe_load_all(item.content))


class TestPlanUnits:
    def test_frontend_backend_and_cache(self, analysis: Analysis) -> None:
        units = plan_units(analysis, "acme")
        assert [u.name for u in units] == ["frontend", "backend", "cache"]
        assert units[0].image == "gcr.io/acme/shop-frontend:latest"
        assert units[1].path == "/api"
        assert units[1].port == 3000
        assert not units[2].web
        assert units[2].image == "redis:7-alpine"

    def test_single_app_without_frameworks(self) -> None:
        units = plan_units(Analysis(project_name="My Tool"), "acme")
        assert [(u.name, u.image, u.port) for u in units] == [
            ("app", "gcr.io/acme/my-tool:latest", 8080)
        ]

    def test_server_only_serves_root(self) -> None:
        units = plan_units(Analysis(project_name="api", tech_stack=("Python", "FastAPI")), "acme")
        assert [(u.name, u.path) for u in units] == [("backend", "/")]

    def test_backend_port_skips_probed_and_data_ports(self, analysis: Analysis) -> None:
        endpoints = (
            Endpoint(port=22, process="sshd", source="probe"),
            Endpoint(port=5432, container_port=5432, source="docker-compose.yml:db"),
            Endpoint(port=8000, container_port=8000, source="docker-compose.yml:web"),
        )
        units = plan_units(replace(analysis, endpoints=endpoints), "acme")
        assert [u.port for u in units if u.name == "backend"] == [8000]


class TestKubernetesGenerator:
    def test_layout(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        assert "kubernetes/base/namespace.yaml" in tree
        assert "kubernetes/base/frontend/ingress.yaml" in tree
        assert "kubernetes/base/backend/hpa.yaml" in tree
        assert "kubernetes/base/cache/deployment.yaml" in tree
        assert "kubernetes/base/cache/hpa.yaml" not in tree
        assert "kubernetes/overlays/dev/kustomization.yaml" in tree
        assert "kubernetes/overlays/prod/kustomization.yaml" in tree

    def test_kustomization_lists_every_resource(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        resources = _load(tree, "kubernetes/base/kustomization.yaml")["resources"]
        base_files = [
            p.removeprefix("kubernetes/base/")
            for p in tree.paths
            if p.startswith("kubernetes/base/") and not p.endswith("kustomization.yaml")
        ]
        assert sorted(resources) == sorted(base_files)

    def test_deployment_is_hardened(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        deployment = _load(tree, "kubernetes/base/backend/deployment.yaml")
        pod = deployment["spec"]["template"]["spec"]
        container = pod["containers"][0]
        assert pod["securityContext"]["runAsNonRoot"] is True
        assert container["securityContext"]["allowPrivilegeEscalation"] is False
        assert container["resources"]["limits"] == {"cpu": "500m", "memory": "512Mi"}
        assert container["image"] == "gcr.io/shop-prod-123/shop-backend:latest"

    def test_configmap_points_at_cache(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        data = _load(tree, "kubernetes/base/backend/configmap.yaml")["data"]
        assert data["CACHE_HOST"] == "cache"
        assert data["CACHE_PORT"] == "6379"
        assert all("SECRET" not in key for key in data)

    def test_network_policies(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        policies = _load_all(tree, "kubernetes/base/network-policies.yaml")
        names = [p["metadata"]["name"] for p in policies]
        assert names == ["default-deny-ingress", "allow-frontend", "allow-backend", "allow-cache"]
        cache_from = policies[-1]["spec"]["ingress"][0]["from"]
        assert {s["podSelector"]["matchLabels"]["app.kubernetes.io/name"] for s in cache_from} == {
            "frontend",
            "backend",
        }

    def test_overlays_scale_per_environment(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        dev = _load(tree, "kubernetes/overlays/dev/kustomization.yaml")
        prod = _load(tree, "kubernetes/overlays/prod/kustomization.yaml")

        assert dev["namespace"] == "shop-dev"
        assert prod["namespace"] == "shop-prod"
        assert {r["name"]: r["count"] for r in dev["replicas"]} == {
            "frontend": 1,
            "backend": 1,
            "cache": 1,
        }
        assert {r["name"]: r["count"] for r in prod["replicas"]}["backend"] == 3

        hpa_patch = next(
            p for p in prod["patches"]
            if p["target"] == {"kind": "HorizontalPodAutoscaler", "name": "backend"}
        )
        ops = {op["path"]: op["value"] for op in yaml.safe_load(hpa_patch["patch"])}
        assert ops == {"/spec/minReplicas": 3, "/spec/maxReplicas": 10}

    def test_top_level_kustomization_lists_every_overlay(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        intent = replace(intent, environments=("dev", "staging", "prod"))
        tree = KubernetesGenerator().build(analysis, intent, options)
        top = _load(tree, "kubernetes/kustomization.yaml")
        assert top["resources"] == ["overlays/dev", "overlays/staging", "overlays/prod"]
        for overlay in top["resources"]:
            assert f"kubernetes/{overlay}/kustomization.yaml" in tree

    def test_readme_lists_units_and_overlays(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        item = tree.get("kubernetes/README.md")
        assert item is not None
        for unit in ("frontend", "backend", "cache"):
            assert f"- **{unit}**:" in item.content
        assert "kubectl apply -k overlays/dev\n" in item.content
        assert "kubectl apply -k overlays/prod\n" in item.content
        assert "namespace `shop-prod`" in item.content

    def test_unknown_environment_gets_overlay(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(
            analysis, replace(intent, environments=("qa",)), options
        )
        overlay = _load(tree, "kubernetes/overlays/qa/kustomization.yaml")
        assert overlay["namespace"] == "shop-qa"

    def test_yaml_has_no_anchors(
        self, analysis: Analysis, intent: Intent, options: GenerationOptions
    ) -> None:
        tree = KubernetesGenerator().build(analysis, intent, options)
        assert all("&id" not in item.content for item in tree)
