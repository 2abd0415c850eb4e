"""Kubernetes generator: kustomize base per unit plus per-environment overlays."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rigsmith.analysis.stack import SERVER_FRAMEWORKS, UI_FRAMEWORKS
from rigsmith.generators.base import (
    PROVENANCE_MARKER,
    ArtifactGenerator,
    ArtifactTree,
    GenerationOptions,
    app_port,
    dump_yaml,
    profile_for,
    register,
    slugify,
    yaml_documents,
)

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.intent.model import Intent

ROOT = "kubernetes"

HPA_MIN_REPLICAS = 2
HPA_MAX_REPLICAS = 10
HPA_CPU_TARGET = 70
HPA_MEMORY_TARGET = 80

_CACHE_IMAGES = {
    "redis": ("redis:7-alpine", 6379),
    "memcached": ("memcached:1.6-alpine", 11211),
}


@dataclass(frozen=True)
class Unit:
    """One deployable workload."""

    name: str
    image: str
    port: int
    web: bool  # gets an Ingress and a HorizontalPodAutoscaler
    path: str = "/"


def plan_units(analysis: Analysis, project: str) -> list[Unit]:
    """Workloads implied by the detected stack; a single ``app`` otherwise."""
    name = slugify(analysis.project_name)
    registry = f"gcr.io/{project}/{name}"
    stack = set(analysis.tech_stack)
    has_ui = bool(stack & UI_FRAMEWORKS)
    has_server = bool(stack & SERVER_FRAMEWORKS)

    units: list[Unit] = []
    if has_ui:
        units.append(Unit("frontend", f"{registry}-frontend:latest", 3000, web=True))
    if has_server:
        path = "/api" if has_ui else "/"
        units.append(Unit("backend", f"{registry}-backend:latest", app_port(analysis), True, path))
    if not units:
        units.append(Unit("app", f"{registry}:latest", app_port(analysis), web=True))
    for cache in analysis.caches:
        if cache.type in _CACHE_IMAGES:
            image, port = _CACHE_IMAGES[cache.type]
            units.append(Unit("cache", image, port, web=False))
            break
    return units


def _labels(unit: Unit, part_of: str) -> dict[str, str]:
    return {
        "app.kubernetes.io/name": unit.name,
        "app.kubernetes.io/part-of": part_of,
    }


def _deployment(unit: Unit, part_of: str) -> dict[str, Any]:
    container: dict[str, Any] = {
        "name": unit.name,
        "image": unit.image,
        "ports": [{"name": "http" if unit.web else "tcp", "containerPort": unit.port}],
        "envFrom": [{"configMapRef": {"name": f"{unit.name}-config"}}],
        "resources": {
            "requests": {"cpu": "100m", "memory": "128Mi"},
            "limits": {"cpu": "500m", "memory": "512Mi"},
        },
        "readinessProbe": {
            "tcpSocket": {"port": unit.port},
            "initialDelaySeconds": 5,
            "periodSeconds": 10,
        },
        "livenessProbe": {
            "tcpSocket": {"port": unit.port},
            "initialDelaySeconds": 15,
            "periodSeconds": 20,
        },
        "securityContext": {
            "allowPrivilegeEscalation": False,
            "readOnlyRootFilesystem": unit.web,
            "capabilities": {"drop": ["ALL"]},
        },
    }
    if unit.web:
        container["envFrom"].append(
            {"secretRef": {"name": f"{unit.name}-secrets", "optional": True}}
        )
        container["volumeMounts"] = [{"name": "tmp", "mountPath": "/tmp"}]  # noqa: S108

    pod_spec: dict[str, Any] = {
        "securityContext": {
            "runAsNonRoot": True,
            "runAsUser": 1000 if unit.web else 999,
            "fsGroup": 1000 if unit.web else 999,
        },
        "containers": [container],
    }
    if unit.web:
        pod_spec["volumes"] = [{"name": "tmp", "emptyDir": {}}]

    labels = _labels(unit, part_of)
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": unit.name, "labels": labels},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app.kubernetes.io/name": unit.name}},
            "template": {"metadata": {"labels": labels}, "spec": pod_spec},
        },
    }


def _service(unit: Unit, part_of: str) -> dict[str, Any]:
    port = 80 if unit.web else unit.port
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": unit.name, "labels": _labels(unit, part_of)},
        "spec": {
            "type": "ClusterIP",
            "selector": {"app.kubernetes.io/name": unit.name},
            "ports": [{"name": "http" if unit.web else "tcp", "port": port, "targetPort": unit.port}],
        },
    }


def _configmap(unit: Unit, units: list[Unit], part_of: str) -> dict[str, Any]:
    data = {"PORT": str(unit.port)}
    if unit.web:
        data["LOG_LEVEL"] = "info"
        cache = next((u for u in units if u.name == "cache"), None)
        if cache is not None:
            data["CACHE_HOST"] = "cache"
            data["CACHE_PORT"] = str(cache.port)
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": f"{unit.name}-config", "labels": _labels(unit, part_of)},
        "data": data,
    }


def _ingress(unit: Unit, part_of: str) -> dict[str, Any]:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": unit.name,
            "labels": _labels(unit, part_of),
            "annotations": {"nginx.ingress.kubernetes.io/ssl-redirect": "true"},
        },
        "spec": {
            "ingressClassName": "nginx",
            "rules": [
                {
                    "host": f"{part_of}.example.com",
                    "http": {
                        "paths": [
                            {
                                "path": unit.path,
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {"name": unit.name, "port": {"name": "http"}}
                                },
                            }
                        ]
                    },
                }
            ],
        },
    }


def _hpa(unit: Unit, part_of: str) -> dict[str, Any]:
    def metric(resource: str, target: int) -> dict[str, Any]:
        return {
            "type": "Resource",
            "resource": {
                "name": resource,
                "target": {"type": "Utilization", "averageUtilization": target},
            },
        }

    return {
        "apiVersion": "autoscaling/v2",
        "kind": "HorizontalPodAutoscaler",
        "metadata": {"name": unit.name, "labels": _labels(unit, part_of)},
        "spec": {
            "scaleTargetRef": {"apiVersion": "apps/v1", "kind": "Deployment", "name": unit.name},
            "minReplicas": HPA_MIN_REPLICAS,
            "maxReplicas": HPA_MAX_REPLICAS,
            "metrics": [metric("cpu", HPA_CPU_TARGET), metric("memory", HPA_MEMORY_TARGET)],
        },
    }


def _namespace(part_of: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": part_of, "labels": {"app.kubernetes.io/part-of": part_of}},
    }


def _network_policies(units: list[Unit]) -> list[dict[str, Any]]:
    policies: list[dict[str, Any]] = [
        {
            "apiVersion": "networking.k8s.io/v1",
            "kind": "NetworkPolicy",
            "metadata": {"name": "default-deny-ingress"},
            "spec": {"podSelector": {}, "policyTypes": ["Ingress"]},
        }
    ]
    for unit in units:
        if unit.web:
            sources: list[dict[str, Any]] = [
                {
                    "namespaceSelector": {
                        "matchLabels": {"kubernetes.io/metadata.name": "ingress-nginx"}
                    }
                }
            ]
        else:
            sources = [
                {"podSelector": {"matchLabels": {"app.kubernetes.io/name": u.name}}}
                for u in units
                if u.web
            ]
        policies.append(
            {
                "apiVersion": "networking.k8s.io/v1",
                "kind": "NetworkPolicy",
                "metadata": {"name": f"allow-{unit.name}"},
                "spec": {
                    "podSelector": {"matchLabels": {"app.kubernetes.io/name": unit.name}},
                    "policyTypes": ["Ingress"],
                    "ingress": [{"from": sources, "ports": [{"port": unit.port}]}],
                },
            }
        )
    return policies


def _unit_manifest(kind: str, unit: Unit, units: list[Unit], part_of: str) -> dict[str, Any]:
    if kind == "deployment":
        return _deployment(unit, part_of)
    if kind == "service":
        return _service(unit, part_of)
    if kind == "configmap":
        return _configmap(unit, units, part_of)
    if kind == "ingress":
        return _ingress(unit, part_of)
    return _hpa(unit, part_of)


def _unit_files(unit: Unit) -> list[str]:
    files = ["deployment.yaml", "service.yaml", "configmap.yaml"]
    if unit.web:
        files += ["ingress.yaml", "hpa.yaml"]
    return files


def _readme(
    analysis: Analysis,
    units: list[Unit],
    environments: tuple[str, ...],
    options: GenerationOptions,
) -> str:
    lines = [
        f"# Kubernetes manifests for {analysis.project_name}",
        "",
        f"<!-- {PROVENANCE_MARKER} {options.generated_at} -->",
        "",
        "## Units",
        "",
    ]
    for unit in units:
        exposure = f"ingress `{unit.path}`, autoscaled" if unit.web else "internal only"
        lines.append(f"- **{unit.name}**: `{unit.image}` on port {unit.port} ({exposure})")
    lines += ["", "## Overlays", ""]
    name = slugify(analysis.project_name)
    lines += [f"- `overlays/{env}`: namespace `{name}-{env}`" for env in environments]
    lines += ["", "## Deploy", "", "```bash"]
    lines += [f"kubectl apply -k overlays/{env}" for env in environments]
    lines += ["```", "", "`kubectl apply -k .` applies every overlay at once."]
    return "\n".join(lines) + "\n"


@register
class KubernetesGenerator(ArtifactGenerator):
    """Kustomize base plus overlays."""

    family = "kubernetes"
    description = "Kubernetes manifests with kustomize overlays"

    def _yaml(self, title: str, options: GenerationOptions, *docs: Any) -> str:
        return self.header(title, options) + "\n" + yaml_documents(*docs)

    def build(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> ArtifactTree:
        tree = self.new_tree()
        part_of = slugify(analysis.project_name)
        units = plan_units(analysis, options.context.project_label)
        base = f"{ROOT}/base"

        tree.add(f"{base}/namespace.yaml", self._yaml("Namespace", options, _namespace(part_of)))
        tree.add(
            f"{base}/network-policies.yaml",
            self._yaml("Network policies", options, *_network_policies(units)),
        )

        resources = ["namespace.yaml", "network-policies.yaml"]
        for unit in units:
            for filename in _unit_files(unit):
                kind = filename.removesuffix(".yaml")
                manifest = _unit_manifest(kind, unit, units, part_of)
                tree.add(
                    f"{base}/{unit.name}/{filename}",
                    self._yaml(f"{unit.name} {kind}", options, manifest),
                )
                resources.append(f"{unit.name}/{filename}")

        tree.add(
            f"{base}/kustomization.yaml",
            dump_yaml(
                {
                    "apiVersion": "kustomize.config.k8s.io/v1beta1",
                    "kind": "Kustomization",
                    "labels": [
                        {
                            "pairs": {"app.kubernetes.io/part-of": part_of},
                            "includeSelectors": False,
                        }
                    ],
                    "resources": resources,
                }
            ),
        )

        for env in intent.environments:
            tree.add(
                f"{ROOT}/overlays/{env}/kustomization.yaml",
                dump_yaml(self._overlay(env, units, part_of)),
            )

        # every overlay sets its own namespace, so they build side by side
        overlays = [f"overlays/{env}" for env in intent.environments]
        tree.add(
            f"{ROOT}/kustomization.yaml",
            self._yaml(
                "All environments",
                options,
                {
                    "apiVersion": "kustomize.config.k8s.io/v1beta1",
                    "kind": "Kustomization",
                    "resources": overlays,
                },
            ),
        )
        tree.add(f"{ROOT}/README.md", _readme(analysis, units, intent.environments, options))
        return tree

    def _overlay(self, env: str, units: list[Unit], part_of: str) -> dict[str, Any]:
        profile = profile_for(env)
        overlay: dict[str, Any] = {
            "apiVersion": "kustomize.config.k8s.io/v1beta1",
            "kind": "Kustomization",
            "namespace": f"{part_of}-{env}",
            "resources": ["../../base"],
            "labels": [{"pairs": {"environment": env}, "includeSelectors": False}],
            "replicas": [
                {"name": u.name, "count": profile.units if u.web else 1} for u in units
            ],
        }
        web_units = [u for u in units if u.web]
        if web_units:
            max_replicas = profile.max_units if profile.autoscaling else max(profile.units * 2, 2)
            overlay["patches"] = [
                {
                    "target": {"kind": "HorizontalPodAutoscaler", "name": u.name},
                    "patch": dump_yaml(
                        [
                            {"op": "replace", "path": "/spec/minReplicas", "value": profile.units},
                            {"op": "replace", "path": "/spec/maxReplicas", "value": max_replicas},
                        ]
                    ),
                }
                for u in web_units
            ] + [
                {
                    "target": {"kind": "ConfigMap", "name": f"{u.name}-config"},
                    "patch": dump_yaml([{"op": "add", "path": "/data/APP_ENV", "value": env}]),
                }
                for u in web_units
            ]
        return overlay
