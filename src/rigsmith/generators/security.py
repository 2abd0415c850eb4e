"""Security generator: OPA policies, scanner config, network policies and RBAC."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rigsmith.analysis.stack import primary_ecosystem
from rigsmith.classify import SECRET_KEY_RE
from rigsmith.generators.base import (
    ArtifactGenerator,
    ArtifactTree,
    Document,
    GenerationOptions,
    dump_yaml,
    register,
    slugify,
    yaml_documents,
)
from rigsmith.generators.kubernetes import plan_units

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.intent.model import Intent

ROOT = "security"

MAX_CPU_MILLICORES = 4000
MAX_MEMORY_MI = 4096

_WORKLOAD_KINDS = '{"Deployment", "StatefulSet", "DaemonSet", "ReplicaSet", "Job"}'

_POD_SPEC_HELPERS = f"""\
pod_spec := input.spec if input.kind == "Pod"

pod_spec := input.spec.template.spec if input.kind in {_WORKLOAD_KINDS}"""


# ---------------------------------------------------------------------------
# Rego policies
# ---------------------------------------------------------------------------


def container_policy(read_only_root: bool) -> str:
    """Container hardening rules.

    The read-only root filesystem rule is left out when some workload
    needs a writable root.
    """
    doc = Document()
    doc.section("package", "package container.security\n\nimport rego.v1")
    doc.section("helpers", _POD_SPEC_HELPERS)
    doc.section(
        "run-as-root",
        """\
deny contains msg if {
	pod_spec.securityContext.runAsUser == 0
	msg := "Pods must not run as root"
}

deny contains msg if {
	not pod_spec.securityContext.runAsNonRoot
	msg := "Pods must set securityContext.runAsNonRoot"
}""",
    )
    doc.section(
        "privileged",
        """\
deny contains msg if {
	some container in pod_spec.containers
	container.securityContext.privileged == true
	msg := sprintf("Container %s must not be privileged", [container.name])
}

deny contains msg if {
	some container in pod_spec.containers
	container.securityContext.allowPrivilegeEscalation != false
	msg := sprintf("Container %s must set allowPrivilegeEscalation to false", [container.name])
}""",
    )
    doc.section(
        "read-only-root",
        """\
deny contains msg if {
	some container in pod_spec.containers
	not container.securityContext.readOnlyRootFilesystem
	msg := sprintf("Container %s must use a read-only root filesystem", [container.name])
}""",
        enabled=read_only_root,
    )
    doc.section(
        "host-namespaces",
        """\
deny contains msg if {
	pod_spec.hostNetwork == true
	msg := "Pods must not use hostNetwork"
}

deny contains msg if {
	pod_spec.hostPID == true
	msg := "Pods must not use hostPID"
}""",
    )
    return doc.render()


def resource_limits_policy() -> str:
    return "\n\n".join(
        [
            "package resource.limits\n\nimport rego.v1",
            _POD_SPEC_HELPERS,
            """\
deny contains msg if {
	some container in pod_spec.containers
	not container.resources.limits.cpu
	msg := sprintf("Container %s must set a CPU limit", [container.name])
}

deny contains msg if {
	some container in pod_spec.containers
	not container.resources.limits.memory
	msg := sprintf("Container %s must set a memory limit", [container.name])
}""",
            f"""\
deny contains msg if {{
	some container in pod_spec.containers
	millicores(container.resources.limits.cpu) > {MAX_CPU_MILLICORES}
	msg := sprintf("Container %s CPU limit exceeds {MAX_CPU_MILLICORES}m", [container.name])
}}

deny contains msg if {{
	some container in pod_spec.containers
	mebibytes(container.resources.limits.memory) > {MAX_MEMORY_MI}
	msg := sprintf("Container %s memory limit exceeds {MAX_MEMORY_MI}Mi", [container.name])
}}""",
            """\
millicores(value) := to_number(trim_suffix(value, "m")) if endswith(value, "m")

millicores(value) := to_number(value) * 1000 if not endswith(value, "m")

mebibytes(value) := to_number(trim_suffix(value, "Gi")) * 1024 if endswith(value, "Gi")

mebibytes(value) := to_number(trim_suffix(value, "Mi")) if endswith(value, "Mi")""",
        ]
    ) + "\n"


def data_protection_policy(service_types: list[str]) -> str:
    patterns = SECRET_KEY_RE.pattern
    services = ", ".join(sorted(set(service_types)))
    return "\n\n".join(
        [
            f"# Data services in use: {services}",
            "package data.protection\n\nimport rego.v1",
            _POD_SPEC_HELPERS,
            f"""\
sensitive(name) if regex.match(`(?i)({patterns})`, name)

deny contains msg if {{
	some container in pod_spec.containers
	some env in container.env
	sensitive(env.name)
	env.value
	msg := sprintf("Container %s sets %s inline; use a secretKeyRef", [container.name, env.name])
}}

deny contains msg if {{
	input.kind == "ConfigMap"
	some key, _ in input.data
	sensitive(key)
	msg := sprintf("ConfigMap %s holds sensitive key %s", [input.metadata.name, key])
}}""",
        ]
    ) + "\n"


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

_SKIP_DIRS: dict[str, list[str]] = {
    "Node.js": ["node_modules"],
    "Python": [".venv", "venv"],
    "Java": ["target", "build"],
    "Go": ["vendor"],
    "Rust": ["target"],
    "Ruby": ["vendor/bundle"],
    "PHP": ["vendor"],
}


def trivy_config(analysis: Analysis) -> dict[str, Any]:
    ecosystem = primary_ecosystem(analysis.tech_stack) or ""
    return {
        "format": "table",
        "exit-code": 1,
        "severity": ["HIGH", "CRITICAL"],
        "scan": {
            "scanners": ["vuln", "secret", "misconfig"],
            "skip-dirs": [".git", *_SKIP_DIRS.get(ecosystem, [])],
        },
        "vulnerability": {"ignore-unfixed": True},
        "timeout": "5m",
    }


_HADOLINT = {
    "failure-threshold": "warning",
    "ignored": ["DL3008", "DL3018"],
    "trustedRegistries": ["docker.io", "gcr.io"],
}


# ---------------------------------------------------------------------------
# Kubernetes objects
# ---------------------------------------------------------------------------


def network_policies(namespace: str) -> list[dict[str, Any]]:
    """Default-deny for both directions plus DNS egress."""
    return [
        {
            "apiVersion": "networking.k8s.io/v1",
            "kind": "NetworkPolicy",
            "metadata": {"name": "default-deny-all", "namespace": namespace},
            "spec": {"podSelector": {}, "policyTypes": ["Ingress", "Egress"]},
        },
        {
            "apiVersion": "networking.k8s.io/v1",
            "kind": "NetworkPolicy",
            "metadata": {"name": "allow-dns", "namespace": namespace},
            "spec": {
                "podSelector": {},
                "policyTypes": ["Egress"],
                "egress": [
                    {
                        "ports": [
                            {"protocol": "UDP", "port": 53},
                            {"protocol": "TCP", "port": 53},
                        ]
                    }
                ],
            },
        },
    ]


def _role(name: str, namespace: str, rules: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "Role",
        "metadata": {"name": name, "namespace": namespace},
        "rules": rules,
    }


def _binding(name: str, namespace: str, subject: dict[str, Any]) -> dict[str, Any]:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding",
        "metadata": {"name": f"{name}-binding", "namespace": namespace},
        "subjects": [subject],
        "roleRef": {"kind": "Role", "name": name, "apiGroup": "rbac.authorization.k8s.io"},
    }


_READ = ["get", "list", "watch"]
_WRITE = ["get", "list", "watch", "create", "update", "patch", "delete"]


def rbac(namespace: str, env: str) -> list[dict[str, Any]]:
    """Service accounts and roles for one environment namespace.

    Developers get read access everywhere and may edit ConfigMaps and exec
    into pods outside prod.
    """
    developer_rules: list[dict[str, Any]] = [
        {"apiGroups": [""], "resources": ["pods", "pods/log", "services", "endpoints"], "verbs": _READ},
        {"apiGroups": ["apps"], "resources": ["deployments", "replicasets"], "verbs": _READ},
    ]
    if env != "prod":
        developer_rules += [
            {"apiGroups": [""], "resources": ["pods/exec"], "verbs": ["create"]},
            {"apiGroups": [""], "resources": ["configmaps"], "verbs": _WRITE},
        ]
    deployer_rules = [
        {"apiGroups": ["", "apps"], "resources": ["deployments", "services", "configmaps"], "verbs": _WRITE},
        {"apiGroups": ["networking.k8s.io"], "resources": ["ingresses", "networkpolicies"], "verbs": _WRITE},
        {"apiGroups": ["autoscaling"], "resources": ["horizontalpodautoscalers"], "verbs": _WRITE},
    ]
    return [
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"name": "app", "namespace": namespace},
            "automountServiceAccountToken": False,
        },
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"name": "deployer", "namespace": namespace},
        },
        _role("developer", namespace, developer_rules),
        _binding(
            "developer",
            namespace,
            {"kind": "Group", "name": "developers", "apiGroup": "rbac.authorization.k8s.io"},
        ),
        _role("deployer", namespace, deployer_rules),
        _binding(
            "deployer",
            namespace,
            {"kind": "ServiceAccount", "name": "deployer", "namespace": namespace},
        ),
    ]


def monitoring_rbac(part_of: str) -> list[dict[str, Any]]:
    """Cluster-wide read access for Prometheus service discovery."""
    return [
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRole",
            "metadata": {"name": f"{part_of}-prometheus"},
            "rules": [
                {"apiGroups": [""], "resources": ["services", "endpoints", "pods"], "verbs": _READ},
                {"nonResourceURLs": ["/metrics"], "verbs": ["get"]},
            ],
        },
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRoleBinding",
            "metadata": {"name": f"{part_of}-prometheus"},
            "subjects": [{"kind": "ServiceAccount", "name": "prometheus", "namespace": "monitoring"}],
            "roleRef": {
                "kind": "ClusterRole",
                "name": f"{part_of}-prometheus",
                "apiGroup": "rbac.authorization.k8s.io",
            },
        },
    ]


@register
class SecurityGenerator(ArtifactGenerator):
    """Policy-as-code and cluster hardening."""

    family = "security"
    description = "OPA policies, Trivy config, network policies and RBAC"

    def build(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> ArtifactTree:
        tree = self.new_tree()
        part_of = slugify(analysis.project_name)
        units = plan_units(analysis, options.context.project_label)

        policies = f"{ROOT}/policies"
        read_only_root = all(unit.web for unit in units)
        tree.add(
            f"{policies}/container-security.rego",
            self.header("Container hardening", options) + "\n\n" + container_policy(read_only_root),
        )
        tree.add(
            f"{policies}/resource-limits.rego",
            self.header("Resource limits", options) + "\n\n" + resource_limits_policy(),
        )
        if analysis.services:
            types = [service.type for service in analysis.services]
            tree.add(
                f"{policies}/data-protection.rego",
                self.header("Data protection", options) + "\n\n" + data_protection_policy(types),
            )

        tree.add(
            f"{ROOT}/scanning/trivy.yaml",
            self.header("Trivy", options) + "\n" + dump_yaml(trivy_config(analysis)),
        )
        families = options.families or ()
        if analysis.has_container_build or "docker" in families:
            tree.add(
                f"{ROOT}/scanning/hadolint.yaml",
                self.header("Hadolint", options) + "\n" + dump_yaml(_HADOLINT),
            )

        for env in intent.environments:
            namespace = f"{part_of}-{env}"
            tree.add(
                f"{ROOT}/network-policies/{env}.yaml",
                self.header(f"Default-deny network policies for {env}", options)
                + "\n"
                + yaml_documents(*network_policies(namespace)),
            )
            tree.add(
                f"{ROOT}/rbac/{env}.yaml",
                self.header(f"RBAC for {env}", options) + "\n" + yaml_documents(*rbac(namespace, env)),
            )
        if "monitoring" in intent.components:
            tree.add(
                f"{ROOT}/rbac/monitoring.yaml",
                self.header("Prometheus discovery RBAC", options)
                + "\n"
                + yaml_documents(*monitoring_rbac(part_of)),
            )
        return tree
