"""Monitoring generator: Prometheus scrape and alert rules, Grafana provisioning."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rigsmith.generators.base import (
    ArtifactGenerator,
    ArtifactTree,
    GenerationOptions,
    app_endpoints,
    app_port,
    dump_yaml,
    register,
    slugify,
)
from rigsmith.generators.kubernetes import plan_units

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.intent.model import Intent

ROOT = "monitoring"

SCRAPE_INTERVAL = "15s"
EVALUATION_INTERVAL = "15s"

# canonical service type -> (exporter job, exporter target)
EXPORTERS: dict[str, tuple[str, str]] = {
    "postgresql": ("postgres-exporter", "postgres-exporter:9187"),
    "mysql": ("mysqld-exporter", "mysqld-exporter:9104"),
    "mongodb": ("mongodb-exporter", "mongodb-exporter:9216"),
    "redis": ("redis-exporter", "redis-exporter:9121"),
    "memcached": ("memcached-exporter", "memcached-exporter:9150"),
    "rabbitmq": ("rabbitmq", "rabbitmq:15692"),
    "kafka": ("kafka-exporter", "kafka-exporter:9308"),
}


# ---------------------------------------------------------------------------
# Prometheus
# ---------------------------------------------------------------------------


def _app_targets(analysis: Analysis) -> list[str]:
    targets = [f"host.docker.internal:{e.port}" for e in app_endpoints(analysis)]
    return targets or [f"host.docker.internal:{app_port(analysis)}"]


def scrape_configs(analysis: Analysis) -> list[dict[str, Any]]:
    """Prometheus jobs: itself, the app endpoints, each unit and data exporters."""
    name = slugify(analysis.project_name)
    configs: list[dict[str, Any]] = [
        {"job_name": "prometheus", "static_configs": [{"targets": ["localhost:9090"]}]},
        {
            "job_name": name,
            "metrics_path": "/metrics",
            "static_configs": [{"targets": _app_targets(analysis), "labels": {"app": name}}],
        },
    ]
    for unit in plan_units(analysis, "local"):
        if not unit.web:
            continue
        configs.append(
            {
                "job_name": f"kubernetes-{unit.name}",
                "kubernetes_sd_configs": [{"role": "endpoints"}],
                "relabel_configs": [
                    {
                        "source_labels": ["__meta_kubernetes_service_name"],
                        "regex": unit.name,
                        "action": "keep",
                    },
                    {
                        "source_labels": ["__meta_kubernetes_namespace"],
                        "target_label": "namespace",
                    },
                ],
            }
        )
    for service in analysis.databases + analysis.caches + analysis.queues:
        exporter = EXPORTERS.get(service.type)
        if exporter is None:
            continue
        job, target = exporter
        configs.append({"job_name": job, "static_configs": [{"targets": [target]}]})
    return configs


def prometheus_config(analysis: Analysis) -> dict[str, Any]:
    return {
        "global": {
            "scrape_interval": SCRAPE_INTERVAL,
            "evaluation_interval": EVALUATION_INTERVAL,
            "external_labels": {"project": slugify(analysis.project_name)},
        },
        "rule_files": ["alerts.yml"],
        "alerting": {"alertmanagers": [{"static_configs": [{"targets": ["alertmanager:9093"]}]}]},
        "scrape_configs": scrape_configs(analysis),
    }


def _alert(name: str, expr: str, duration: str, severity: str, summary: str) -> dict[str, Any]:
    return {
        "alert": name,
        "expr": expr,
        "for": duration,
        "labels": {"severity": severity},
        "annotations": {"summary": summary},
    }


_COMPONENT_ALERTS: dict[str, list[dict[str, Any]]] = {
    "compute": [
        _alert("InstanceDown", "up == 0", "5m", "critical", "{{ $labels.instance }} is down"),
        _alert(
            "HighCpuUsage",
            '100 - (avg by (instance) (rate(node_cpu_seconds_total{mode="idle"}[5m])) * 100) > 80',
            "10m",
            "warning",
            "CPU usage above 80% on {{ $labels.instance }}",
        ),
        _alert(
            "HighMemoryUsage",
            "(1 - node_memory_MemAvailable_bytes / node_memory_MemTotal_bytes) * 100 > 85",
            "10m",
            "warning",
            "Memory usage above 85% on {{ $labels.instance }}",
        ),
    ],
    "storage": [
        _alert(
            "DiskSpaceLow",
            '(node_filesystem_avail_bytes{fstype!="tmpfs"} / node_filesystem_size_bytes) * 100 < 15',
            "15m",
            "warning",
            "Less than 15% disk space left on {{ $labels.instance }}",
        ),
    ],
    "networking": [
        _alert(
            "HighErrorRate",
            'sum(rate(http_requests_total{status=~"5.."}[5m])) '
            "/ sum(rate(http_requests_total[5m])) > 0.05",
            "5m",
            "critical",
            "More than 5% of requests fail",
        ),
        _alert(
            "HighLatency",
            "histogram_quantile(0.95, sum by (le) "
            "(rate(http_request_duration_seconds_bucket[5m]))) > 1",
            "10m",
            "warning",
            "95th percentile latency above 1s",
        ),
    ],
    "monitoring": [
        _alert(
            "PrometheusTargetMissing",
            "up == 0",
            "15m",
            "warning",
            "Scrape target {{ $labels.job }} has been missing for 15 minutes",
        ),
    ],
    "cicd": [],
}

_DATABASE_ALERTS: dict[str, list[dict[str, Any]]] = {
    "postgresql": [
        _alert("PostgresDown", "pg_up == 0", "1m", "critical", "PostgreSQL is down"),
        _alert(
            "PostgresTooManyConnections",
            "sum(pg_stat_activity_count) > 0.8 * max(pg_settings_max_connections)",
            "5m",
            "warning",
            "PostgreSQL connections above 80% of the limit",
        ),
    ],
    "mysql": [
        _alert("MysqlDown", "mysql_up == 0", "1m", "critical", "MySQL is down"),
    ],
    "mongodb": [
        _alert("MongodbDown", "mongodb_up == 0", "1m", "critical", "MongoDB is down"),
    ],
}
_GENERIC_DATABASE_ALERTS = [
    _alert(
        "DatabaseExporterDown",
        'up{job=~".*-exporter"} == 0',
        "5m",
        "critical",
        "Database exporter {{ $labels.job }} is down",
    ),
]


def alert_groups(analysis: Analysis, components: tuple[str, ...]) -> list[dict[str, Any]]:
    """One rule group per selected component that has alerts."""
    groups: list[dict[str, Any]] = []
    for component in components:
        if component == "database":
            rules: list[dict[str, Any]] = []
            for service in analysis.databases:
                rules.extend(_DATABASE_ALERTS.get(service.type, []))
            rules = rules or list(_GENERIC_DATABASE_ALERTS)
        else:
            rules = list(_COMPONENT_ALERTS.get(component, []))
        if rules:
            groups.append({"name": component, "rules": rules})
    return groups


# ---------------------------------------------------------------------------
# Grafana
# ---------------------------------------------------------------------------

_DATASOURCE = {
    "apiVersion": 1,
    "datasources": [
        {
            "name": "Prometheus",
            "type": "prometheus",
            "access": "proxy",
            "url": "http://prometheus:9090",
            "isDefault": True,
        }
    ],
}

_DASHBOARD_PROVIDER = {
    "apiVersion": 1,
    "providers": [
        {
            "name": "rigsmith",
            "folder": "",
            "type": "file",
            "options": {"path": "/var/lib/grafana/dashboards"},
        }
    ],
}


def _panel(panel_id: int, title: str, expr: str, unit: str, x: int, y: int) -> dict[str, Any]:
    return {
        "id": panel_id,
        "title": title,
        "type": "timeseries",
        "datasource": "Prometheus",
        "gridPos": {"h": 8, "w": 12, "x": x, "y": y},
        "fieldConfig": {"defaults": {"unit": unit}, "overrides": []},
        "targets": [{"expr": expr, "refId": "A"}],
    }


def dashboard(analysis: Analysis, components: tuple[str, ...]) -> dict[str, Any]:
    """Overview dashboard with panels for the selected components."""
    name = slugify(analysis.project_name)
    specs: list[tuple[str, str, str]] = [
        ("Targets up", f'sum(up{{job="{name}"}})', "short"),
        ("Request rate", "sum(rate(http_requests_total[5m]))", "reqps"),
    ]
    if "networking" in components:
        specs.append(
            (
                "Error ratio",
                'sum(rate(http_requests_total{status=~"5.."}[5m])) '
                "/ sum(rate(http_requests_total[5m]))",
                "percentunit",
            )
        )
    if "compute" in components:
        specs.append(
            (
                "CPU usage",
                '100 - (avg(rate(node_cpu_seconds_total{mode="idle"}[5m])) * 100)',
                "percent",
            )
        )
        specs.append(
            (
                "Memory usage",
                "(1 - node_memory_MemAvailable_bytes / node_memory_MemTotal_bytes) * 100",
                "percent",
            )
        )
    if "database" in components and "postgresql" in analysis.service_types("database"):
        specs.append(("Database connections", "sum(pg_stat_activity_count)", "short"))

    panels = [
        _panel(index + 1, title, expr, unit, (index % 2) * 12, (index // 2) * 8)
        for index, (title, expr, unit) in enumerate(specs)
    ]
    return {
        "uid": f"{name}-overview"[:40],
        "title": f"{analysis.project_name} overview",
        "tags": ["rigsmith", name],
        "timezone": "browser",
        "schemaVersion": 39,
        "refresh": "30s",
        "time": {"from": "now-6h", "to": "now"},
        "panels": panels,
    }


def _compose_stack() -> dict[str, Any]:
    return {
        "services": {
            "prometheus": {
                "image": "prom/prometheus:v2.53.0",
                "volumes": [
                    "./prometheus/prometheus.yml:/etc/prometheus/prometheus.yml:ro",
                    "./prometheus/alerts.yml:/etc/prometheus/alerts.yml:ro",
                ],
                "ports": ["9090:9090"],
                "extra_hosts": ["host.docker.internal:host-gateway"],
            },
            "alertmanager": {
                "image": "prom/alertmanager:v0.27.0",
                "volumes": ["./alertmanager/alertmanager.yml:/etc/alertmanager/alertmanager.yml:ro"],
                "ports": ["9093:9093"],
            },
            "grafana": {
                "image": "grafana/grafana:11.1.0",
                "environment": {"GF_SECURITY_ADMIN_PASSWORD": "${GRAFANA_ADMIN_PASSWORD:-change-me}"},
                "volumes": [
                    "./grafana/provisioning:/etc/grafana/provisioning:ro",
                    "./grafana/dashboards:/var/lib/grafana/dashboards:ro",
                ],
                "ports": ["3001:3000"],
                "depends_on": ["prometheus"],
            },
        }
    }


_ALERTMANAGER = {
    "route": {
        "receiver": "default",
        "group_by": ["alertname", "job"],
        "group_wait": "30s",
        "group_interval": "5m",
        "repeat_interval": "4h",
    },
    "receivers": [{"name": "default"}],
}


@register
class MonitoringGenerator(ArtifactGenerator):
    """Prometheus, Alertmanager and Grafana configuration."""

    family = "monitoring"
    description = "Prometheus scrape config, alert rules and Grafana dashboards"

    def _yaml(self, title: str, options: GenerationOptions, data: Any) -> str:
        return self.header(title, options) + "\n" + dump_yaml(data)

    def build(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> ArtifactTree:
        tree = self.new_tree()
        components = intent.components
        name = slugify(analysis.project_name)

        tree.add(
            f"{ROOT}/prometheus/prometheus.yml",
            self._yaml("Prometheus", options, prometheus_config(analysis)),
        )
        tree.add(
            f"{ROOT}/prometheus/alerts.yml",
            self._yaml("Alert rules", options, {"groups": alert_groups(analysis, components)}),
        )
        tree.add(
            f"{ROOT}/alertmanager/alertmanager.yml",
            self._yaml("Alertmanager", options, _ALERTMANAGER),
        )
        tree.add(
            f"{ROOT}/grafana/provisioning/datasources/prometheus.yml",
            self._yaml("Grafana datasource", options, _DATASOURCE),
        )
        tree.add(
            f"{ROOT}/grafana/provisioning/dashboards/dashboards.yml",
            self._yaml("Grafana dashboard provider", options, _DASHBOARD_PROVIDER),
        )
        tree.add(
            f"{ROOT}/grafana/dashboards/{name}-overview.json",
            json.dumps(dashboard(analysis, components), indent=2),
        )
        tree.add(
            f"{ROOT}/docker-compose.yml",
            self._yaml("Monitoring stack", options, _compose_stack()),
        )
        return tree
