"""Terraform generator: shared modules, per-environment roots and imports."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from rigsmith.generators.base import (
    ArtifactGenerator,
    ArtifactTree,
    Document,
    GenerationOptions,
    app_port,
    profile_for,
    register,
)

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.generators.base import EnvironmentProfile
    from rigsmith.intent.model import Intent
    from rigsmith.inventory.resources import CloudResource, ResourceGroup

logger = logging.getLogger(__name__)

ROOT = "terraform"

# Generation order; a module never references one listed after it.
MODULE_ORDER: tuple[str, ...] = ("networking", "compute", "database", "storage", "monitoring")
MODULE_REQUIRES: dict[str, tuple[str, ...]] = {
    "compute": ("networking",),
    "database": ("networking",),
}

DATABASE_VERSIONS = {"postgresql": "POSTGRES_15", "mysql": "MYSQL_8_0"}
DEFAULT_DATABASE_VERSION = "POSTGRES_15"


def resolve_modules(components: tuple[str, ...] | list[str]) -> list[str]:
    """Selected modules plus their requirements, in dependency order."""
    selected = {c for c in components if c in MODULE_ORDER}
    for module in list(selected):
        selected.update(MODULE_REQUIRES.get(module, ()))
    return [m for m in MODULE_ORDER if m in selected]


def database_version(analysis: Analysis) -> str:
    for service in analysis.databases:
        if service.type in DATABASE_VERSIONS:
            return DATABASE_VERSIONS[service.type]
    return DEFAULT_DATABASE_VERSION


def _variable(name: str, description: str, type_: str, default: str | None = None) -> str:
    lines = [
        f'variable "{name}" {{',
        f'  description = "{description}"',
        f"  type        = {type_}",
    ]
    if default is not None:
        lines.append(f"  default     = {default}")
    lines.append("}")
    return "\n".join(lines)


def _output(name: str, value: str, *, description: str = "", sensitive: bool = False) -> str:
    lines = [f'output "{name}" {{']
    if description:
        lines.append(f'  description = "{description}"')
    lines.append(f"  value       = {value}")
    if sensitive:
        lines.append("  sensitive   = true")
    lines.append("}")
    return "\n".join(lines)


def _hcl_bool(value: bool) -> str:
    return "true" if value else "false"


def _aligned(pairs: list[tuple[str, str]]) -> list[str]:
    """Attribute lines with the `=` signs in one column, as `terraform fmt` writes them."""
    width = max(len(key) for key, _ in pairs)
    return [f"{key.ljust(width)} = {value}" for key, value in pairs]


_COMMON_VARIABLES = "\n\n".join(
    [
        _variable("project_id", "GCP project ID", "string"),
        _variable("environment", "Environment name", "string"),
        _variable("region", "GCP region", "string"),
    ]
)


# ---------------------------------------------------------------------------
# Shared modules
# ---------------------------------------------------------------------------

_NETWORKING_MAIN = """\
resource "google_compute_network" "vpc" {
  name                    = "${var.project_id}-${var.environment}-vpc"
  auto_create_subnetworks = false
}

resource "google_compute_subnetwork" "public" {
  name          = "${var.project_id}-${var.environment}-public"
  network       = google_compute_network.vpc.id
  ip_cidr_range = var.public_subnet_cidr
  region        = var.region
}

resource "google_compute_subnetwork" "private" {
  name                     = "${var.project_id}-${var.environment}-private"
  network                  = google_compute_network.vpc.id
  ip_cidr_range            = var.private_subnet_cidr
  region                   = var.region
  private_ip_google_access = true
}

resource "google_compute_global_address" "private_services" {
  name          = "${var.project_id}-${var.environment}-private-services"
  purpose       = "VPC_PEERING"
  address_type  = "INTERNAL"
  prefix_length = 16
  network       = google_compute_network.vpc.id
}

resource "google_service_networking_connection" "private_services" {
  network                 = google_compute_network.vpc.id
  service                 = "servicenetworking.googleapis.com"
  reserved_peering_ranges = [google_compute_global_address.private_services.name]
}

resource "google_compute_firewall" "allow_internal" {
  name    = "${var.project_id}-${var.environment}-allow-internal"
  network = google_compute_network.vpc.name

  allow {
    protocol = "tcp"
    ports    = ["0-65535"]
  }

  allow {
    protocol = "udp"
    ports    = ["0-65535"]
  }

  allow {
    protocol = "icmp"
  }

  source_ranges = [var.vpc_cidr]
}

resource "google_compute_firewall" "allow_http" {
  name    = "${var.project_id}-${var.environment}-allow-http"
  network = google_compute_network.vpc.name

  allow {
    protocol = "tcp"
    ports    = ["80", "443"]
  }

  source_ranges = ["0.0.0.0/0"]
  target_tags   = ["http-server", "https-server"]
}"""

_COMPUTE_MAIN = """\
resource "google_compute_instance_template" "app" {
  name_prefix  = "${var.project_id}-${var.environment}-"
  machine_type = var.instance_type
  region       = var.region

  disk {
    source_image = "debian-cloud/debian-12"
    auto_delete  = true
    boot         = true
  }

  network_interface {
    subnetwork = var.subnet_id
  }

  metadata_startup_script = <<-EOF
    #!/bin/bash
    apt-get update
    apt-get install -y docker.io
    docker pull gcr.io/${var.project_id}/app:${var.environment}
    docker run -d -p 80:${var.app_port} gcr.io/${var.project_id}/app:${var.environment}
  EOF

  tags = ["http-server", "https-server", var.environment]

  lifecycle {
    create_before_destroy = true
  }
}

resource "google_compute_instance_group_manager" "app" {
  name               = "${var.project_id}-${var.environment}-igm"
  base_instance_name = "${var.project_id}-${var.environment}-app"
  zone               = "${var.region}-a"

  version {
    instance_template = google_compute_instance_template.app.id
  }

  target_size = var.enable_autoscaling ? null : var.instance_count

  named_port {
    name = "http"
    port = var.app_port
  }
}

resource "google_compute_autoscaler" "app" {
  count = var.enable_autoscaling ? 1 : 0

  name   = "${var.project_id}-${var.environment}-autoscaler"
  zone   = "${var.region}-a"
  target = google_compute_instance_group_manager.app.id

  autoscaling_policy {
    max_replicas    = var.max_instances
    min_replicas    = var.min_instances
    cooldown_period = 60

    cpu_utilization {
      target = 0.7
    }
  }
}

resource "google_compute_global_address" "app" {
  name = "${var.project_id}-${var.environment}-ip"
}

resource "google_compute_health_check" "app" {
  name               = "${var.project_id}-${var.environment}-health-check"
  check_interval_sec = 5
  timeout_sec        = 5

  tcp_health_check {
    port = var.app_port
  }
}

resource "google_compute_backend_service" "app" {
  name          = "${var.project_id}-${var.environment}-backend"
  port_name     = "http"
  health_checks = [google_compute_health_check.app.id]

  backend {
    group = google_compute_instance_group_manager.app.instance_group
  }
}

resource "google_compute_url_map" "app" {
  name            = "${var.project_id}-${var.environment}-urlmap"
  default_service = google_compute_backend_service.app.id
}

resource "google_compute_target_http_proxy" "app" {
  name    = "${var.project_id}-${var.environment}-proxy"
  url_map = google_compute_url_map.app.id
}

resource "google_compute_global_forwarding_rule" "app" {
  name       = "${var.project_id}-${var.environment}-forwarding-rule"
  target     = google_compute_target_http_proxy.app.id
  port_range = "80"
  ip_address = google_compute_global_address.app.address
}"""

_DATABASE_MAIN = """\
resource "google_sql_database_instance" "main" {
  name             = "${var.project_id}-${var.environment}-db"
  database_version = var.database_version
  region           = var.region

  settings {
    tier              = var.tier
    availability_type = var.availability_type

    backup_configuration {
      enabled                        = var.backup_enabled
      start_time                     = "03:00"
      point_in_time_recovery_enabled = var.availability_type == "REGIONAL"

      backup_retention_settings {
        retained_backups = var.retention_days
      }
    }

    ip_configuration {
      ipv4_enabled    = false
      private_network = var.vpc_id
    }
  }

  deletion_protection = var.deletion_protection
}

resource "google_sql_database" "app" {
  name     = var.database_name
  instance = google_sql_database_instance.main.name
}

resource "random_password" "db_password" {
  length  = 24
  special = true
}

resource "google_sql_user" "app" {
  name     = var.database_user
  instance = google_sql_database_instance.main.name
  password = random_password.db_password.result
}

resource "google_secret_manager_secret" "db_password" {
  secret_id = "${var.project_id}-${var.environment}-db-password"

  replication {
    auto {}
  }
}

resource "google_secret_manager_secret_version" "db_password" {
  secret      = google_secret_manager_secret.db_password.id
  secret_data = random_password.db_password.result
}"""

_STORAGE_MAIN = """\
resource "google_storage_bucket" "main" {
  name          = "${var.project_id}-${var.environment}-storage"
  location      = var.storage_class == "MULTI_REGIONAL" ? "US" : var.region
  storage_class = var.storage_class

  versioning {
    enabled = var.versioning_enabled
  }

  lifecycle_rule {
    condition {
      age = var.retention_days
    }
    action {
      type = "Delete"
    }
  }

  uniform_bucket_level_access = true
  public_access_prevention    = "enforced"
}"""

_MONITORING_MAIN = """\
resource "google_storage_bucket" "logs" {
  name          = "${var.project_id}-${var.environment}-logs"
  location      = var.region
  storage_class = "NEARLINE"

  lifecycle_rule {
    condition {
      age = var.retention_days
    }
    action {
      type = "Delete"
    }
  }

  uniform_bucket_level_access = true
}

resource "google_logging_project_sink" "main" {
  name                   = "${var.project_id}-${var.environment}-sink"
  destination            = "storage.googleapis.com/${google_storage_bucket.logs.name}"
  filter                 = var.environment == "prod" ? "" : "severity >= WARNING"
  unique_writer_identity = true
}

resource "google_monitoring_notification_channel" "email" {
  for_each = toset(var.alert_emails)

  display_name = "${var.environment} alerts ${each.value}"
  type         = "email"
  labels = {
    email_address = each.value
  }
}

locals {
  channels = [for channel in google_monitoring_notification_channel.email : channel.id]
}

resource "google_monitoring_alert_policy" "high_cpu" {
  count = var.enable_alerting && var.instance_group != "" ? 1 : 0

  display_name = "${var.project_id}-${var.environment}-high-cpu"
  combiner     = "OR"

  conditions {
    display_name = "CPU usage above 80%"

    condition_threshold {
      filter          = "metric.type=\\"compute.googleapis.com/instance/cpu/utilization\\" resource.type=\\"gce_instance\\""
      duration        = "300s"
      comparison      = "COMPARISON_GT"
      threshold_value = 0.8

      aggregations {
        alignment_period   = "60s"
        per_series_aligner = "ALIGN_MEAN"
      }
    }
  }

  notification_channels = local.channels
}

resource "google_monitoring_alert_policy" "database_cpu" {
  count = var.enable_alerting && var.database_instance != "" ? 1 : 0

  display_name = "${var.project_id}-${var.environment}-database-cpu"
  combiner     = "OR"

  conditions {
    display_name = "Database CPU above 80%"

    condition_threshold {
      filter          = "metric.type=\\"cloudsql.googleapis.com/database/cpu/utilization\\" resource.type=\\"cloudsql_database\\""
      duration        = "300s"
      comparison      = "COMPARISON_GT"
      threshold_value = 0.8

      aggregations {
        alignment_period   = "60s"
        per_series_aligner = "ALIGN_MEAN"
      }
    }
  }

  notification_channels = local.channels
}

resource "google_monitoring_alert_policy" "bucket_size" {
  count = var.enable_alerting && var.bucket_name != "" ? 1 : 0

  display_name = "${var.project_id}-${var.environment}-bucket-size"
  combiner     = "OR"

  conditions {
    display_name = "Bucket above 100 GiB"

    condition_threshold {
      filter          = "metric.type=\\"storage.googleapis.com/storage/total_bytes\\" resource.type=\\"gcs_bucket\\""
      duration        = "3600s"
      comparison      = "COMPARISON_GT"
      threshold_value = 107374182400
    }
  }

  notification_channels = local.channels
}"""

_MODULE_MAIN = {
    "networking": _NETWORKING_MAIN,
    "compute": _COMPUTE_MAIN,
    "database": _DATABASE_MAIN,
    "storage": _STORAGE_MAIN,
    "monitoring": _MONITORING_MAIN,
}

_MODULE_VARIABLES: dict[str, list[str]] = {
    "networking": [
        _variable("vpc_cidr", "CIDR block for the VPC", "string"),
        _variable("public_subnet_cidr", "CIDR block for the public subnet", "string"),
        _variable("private_subnet_cidr", "CIDR block for the private subnet", "string"),
    ],
    "compute": [
        _variable("instance_type", "Machine type", "string"),
        _variable("instance_count", "Number of instances when autoscaling is off", "number"),
        _variable("enable_autoscaling", "Enable autoscaling", "bool", "false"),
        _variable("min_instances", "Minimum number of instances", "number", "1"),
        _variable("max_instances", "Maximum number of instances", "number", "1"),
        _variable("app_port", "Port the application listens on", "number", "8080"),
        _variable("subnet_id", "Subnetwork the instances join", "string"),
    ],
    "database": [
        _variable("database_version", "Cloud SQL database version", "string", '"POSTGRES_15"'),
        _variable("database_name", "Database name", "string", '"app"'),
        _variable("database_user", "Database user", "string", '"appuser"'),
        _variable("tier", "Cloud SQL machine tier", "string", '"db-f1-micro"'),
        _variable("availability_type", "ZONAL or REGIONAL", "string", '"ZONAL"'),
        _variable("backup_enabled", "Enable automated backups", "bool", "false"),
        _variable("retention_days", "Backups to retain", "number", "7"),
        _variable("deletion_protection", "Protect the instance from deletion", "bool", "false"),
        _variable("vpc_id", "VPC for the private IP", "string"),
    ],
    "storage": [
        _variable("storage_class", "Bucket storage class", "string", '"REGIONAL"'),
        _variable("retention_days", "Days before objects are deleted", "number", "30"),
        _variable("versioning_enabled", "Enable object versioning", "bool", "false"),
    ],
    "monitoring": [
        _variable("retention_days", "Days to keep exported logs", "number", "30"),
        _variable("enable_alerting", "Create alert policies", "bool", "false"),
        _variable("alert_emails", "Email addresses notified by alerts", "list(string)", "[]"),
        _variable("instance_group", "Instance group to watch", "string", '""'),
        _variable("database_instance", "Cloud SQL instance to watch", "string", '""'),
        _variable("bucket_name", "Bucket to watch", "string", '""'),
    ],
}

_MODULE_OUTPUTS: dict[str, list[str]] = {
    "networking": [
        _output("vpc_id", "google_compute_network.vpc.id"),
        _output("vpc_name", "google_compute_network.vpc.name"),
        _output("public_subnet_id", "google_compute_subnetwork.public.id"),
        _output("private_subnet_id", "google_compute_subnetwork.private.id"),
        _output(
            "private_services_connection",
            "google_service_networking_connection.private_services.id",
        ),
    ],
    "compute": [
        _output("load_balancer_ip", "google_compute_global_address.app.address"),
        _output("instance_group", "google_compute_instance_group_manager.app.instance_group"),
    ],
    "database": [
        _output(
            "connection_name",
            "google_sql_database_instance.main.connection_name",
            sensitive=True,
        ),
        _output("instance_name", "google_sql_database_instance.main.name"),
        _output("private_ip", "google_sql_database_instance.main.private_ip_address"),
        _output("password_secret_id", "google_secret_manager_secret.db_password.secret_id"),
    ],
    "storage": [
        _output("bucket_name", "google_storage_bucket.main.name"),
        _output("bucket_url", "google_storage_bucket.main.url"),
    ],
    "monitoring": [
        _output("log_bucket", "google_storage_bucket.logs.name"),
        _output("log_sink_writer", "google_logging_project_sink.main.writer_identity"),
    ],
}


def _module_files(module: str, header: str) -> dict[str, str]:
    main = Document().section("header", header).section("resources", _MODULE_MAIN[module])
    variables = "\n\n".join([_COMMON_VARIABLES, *_MODULE_VARIABLES[module]])
    outputs = "\n\n".join(_MODULE_OUTPUTS[module])
    return {
        "main.tf": main.render(),
        "variables.tf": variables + "\n",
        "outputs.tf": outputs + "\n",
    }


# ---------------------------------------------------------------------------
# Environment roots
# ---------------------------------------------------------------------------


def _module_block(module: str, body: list[str]) -> str:
    lines = [f'module "{module}" {{', f'  source = "../../modules/{module}"', ""]
    lines.extend(
        [
            "  project_id  = var.project_id",
            "  environment = var.environment",
            "  region      = var.region",
        ]
    )
    if body:
        lines.append("")
        lines.extend(f"  {line}" if line else "" for line in body)
    lines.append("}")
    return "\n".join(lines)


def _module_arguments(
    module: str,
    profile: EnvironmentProfile,
    modules: list[str],
) -> list[str]:
    if module == "networking":
        return [
            "vpc_cidr            = var.vpc_cidr",
            "public_subnet_cidr  = var.public_subnet_cidr",
            "private_subnet_cidr = var.private_subnet_cidr",
        ]
    if module == "compute":
        return [
            "instance_type      = var.instance_type",
            "instance_count     = var.instance_count",
            f"enable_autoscaling = {_hcl_bool(profile.autoscaling)}",
            f"min_instances      = {profile.min_units}",
            f"max_instances      = {profile.max_units}",
            "app_port           = var.app_port",
            "",
            "subnet_id = module.networking.private_subnet_id",
        ]
    if module == "database":
        return [
            "database_version    = var.database_version",
            f'tier                = "{profile.db_tier}"',
            f'availability_type   = "{profile.db_availability}"',
            f"backup_enabled      = {_hcl_bool(profile.db_backups)}",
            f"retention_days      = {profile.retention_days}",
            f"deletion_protection = {_hcl_bool(profile.deletion_protection)}",
            "",
            "vpc_id = module.networking.vpc_id",
            "",
            "depends_on = [module.networking]",
        ]
    if module == "storage":
        return [
            f'storage_class      = "{profile.storage_class}"',
            f"retention_days     = {profile.retention_days}",
            f"versioning_enabled = {_hcl_bool(profile.name == 'prod')}",
        ]
    # monitoring wires to every other selected module
    pairs = [
        ("retention_days", str(profile.retention_days)),
        ("enable_alerting", _hcl_bool(profile.name != "dev")),
        ("alert_emails", "var.alert_emails"),
    ]
    if "compute" in modules:
        pairs.append(("instance_group", "module.compute.instance_group"))
    if "database" in modules:
        pairs.append(("database_instance", "module.database.instance_name"))
    if "storage" in modules:
        pairs.append(("bucket_name", "module.storage.bucket_name"))
    return _aligned(pairs)


def _env_main(
    env: str,
    modules: list[str],
    options: GenerationOptions,
    header: str,
) -> str:
    profile = profile_for(env)
    project = options.context.project_label
    doc = Document()
    doc.section("header", header)
    doc.section(
        "terraform",
        "terraform {\n"
        '  required_version = ">= 1.5"\n'
        "\n"
        "  required_providers {\n"
        "    google = {\n"
        '      source  = "hashicorp/google"\n'
        '      version = "~> 5.0"\n'
        "    }\n"
        "    random = {\n"
        '      source  = "hashicorp/random"\n'
        '      version = "~> 3.6"\n'
        "    }\n"
        "  }\n"
        "\n"
        '  backend "gcs" {\n'
        f'    bucket = "{project}-terraform-state"\n'
        f'    prefix = "env/{env}"\n'
        "  }\n"
        "}",
    )
    doc.section(
        "provider",
        'provider "google" {\n  project = var.project_id\n  region  = var.region\n}',
    )
    for module in modules:
        doc.section(
            f"module.{module}",
            _module_block(module, _module_arguments(module, profile, modules)),
        )
    return doc.render()


def _env_variables(env: str, modules: list[str], analysis: Analysis, options: GenerationOptions) -> str:
    profile = profile_for(env)
    context = options.context
    blocks = [
        _variable("project_id", "GCP project ID", "string", f'"{context.project_label}"'),
        _variable("region", "GCP region", "string", f'"{context.region}"'),
        _variable("environment", "Environment name", "string", f'"{env}"'),
    ]
    if "networking" in modules:
        blocks += [
            _variable("vpc_cidr", "CIDR block for the VPC", "string", f'"{profile.vpc_cidr}"'),
            _variable(
                "public_subnet_cidr",
                "CIDR block for the public subnet",
                "string",
                f'"{profile.public_subnet_cidr}"',
            ),
            _variable(
                "private_subnet_cidr",
                "CIDR block for the private subnet",
                "string",
                f'"{profile.private_subnet_cidr}"',
            ),
        ]
    if "compute" in modules:
        blocks += [
            _variable("instance_type", "Machine type", "string", f'"{profile.instance_type}"'),
            _variable("instance_count", "Number of instances", "number", str(profile.units)),
            _variable("app_port", "Port the application listens on", "number", str(app_port(analysis))),
        ]
    if "database" in modules:
        blocks.append(
            _variable(
                "database_version",
                "Cloud SQL database version",
                "string",
                f'"{database_version(analysis)}"',
            )
        )
    if "monitoring" in modules:
        blocks.append(
            _variable("alert_emails", "Email addresses notified by alerts", "list(string)", "[]")
        )
    return "\n\n".join(blocks) + "\n"


def _env_outputs(modules: list[str]) -> str:
    blocks: list[str] = []
    if "networking" in modules:
        blocks.append(_output("vpc_name", "module.networking.vpc_name", description="VPC name"))
    if "compute" in modules:
        blocks.append(
            _output(
                "load_balancer_ip",
                "module.compute.load_balancer_ip",
                description="Public IP of the application load balancer",
            )
        )
    if "database" in modules:
        blocks.append(
            _output(
                "database_connection_name",
                "module.database.connection_name",
                description="Cloud SQL connection name",
                sensitive=True,
            )
        )
    if "storage" in modules:
        blocks.append(
            _output("storage_bucket_url", "module.storage.bucket_url", description="Bucket URL")
        )
    if "monitoring" in modules:
        blocks.append(
            _output("log_bucket", "module.monitoring.log_bucket", description="Log export bucket")
        )
    blocks.append(_output("environment", "var.environment", description="Environment name"))
    return "\n\n".join(blocks) + "\n"


def _env_tfvars(env: str, modules: list[str], analysis: Analysis, options: GenerationOptions) -> str:
    profile = profile_for(env)
    lines = [
        f"# {env.upper()} environment. Copy to terraform.tfvars and adjust.",
        "",
        f'project_id = "{options.context.project_label}"',
        f'region     = "{options.context.region}"',
    ]
    if "compute" in modules:
        lines += [
            "",
            f'instance_type  = "{profile.instance_type}"',
            f"instance_count = {profile.units}",
            f"app_port       = {app_port(analysis)}",
        ]
    if "database" in modules:
        lines += ["", f'database_version = "{database_version(analysis)}"']
    if "monitoring" in modules:
        lines += ["", 'alert_emails = ["ops@example.com"]']
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Imports of existing resources
# ---------------------------------------------------------------------------

_IDENTIFIER_RE = re.compile(r"[^a-z0-9_]+")


def _identifier(name: str, used: set[str]) -> str:
    base = _IDENTIFIER_RE.sub("_", name.lower()).strip("_") or "resource"
    if base[0].isdigit():
        base = f"r_{base}"
    candidate = base
    n = 2
    while candidate in used:
        candidate = f"{base}_{n}"
        n += 1
    used.add(candidate)
    return candidate


def _import_target(category: str, item: CloudResource, project: str) -> tuple[str, str, list[str]]:
    """``(resource type, import id, skeleton arguments)`` for one resource."""
    if category == "instances":
        return (
            "google_compute_instance",
            f"projects/{project}/zones/{item.location}/instances/{item.name}",
            [
                f'name         = "{item.name}"',
                f'zone         = "{item.location}"',
                f'machine_type = "{item.type}"',
            ],
        )
    if category == "storage":
        return (
            "google_storage_bucket",
            item.name,
            [f'name     = "{item.name}"', f'location = "{item.location}"'],
        )
    if category == "networks":
        return (
            "google_compute_network",
            f"projects/{project}/global/networks/{item.name}",
            [f'name = "{item.name}"'],
        )
    if category == "databases":
        return (
            "google_sql_database_instance",
            f"projects/{project}/instances/{item.name}",
            [
                f'name             = "{item.name}"',
                f'region           = "{item.location}"',
                f'database_version = "{item.type}"',
            ],
        )
    if not item.location or item.location == "global":
        return (
            "google_compute_global_forwarding_rule",
            f"projects/{project}/global/forwardingRules/{item.name}",
            [f'name = "{item.name}"'],
        )
    return (
        "google_compute_forwarding_rule",
        f"projects/{project}/regions/{item.location}/forwardingRules/{item.name}",
        [f'name   = "{item.name}"', f'region = "{item.location}"'],
    )


def _import_file(group: ResourceGroup, project: str, header: str) -> str:
    doc = Document().section("header", header)
    used: set[str] = set()
    for item in group.items:
        resource_type, import_id, args = _import_target(group.category, item, project)
        label = _identifier(item.name, used)
        body = "\n".join(f"  {a}" for a in args)
        doc.section(
            f"{resource_type}.{label}",
            f"import {{\n  to = {resource_type}.{label}\n  id = \"{import_id}\"\n}}\n\n"
            f'resource "{resource_type}" "{label}" {{\n{body}\n\n'
            "  # Complete with: terraform plan -generate-config-out=generated.tf\n"
            "  lifecycle {\n    prevent_destroy = true\n  }\n}",
        )
    return doc.render()


def _imports_readme(groups: list[ResourceGroup], options: GenerationOptions) -> str:
    rows = "\n".join(f"| {g.category} | {g.count} | `{g.category}.tf` |" for g in groups)
    return (
        "# Existing resource imports\n"
        "\n"
        f"<!-- Generated at: {options.generated_at} -->\n"
        "\n"
        f"Import blocks for resources already running in `{options.context.project_label}`.\n"
        "\n"
        "| Category | Resources | File |\n"
        "|----------|-----------|------|\n"
        f"{rows}\n"
        "\n"
        "## Usage\n"
        "\n"
        "1. Copy the files for the resources you want to manage into an environment root.\n"
        "2. Run `terraform plan -generate-config-out=generated.tf` to fill in arguments.\n"
        "3. Review the plan; it must show only imports, no replacements.\n"
        "4. Run `terraform apply`.\n"
    )


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


@register
class TerraformGenerator(ArtifactGenerator):
    """Shared modules plus one root per environment."""

    family = "terraform"
    description = "Terraform modules and per-environment roots"

    def build(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> ArtifactTree:
        tree = self.new_tree()
        modules = resolve_modules(intent.components)
        emitted: set[str] = set()

        for env in intent.environments:
            for module in modules:
                if module in emitted:
                    continue
                header = self.header(f"{module} module", options)
                for name, content in _module_files(module, header).items():
                    tree.add(f"{ROOT}/modules/{module}/{name}", content)
                emitted.add(module)

            env_dir = f"{ROOT}/environments/{env}"
            header = self.header(f"Terraform root for the {env} environment", options)
            tree.add(f"{env_dir}/main.tf", _env_main(env, modules, options, header))
            tree.add(f"{env_dir}/variables.tf", _env_variables(env, modules, analysis, options))
            tree.add(f"{env_dir}/outputs.tf", _env_outputs(modules))
            tree.add(
                f"{env_dir}/terraform.tfvars.example",
                _env_tfvars(env, modules, analysis, options),
            )

        if options.import_existing:
            self._add_imports(tree, analysis, options)
        return tree

    def _add_imports(self, tree: ArtifactTree, analysis: Analysis, options: GenerationOptions) -> None:
        if analysis.infrastructure is None:
            logger.info("No existing resources to import")
            return
        groups = [g for g in analysis.infrastructure.groups if g.ok and g.items]
        project = options.context.project_label
        for group in groups:
            header = self.header(f"Imports for existing {group.category}", options)
            tree.add(f"{ROOT}/imports/{group.category}.tf", _import_file(group, project, header))
        if groups:
            tree.add(f"{ROOT}/imports/README.md", _imports_readme(groups, options))
