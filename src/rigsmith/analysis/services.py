"""Data-service detection from dependencies, compose images and env files."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from rigsmith.analysis.manifests import read_compose, read_text
from rigsmith.analysis.model import ServiceEvidence
from rigsmith.classify import ENV_KEY_RULES, ENV_KEY_TYPES, RuleTable, rule

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

# Read in this order; later files never reorder keys already seen.
ENV_FILES: tuple[str, ...] = (
    ".env",
    ".env.local",
    ".env.development",
    ".env.development.local",
    ".env.staging",
    ".env.production",
    ".env.production.local",
    ".env.example",
)

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")

# category -> canonical type -> package names (lower-case, exact match)
DEPENDENCY_SERVICES: dict[str, dict[str, tuple[str, ...]]] = {
    "database": {
        "postgresql": (
            "pg",
            "pg-promise",
            "postgres",
            "psycopg",
            "psycopg2",
            "psycopg2-binary",
            "asyncpg",
            "github.com/lib/pq",
            "github.com/jackc/pgx/v5",
            "postgresql",
            "tokio-postgres",
            "pg_query",
        ),
        "mysql": (
            "mysql",
            "mysql2",
            "mysqlclient",
            "pymysql",
            "aiomysql",
            "mysql-connector-python",
            "github.com/go-sql-driver/mysql",
            "mysql-connector-java",
        ),
        "mongodb": (
            "mongodb",
            "mongoose",
            "pymongo",
            "motor",
            "mongoengine",
            "go.mongodb.org/mongo-driver",
            "mongoid",
        ),
        "sqlite": ("sqlite3", "better-sqlite3", "aiosqlite"),
    },
    "cache": {
        "redis": (
            "redis",
            "ioredis",
            "redis-py",
            "aioredis",
            "django-redis",
            "github.com/go-redis/redis/v8",
            "github.com/redis/go-redis/v9",
            "spring-boot-starter-data-redis",
        ),
        "memcached": ("memcached", "pymemcache", "python-memcached", "pylibmc", "memjs"),
    },
    "queue": {
        "rabbitmq": ("amqplib", "amqp", "pika", "aio-pika", "kombu", "spring-boot-starter-amqp"),
        "kafka": ("kafkajs", "kafka-python", "confluent-kafka", "aiokafka", "spring-kafka"),
        "sqs": ("@aws-sdk/client-sqs", "sqs-consumer"),
        "bull": ("bull", "bullmq"),
        "celery": ("celery",),
    },
    "storage": {
        "s3": ("aws-sdk", "@aws-sdk/client-s3", "boto3", "s3fs", "minio"),
        "gcs": ("@google-cloud/storage", "google-cloud-storage", "gcsfs"),
        "azure-blob": ("@azure/storage-blob", "azure-storage-blob"),
    },
}

# Compose service images that reveal a data service.
COMPOSE_IMAGE_TYPES = RuleTable(
    name="compose-images",
    rules=(
        rule(r"(?:^|/)postgres", "postgresql"),
        rule(r"(?:^|/)(?:mysql|mariadb)", "mysql"),
        rule(r"(?:^|/)mongo", "mongodb"),
        rule(r"(?:^|/)redis", "redis"),
        rule(r"(?:^|/)memcached", "memcached"),
        rule(r"(?:^|/)rabbitmq", "rabbitmq"),
        rule(r"kafka", "kafka"),
        rule(r"(?:^|/)minio", "s3"),
    ),
)

TYPE_CATEGORIES: dict[str, str] = {
    service_type: category
    for category, types in DEPENDENCY_SERVICES.items()
    for service_type in types
}

# Env keys that name a category but not a concrete service.
GENERIC_TYPES: dict[str, str] = {
    "database": "database",
    "cache": "cache",
    "queue": "queue",
    "storage": "object-storage",
}


def read_env_keys(project_root: Path) -> list[str]:
    """Collect env-var keys from the known env files.

    Each line is split on its first ``=``; only the key is kept.  Values are
    never stored.
    """
    keys: list[str] = []
    seen: set[str] = set()
    for name in ENV_FILES:
        for line in read_text(project_root / name).splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key = line.split("=", 1)[0].strip()
            if key.startswith("export "):
                key = key[len("export ") :].strip()
            if _ENV_KEY_RE.match(key) and key not in seen:
                seen.add(key)
                keys.append(key)
    return keys


class ServiceCollector:
    """Accumulates evidence, keeping the first evidence per canonical type."""

    def __init__(self) -> None:
        self._items: list[ServiceEvidence] = []

    def add(self, category: str, service_type: str, source: str) -> bool:
        if any(item.type == service_type for item in self._items):
            return False
        self._items.append(ServiceEvidence(category, service_type, source))
        return True

    def has_category(self, category: str) -> bool:
        return any(item.category == category for item in self._items)

    def by_category(self, category: str) -> tuple[ServiceEvidence, ...]:
        return tuple(item for item in self._items if item.category == category)


def collect_from_dependencies(collector: ServiceCollector, dependencies: Iterable[str]) -> None:
    lookup: dict[str, tuple[str, str]] = {}
    for category, types in DEPENDENCY_SERVICES.items():
        for service_type, names in types.items():
            for name in names:
                lookup.setdefault(name, (category, service_type))
    for dep in dependencies:
        hit = lookup.get(dep.lower())
        if hit is not None:
            collector.add(hit[0], hit[1], dep)


def collect_from_compose(collector: ServiceCollector, project_root: Path) -> None:
    compose = read_compose(project_root)
    if compose is None:
        return
    filename, services = compose
    for service_name, body in services.items():
        if not isinstance(body, dict):
            continue
        image = body.get("image")
        if not isinstance(image, str):
            continue
        service_type = COMPOSE_IMAGE_TYPES.classify(image)
        if service_type is None:
            continue
        category = TYPE_CATEGORIES[service_type]
        collector.add(category, service_type, f"{filename}:services.{service_name}")


def collect_from_env_keys(collector: ServiceCollector, keys: Iterable[str]) -> None:
    """Classify env keys; a key that names no concrete service only counts
    when its category has no evidence yet."""
    for key in keys:
        category = ENV_KEY_RULES.classify(key)
        if category is None:
            continue
        service_type = ENV_KEY_TYPES.classify(key)
        if service_type is not None and TYPE_CATEGORIES.get(service_type) == category:
            collector.add(category, service_type, key)
        elif not collector.has_category(category):
            collector.add(category, GENERIC_TYPES[category], key)
