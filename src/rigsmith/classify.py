"""Ordered keyword rule tables.

A rule table is a tuple of ``(pattern, category)`` rules evaluated top-down.
For single-label questions the first matching rule wins; for multi-label
questions every matching category is returned once, in rule order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class KeywordRule:
    """Maps a text pattern to a category."""

    pattern: re.Pattern[str]
    category: str

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


@dataclass(frozen=True)
class RuleTable:
    """A named, ordered set of keyword rules."""

    name: str
    rules: tuple[KeywordRule, ...]
    default: str | None = None

    def classify(self, text: str) -> str | None:
        """Return the category of the first matching rule, else ``default``."""
        for rule in self.rules:
            if rule.matches(text):
                return rule.category
        return self.default

    def classify_all(self, text: str) -> list[str]:
        """Return every matching category once, in rule order.

        ``default`` is not applied; an empty list means nothing matched.
        """
        found: list[str] = []
        for rule in self.rules:
            if rule.category not in found and rule.matches(text):
                found.append(rule.category)
        return found


def rule(pattern: str, category: str, *, flags: int = re.IGNORECASE) -> KeywordRule:
    """Shorthand for building a :class:`KeywordRule` from a regex string."""
    return KeywordRule(re.compile(pattern, flags), category)


# ---------------------------------------------------------------------------
# Environment-variable key classification
# ---------------------------------------------------------------------------

# Plain substring matches, any case. Cache, queue and storage come before
# database so that keys such as REDIS_DB or CELERY_BROKER_DB land in the
# more specific category.
ENV_KEY_RULES = RuleTable(
    name="env-keys",
    rules=(
        rule(r"REDIS|CACHE|MEMCACHE", "cache"),
        rule(r"QUEUE|AMQP|RABBIT|KAFKA|BROKER", "queue"),
        rule(r"S3|STORAGE|BUCKET|BLOB", "storage"),
        rule(r"DATABASE|DB|POSTGRES|MYSQL|MONGO", "database"),
    ),
)

# Canonical service type hinted by the key name itself.
ENV_KEY_TYPES = RuleTable(
    name="env-key-types",
    rules=(
        rule(r"POSTGRES|(?:^|_)PG(?:_|$)", "postgresql"),
        rule(r"MYSQL|MARIADB", "mysql"),
        rule(r"MONGO", "mongodb"),
        rule(r"REDIS", "redis"),
        rule(r"MEMCACHE", "memcached"),
        rule(r"RABBIT|AMQP", "rabbitmq"),
        rule(r"KAFKA", "kafka"),
        rule(r"(?:^|_)SQS(?:_|$)", "sqs"),
        rule(r"(?:^|_)S3(?:_|$)", "s3"),
        rule(r"(?:^|_)GCS(?:_|$)", "gcs"),
        rule(r"AZURE|BLOB", "azure-blob"),
    ),
)

# Keys whose values are never surfaced or written anywhere.
SECRET_KEY_RE = re.compile(r"PASSWORD|PASSWD|SECRET|TOKEN|KEY|CREDENTIAL|PRIVATE|AUTH", re.IGNORECASE)


def is_secret_key(key: str) -> bool:
    """True for env keys that look like they hold secrets."""
    return SECRET_KEY_RE.search(key) is not None


# ---------------------------------------------------------------------------
# Goal text classification
# ---------------------------------------------------------------------------

ENVIRONMENT_RULES = RuleTable(
    name="environments",
    rules=(
        rule(r"\bdev(?:elopment)?\b", "dev"),
        rule(r"\bstag(?:e|ing)\b", "staging"),
        rule(r"\bprod(?:uction)?\b", "prod"),
    ),
)

COMPONENT_RULES = RuleTable(
    name="components",
    rules=(
        rule(r"\bcompute\b|\bservers?\b|\binstances?\b|\bvms?\b|autoscal", "compute"),
        rule(r"\bstorage\b|\bbuckets?\b|\bobject store\b|\bs3\b|\bgcs\b", "storage"),
        rule(r"\bnetwork(?:ing|s)?\b|\bvpc\b|\bsubnets?\b|\bfirewall", "networking"),
        rule(r"\bdatabases?\b|\bdb\b|\bsql\b|postgres|mysql|\bmongo", "database"),
        rule(r"\bmonitor(?:ing)?\b|\blogging\b|\balert(?:s|ing)?\b|\bmetrics\b", "monitoring"),
        rule(r"\bci\b|\bcd\b|ci/cd|\bpipelines?\b|github actions|\bdeploy(?:ment)? automation", "cicd"),
    ),
)

FAMILY_RULES = RuleTable(
    name="artifact-family",
    rules=(
        rule(r"\bkubernetes\b|\bk8s\b|\bhelm\b|\bkustomize\b", "kubernetes"),
        rule(r"\bdocker(?:file)?\b|\bcontainer image|\bcompose\b", "docker"),
        rule(r"ci/cd|\bpipelines?\b|github actions|gitlab", "cicd"),
        rule(r"\bprometheus\b|\bgrafana\b|\bobservability\b", "monitoring"),
        rule(r"\bpolic(?:y|ies)\b|\bopa\b|\brego\b|\bcompliance\b|\brbac\b", "security"),
        rule(r"\beverything\b|\bfull[- ]stack\b|\bcomplete stack\b|\bmixed\b", "all"),
        rule(r"\bterraform\b|\biac\b|infrastructure as code", "terraform"),
    ),
    default="terraform",
)
