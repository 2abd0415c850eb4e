"""Tests for rigsmith.classify — ordered keyword rule tables."""

from __future__ import annotations

import pytest

from rigsmith.classify import (
    COMPONENT_RULES,
    ENV_KEY_RULES,
    ENV_KEY_TYPES,
    ENVIRONMENT_RULES,
    FAMILY_RULES,
    RuleTable,
    is_secret_key,
    rule,
)


class TestRuleTable:
    def test_first_match_wins(self) -> None:
        table = RuleTable("t", (rule("a", "first"), rule("ab", "second")))
        assert table.classify("ab") == "first"

    def test_default_when_nothing_matches(self) -> None:
        table = RuleTable("t", (rule("x", "x"),), default="fallback")
        assert table.classify("nothing") == "fallback"

    def test_classify_all_in_rule_order(self) -> None:
        table = RuleTable("t", (rule("b", "b"), rule("a", "a"), rule("c", "b")))
        assert table.classify_all("abc") == ["b", "a"]

    def test_classify_all_ignores_default(self) -> None:
        table = RuleTable("t", (rule("x", "x"),), default="fallback")
        assert table.classify_all("nothing") == []

    def test_rules_are_case_insensitive_by_default(self) -> None:
        assert rule("docker", "docker").matches("DOCKER")


class TestEnvKeyRules:
    @pytest.mark.parametrize(
        ("key", "category"),
        [
            ("DATABASE_URL", "database"),
            ("POSTGRES_HOST", "database"),
            ("APP_DB_NAME", "database"),
            ("REDIS_URL", "cache"),
            ("REDIS_DB", "cache"),
            ("CELERY_BROKER_URL", "queue"),
            ("S3_BUCKET", "storage"),
            ("DBHOST", "database"),
            ("APP_DBNAME", "database"),
            ("CACHEHOST", "cache"),
            ("PORT", None),
            ("JWT_SECRET", None),
        ],
    )
    def test_category(self, key: str, category: str | None) -> None:
        assert ENV_KEY_RULES.classify(key) == category

    @pytest.mark.parametrize(
        ("key", "category"),
        [
            ("database_url", "database"),
            ("storage_bucket", "storage"),
            ("Redis_Url", "cache"),
        ],
    )
    def test_any_case_matches(self, key: str, category: str) -> None:
        assert ENV_KEY_RULES.classify(key) == category

    def test_concrete_type(self) -> None:
        assert ENV_KEY_TYPES.classify("PG_HOST") == "postgresql"
        assert ENV_KEY_TYPES.classify("MONGO_URI") == "mongodb"
        assert ENV_KEY_TYPES.classify("DATABASE_URL") is None
        assert ENV_KEY_TYPES.classify("postgres_host") == "postgresql"

    def test_secret_keys(self) -> None:
        assert is_secret_key("JWT_SECRET")
        assert is_secret_key("STRIPE_API_KEY")
        assert is_secret_key("db_password")
        assert not is_secret_key("PORT")


class TestGoalRules:
    def test_environments_in_canonical_order(self) -> None:
        assert ENVIRONMENT_RULES.classify_all("production and staging") == ["staging", "prod"]

    def test_environment_aliases(self) -> None:
        assert ENVIRONMENT_RULES.classify_all("a development box") == ["dev"]

    def test_components(self) -> None:
        found = COMPONENT_RULES.classify_all("a postgres database with alerting and a vpc")
        assert found == ["networking", "database", "monitoring"]

    def test_family_default(self) -> None:
        assert FAMILY_RULES.classify("make it good") == "terraform"

    def test_family_first_match(self) -> None:
        assert FAMILY_RULES.classify("kubernetes cluster managed with terraform") == "kubernetes"

    @pytest.mark.parametrize(
        ("goal", "family"),
        [
            ("write a Dockerfile", "docker"),
            ("github actions pipeline", "cicd"),
            ("prometheus and grafana", "monitoring"),
            ("OPA policies", "security"),
            ("everything please", "all"),
        ],
    )
    def test_family(self, goal: str, family: str) -> None:
        assert FAMILY_RULES.classify(goal) == family
