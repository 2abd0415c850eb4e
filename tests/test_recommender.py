"""Tests for rigsmith.recommender — HTTP recommendation client."""

from __future__ import annotations

import unittest.mock
from typing import Any

import httpx
import pytest

from rigsmith.recommender import (
    HttpRecommender,
    RecommendationError,
    RecommenderConfig,
    parse_recommender_config,
)


def _response(status: int = 200, payload: Any = None, text: str = "") -> unittest.mock.MagicMock:
    response = unittest.mock.MagicMock()
    response.status_code = status
    response.text = text
    response.json.return_value = payload
    return response


ANTHROPIC = RecommenderConfig(provider="anthropic", model="claude-x", api_key_env="RIGSMITH_TEST_KEY")
OPENAI = RecommenderConfig(provider="openai", model="gpt-x", api_key_env="RIGSMITH_TEST_KEY")
OLLAMA = RecommenderConfig(provider="ollama", model="llama3", base_url="http://gpu-box:11434/")


class TestParseRecommenderConfig:
    def test_anthropic(self) -> None:
        config = parse_recommender_config(
            {"provider": "anthropic", "model": "claude-x", "api_key_env": "KEY", "timeout": 5}
        )
        assert config.provider == "anthropic"
        assert config.api_key_env == "KEY"
        assert config.timeout == 5.0
        assert config.max_tokens == 2048

    def test_ollama_needs_no_key(self) -> None:
        config = parse_recommender_config({"provider": "ollama", "model": "llama3"})
        assert config.api_key_env == ""

    def test_unsupported_provider(self) -> None:
        with pytest.raises(ValueError, match="Unsupported recommender provider"):
            parse_recommender_config({"provider": "gemini", "model": "x", "api_key_env": "K"})

    def test_missing_model(self) -> None:
        with pytest.raises(ValueError, match="model"):
            parse_recommender_config({"provider": "openai", "api_key_env": "K"})

    def test_missing_api_key_env(self) -> None:
        with pytest.raises(ValueError, match="api_key_env"):
            parse_recommender_config({"provider": "openai", "model": "x"})


class TestHttpRecommender:
    def test_anthropic(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RIGSMITH_TEST_KEY", "sk-test")
        reply = _response(payload={"content": [{"type": "text", "text": "plan"}]})
        with unittest.mock.patch("rigsmith.recommender.httpx.post", return_value=reply) as post:
            text = HttpRecommender(ANTHROPIC).recommend("goal?", {"project": "shop"})

        assert text == "plan"
        args, kwargs = post.call_args
        assert args[0] == "https://api.anthropic.com/v1/messages"
        assert kwargs["headers"]["x-api-key"] == "sk-test"
        assert kwargs["json"]["model"] == "claude-x"
        content = kwargs["json"]["messages"][0]["content"]
        assert content.startswith("goal?")
        assert '"project": "shop"' in content

    def test_openai(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RIGSMITH_TEST_KEY", "sk-test")
        reply = _response(payload={"choices": [{"message": {"content": "plan"}}]})
        with unittest.mock.patch("rigsmith.recommender.httpx.post", return_value=reply) as post:
            assert HttpRecommender(OPENAI).recommend("goal?", {}) == "plan"
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-test"

    def test_ollama_uses_base_url(self) -> None:
        reply = _response(payload={"response": "plan"})
        with unittest.mock.patch("rigsmith.recommender.httpx.post", return_value=reply) as post:
            assert HttpRecommender(OLLAMA).recommend("goal?", {}) == "plan"
        assert post.call_args.args[0] == "http://gpu-box:11434/api/generate"
        assert post.call_args.kwargs["json"]["stream"] is False

    def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("RIGSMITH_TEST_KEY", raising=False)
        with pytest.raises(RecommendationError, match="RIGSMITH_TEST_KEY"):
            HttpRecommender(ANTHROPIC).recommend("goal?", {})

    def test_http_error_status(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RIGSMITH_TEST_KEY", "sk-test")
        reply = _response(status=529, text="overloaded")
        with unittest.mock.patch("rigsmith.recommender.httpx.post", return_value=reply):
            with pytest.raises(RecommendationError, match="error 529"):
                HttpRecommender(ANTHROPIC).recommend("goal?", {})

    def test_timeout(self) -> None:
        with unittest.mock.patch(
            "rigsmith.recommender.httpx.post",
            side_effect=httpx.ReadTimeout("slow"),
        ):
            with pytest.raises(RecommendationError, match="timed out"):
                HttpRecommender(OLLAMA).recommend("goal?", {})

    def test_unreachable(self) -> None:
        with unittest.mock.patch(
            "rigsmith.recommender.httpx.post",
            side_effect=httpx.ConnectError("refused"),
        ):
            with pytest.raises(RecommendationError, match="unreachable"):
                HttpRecommender(OLLAMA).recommend("goal?", {})

    def test_invalid_json(self) -> None:
        reply = _response()
        reply.json.side_effect = ValueError("no json")
        with unittest.mock.patch("rigsmith.recommender.httpx.post", return_value=reply):
            with pytest.raises(RecommendationError, match="invalid JSON"):
                HttpRecommender(OLLAMA).recommend("goal?", {})

    def test_empty_reply(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RIGSMITH_TEST_KEY", "sk-test")
        reply = _response(payload={"content": []})
        with unittest.mock.patch("rigsmith.recommender.httpx.post", return_value=reply):
            with pytest.raises(RecommendationError, match="empty response"):
                HttpRecommender(ANTHROPIC).recommend("goal?", {})

    @pytest.mark.parametrize(
        ("config", "payload"),
        [
            (OLLAMA, ["not", "an", "object"]),
            (OLLAMA, {"response": {"text": "plan"}}),
            (ANTHROPIC, {"content": ["plan"]}),
            (ANTHROPIC, {"content": {"text": "plan"}}),
            (OPENAI, {"choices": [["plan"]]}),
            (OPENAI, {"choices": [{"message": "plan"}]}),
        ],
    )
    def test_malformed_body(
        self, monkeypatch: pytest.MonkeyPatch, config: RecommenderConfig, payload: Any
    ) -> None:
        monkeypatch.setenv("RIGSMITH_TEST_KEY", "sk-test")
        reply = _response(payload=payload)
        with unittest.mock.patch("rigsmith.recommender.httpx.post", return_value=reply):
            with pytest.raises(RecommendationError):
                HttpRecommender(config).recommend("goal?", {})

    def test_error_stage(self) -> None:
        assert RecommendationError("x").label() == "interpretation"
