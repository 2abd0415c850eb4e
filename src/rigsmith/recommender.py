"""Recommendation service client: one ``recommend(prompt, context)`` call."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from rigsmith.errors import RigsmithError

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are an infrastructure architect assistant. "
    "You read a short description of a software project and an operator's goal, "
    "and you answer with the structured plan that was asked for. "
    "When a JSON object is requested, return it inside a ```json fenced block."
)

_PROVIDERS = ("anthropic", "openai", "ollama")

DEFAULT_OLLAMA_HOST = "http://localhost:11434"


@dataclass(frozen=True)
class RecommenderConfig:
    """Recommendation provider configuration."""

    provider: str  # "anthropic", "openai" or "ollama"
    model: str
    api_key_env: str = ""
    max_tokens: int = 2048
    timeout: float = 30.0
    base_url: str = ""


class RecommendationError(RigsmithError):
    """Raised when the recommendation service call fails."""

    stage = "interpretation"


class Recommender(Protocol):
    """Anything that can answer a prompt with text."""

    def recommend(self, prompt: str, context: dict[str, Any]) -> str: ...


def parse_recommender_config(raw: dict[str, Any]) -> RecommenderConfig:
    """Parse and validate the ``recommender`` section of config.yml.

    Raises
    ------
    ValueError
        If required fields are missing or the provider is unsupported.
    """
    provider = raw.get("provider", "")
    if provider not in _PROVIDERS:
        msg = f"Unsupported recommender provider: {provider!r}. Use one of {', '.join(_PROVIDERS)}."
        raise ValueError(msg)

    model = raw.get("model", "")
    if not model:
        msg = "Recommender config requires 'model' field."
        raise ValueError(msg)

    api_key_env = raw.get("api_key_env", "")
    if provider != "ollama" and not api_key_env:
        msg = "Recommender config requires 'api_key_env' field."
        raise ValueError(msg)

    return RecommenderConfig(
        provider=provider,
        model=model,
        api_key_env=api_key_env,
        max_tokens=int(raw.get("max_tokens", 2048)),
        timeout=float(raw.get("timeout", 30.0)),
        base_url=str(raw.get("base_url", "")),
    )


def _get_api_key(config: RecommenderConfig) -> str:
    """Resolve API key from environment variable.

    Raises
    ------
    RecommendationError
        If the environment variable is not set.
    """
    key = os.environ.get(config.api_key_env, "")
    if not key:
        msg = f"API key not found. Set environment variable: {config.api_key_env}"
        raise RecommendationError(msg)
    return key


def _render_prompt(prompt: str, context: dict[str, Any]) -> str:
    if not context:
        return prompt
    return f"{prompt}\n\nContext (JSON):\n{json.dumps(context, indent=2, sort_keys=True)}"


def _post(
    url: str, *, headers: dict[str, str], body: dict[str, Any], timeout: float
) -> dict[str, Any]:
    try:
        response = httpx.post(url, headers=headers, json=body, timeout=timeout)
    except httpx.TimeoutException as exc:
        msg = f"Recommendation service timed out after {timeout:.0f}s"
        raise RecommendationError(msg) from exc
    except httpx.HTTPError as exc:
        msg = f"Recommendation service unreachable: {exc}"
        raise RecommendationError(msg) from exc

    if response.status_code != 200:
        msg = f"Recommendation service error {response.status_code}: {response.text}"
        raise RecommendationError(msg)

    try:
        data = response.json()
    except ValueError as exc:
        msg = "Recommendation service returned invalid JSON."
        raise RecommendationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Recommendation service returned {type(data).__name__}, expected an object."
        raise RecommendationError(msg)
    return data


def _first_object(items: Any, provider: str) -> dict[str, Any]:
    """First element of a reply list, which must be a JSON object."""
    if not isinstance(items, list) or not items:
        msg = f"{provider} returned empty response."
        raise RecommendationError(msg)
    if not isinstance(items[0], dict):
        msg = f"{provider} returned a malformed response."
        raise RecommendationError(msg)
    return items[0]


def _call_anthropic(config: RecommenderConfig, prompt: str) -> str:
    """Call Anthropic Messages API."""
    data = _post(
        config.base_url or "https://api.anthropic.com/v1/messages",
        headers={
            "x-api-key": _get_api_key(config),
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        },
        body={
            "model": config.model,
            "max_tokens": config.max_tokens,
            "system": _SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        },
        timeout=config.timeout,
    )
    block = _first_object(data.get("content"), "Anthropic API")
    return str(block.get("text", ""))


def _call_openai(config: RecommenderConfig, prompt: str) -> str:
    """Call OpenAI Chat Completions API."""
    data = _post(
        config.base_url or "https://api.openai.com/v1/chat/completions",
        headers={
            "Authorization": f"Bearer {_get_api_key(config)}",
            "Content-Type": "application/json",
        },
        body={
            "model": config.model,
            "max_tokens": config.max_tokens,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        },
        timeout=config.timeout,
    )
    choice = _first_object(data.get("choices"), "OpenAI API")
    message = choice.get("message")
    if not isinstance(message, dict):
        msg = "OpenAI API returned a malformed response."
        raise RecommendationError(msg)
    return str(message.get("content", ""))


def _call_ollama(config: RecommenderConfig, prompt: str) -> str:
    """Call a local Ollama server (``/api/generate``, non-streaming)."""
    host = config.base_url or os.environ.get("OLLAMA_HOST", DEFAULT_OLLAMA_HOST)
    data = _post(
        f"{host.rstrip('/')}/api/generate",
        headers={"Content-Type": "application/json"},
        body={
            "model": config.model,
            "system": _SYSTEM_PROMPT,
            "prompt": prompt,
            "stream": False,
        },
        timeout=config.timeout,
    )
    text = data.get("response")
    if not isinstance(text, str) or not text:
        msg = "Ollama returned empty response."
        raise RecommendationError(msg)
    return text


class HttpRecommender:
    """Recommender backed by a hosted or local LLM over HTTP."""

    def __init__(self, config: RecommenderConfig) -> None:
        self.config = config

    def recommend(self, prompt: str, context: dict[str, Any]) -> str:
        """Send *prompt* with *context* and return the response text.

        Raises
        ------
        RecommendationError
            On API errors, timeouts or a missing API key.
        """
        full_prompt = _render_prompt(prompt, context)
        logger.debug("Requesting recommendation from %s (%s)", self.config.provider, self.config.model)

        if self.config.provider == "anthropic":
            return _call_anthropic(self.config, full_prompt)
        if self.config.provider == "openai":
            return _call_openai(self.config, full_prompt)
        if self.config.provider == "ollama":
            return _call_ollama(self.config, full_prompt)

        msg = f"Unsupported provider: {self.config.provider}"
        raise RecommendationError(msg)
