"""Turn a free-text goal plus an Analysis into an Intent."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Protocol

from rigsmith.analysis.model import summarize_for_prompt
from rigsmith.classify import COMPONENT_RULES, ENVIRONMENT_RULES, FAMILY_RULES
from rigsmith.errors import InterpretationError
from rigsmith.intent.extract import extract_json_object
from rigsmith.intent.model import (
    BASELINE_COMPONENTS,
    COMPONENTS,
    DEFAULT_ENVIRONMENTS,
    DEFAULT_RECOMMENDATIONS,
    Intent,
)
from rigsmith.recommender import HttpRecommender, RecommendationError

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.config import RigConfig
    from rigsmith.recommender import Recommender

logger = logging.getLogger(__name__)

_PROMPT_TEMPLATE = """\
Analyze the operator's request and the project context and decide what
infrastructure should be generated.

Request: "{goal}"

Project context:
{context}

Answer with one JSON object in a ```json fenced block, shaped like:
{{
  "intent": "one sentence describing what the operator wants",
  "environments": ["dev", "staging", "prod"],
  "components": [{components}],
  "specifications": {{"<component>": "sizing and configuration notes"}},
  "infrastructure_type": "terraform|kubernetes|docker|cicd|monitoring|security|all",
  "recommendations": ["additional suggestions"]
}}

Only use the listed component names. Prefer practical, production-ready
settings appropriate for the project type.
"""


class Interpreter(Protocol):
    """Common contract for every interpretation path."""

    def interpret(self, goal: str, analysis: Analysis) -> Intent: ...


def build_prompt(goal: str, analysis: Analysis) -> str:
    summary = summarize_for_prompt(analysis)
    return _PROMPT_TEMPLATE.format(
        goal=goal.replace('"', "'"),
        context=json.dumps(summary, indent=2, sort_keys=True),
        components=", ".join(f'"{c}"' for c in COMPONENTS),
    )


class RecommendationInterpreter:
    """Ask the recommendation service for a plan and validate the reply.

    Any failure, including an unexpected exception from the recommender,
    raises :class:`InterpretationError`; there is no retry.
    """

    def __init__(self, recommender: Recommender) -> None:
        self.recommender = recommender

    def interpret(self, goal: str, analysis: Analysis) -> Intent:
        prompt = build_prompt(goal, analysis)
        context = {"goal": goal, "project": summarize_for_prompt(analysis)}
        try:
            reply = self.recommender.recommend(prompt, context)
        except RecommendationError as exc:
            msg = f"Recommendation service failed: {exc}"
            raise InterpretationError(msg) from exc
        except Exception as exc:
            logger.debug("Recommender raised unexpectedly", exc_info=True)
            msg = f"Recommendation service failed: {type(exc).__name__}: {exc}"
            raise InterpretationError(msg) from exc

        if not isinstance(reply, str):
            msg = f"Recommendation reply is {type(reply).__name__}, expected text"
            raise InterpretationError(msg)
        data = extract_json_object(reply)
        if data is None:
            msg = "Recommendation reply contained no JSON object"
            raise InterpretationError(msg)
        try:
            intent = Intent.from_mapping(data)
        except (TypeError, ValueError) as exc:
            msg = f"Recommendation reply has an invalid shape: {exc}"
            raise InterpretationError(msg) from exc
        logger.debug("Interpreted goal via recommendation service: %s", intent.summary)
        return intent


class KeywordInterpreter:
    """Deterministic keyword rules; always returns a populated Intent."""

    def interpret(self, goal: str, analysis: Analysis) -> Intent:
        environments = ENVIRONMENT_RULES.classify_all(goal) or list(DEFAULT_ENVIRONMENTS)

        components = list(BASELINE_COMPONENTS)
        for component in COMPONENT_RULES.classify_all(goal):
            if component not in components:
                components.append(component)
        if analysis.databases and "database" not in components:
            components.append("database")

        family = FAMILY_RULES.classify(goal)
        return Intent.create(
            environments,
            components,
            family=family,
            recommendations=DEFAULT_RECOMMENDATIONS,
        )


class FallbackInterpreter:
    """Try ``primary``; on :class:`InterpretationError` use ``fallback``."""

    def __init__(self, primary: Interpreter, fallback: Interpreter) -> None:
        self.primary = primary
        self.fallback = fallback

    def interpret(self, goal: str, analysis: Analysis) -> Intent:
        try:
            return self.primary.interpret(goal, analysis)
        except InterpretationError as exc:
            logger.warning("Using keyword interpretation: %s", exc)
            return self.fallback.interpret(goal, analysis)


def build_interpreter(config: RigConfig, *, use_recommender: bool = True) -> Interpreter:
    """Keyword-only unless a recommender is configured and allowed."""
    if use_recommender and config.recommender is not None:
        return FallbackInterpreter(
            RecommendationInterpreter(HttpRecommender(config.recommender)),
            KeywordInterpreter(),
        )
    return KeywordInterpreter()
