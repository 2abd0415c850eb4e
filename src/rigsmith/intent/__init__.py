"""Intent domain — goal interpretation and confirmation."""

from rigsmith.intent.confirm import confirm_intent, render_intent
from rigsmith.intent.extract import extract_json_object
from rigsmith.intent.interpreter import (
    FallbackInterpreter,
    Interpreter,
    KeywordInterpreter,
    RecommendationInterpreter,
    build_interpreter,
)
from rigsmith.intent.model import ALL_FAMILIES, COMPONENTS, FAMILIES, Intent

__all__ = [
    "ALL_FAMILIES",
    "COMPONENTS",
    "FAMILIES",
    "FallbackInterpreter",
    "Intent",
    "Interpreter",
    "KeywordInterpreter",
    "RecommendationInterpreter",
    "build_interpreter",
    "confirm_intent",
    "extract_json_object",
    "render_intent",
]
