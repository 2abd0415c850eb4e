"""Pull the first JSON object out of free-form model output."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_JSON_RE = re.compile(r"```json[ \t]*\n(.*?)```", re.DOTALL | re.IGNORECASE)
_FENCED_ANY_RE = re.compile(r"```[a-z]*[ \t]*\n(.*?)```", re.DOTALL | re.IGNORECASE)


def _as_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _first_embedded_object(text: str) -> dict[str, Any] | None:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            data, _end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first structured block in *text*, or ``None``.

    A fenced ````json`` block wins over any other fence; failing that, the
    first brace-delimited span that decodes to a JSON object is used.
    """
    for pattern in (_FENCED_JSON_RE, _FENCED_ANY_RE):
        for match in pattern.finditer(text):
            data = _as_object(match.group(1).strip())
            if data is not None:
                return data
    return _first_embedded_object(text)
