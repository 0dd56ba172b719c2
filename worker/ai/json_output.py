"""Lenient parsing of JSON objects out of model text."""

import json
import re
from typing import Any

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_json_object(raw: Any) -> dict | None:
    """
    Return the JSON object carried by a model response, or None.

    Dicts pass straight through. Strings are parsed whole first, then the
    outermost {...} span is tried (models like to wrap JSON in prose or
    code fences). Anything that does not yield a dict returns None.
    """
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return None

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    m = _OBJECT_RE.search(raw)
    if m:
        try:
            parsed = json.loads(m.group())
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def as_text(raw: Any) -> str:
    """String form of a model response for summaries and artifacts."""
    if isinstance(raw, str):
        return raw
    return json.dumps(raw, default=str)
