"""Parsing of JSON answers out of free-form provider text.

Models often wrap JSON in a ```json fence even when told not to. Only the
outer fence is removed; backticks inside string values are left alone.
"""

from __future__ import annotations

import json
import re

from codefeed_core.errors import StructuredResponseError

_OPENING_FENCE_RE = re.compile(r"^```(?:json)?\s*")
_CLOSING_FENCE_RE = re.compile(r"\s*```$")


def strip_code_fences(raw: str) -> str:
    cleaned = _OPENING_FENCE_RE.sub("", raw.strip())
    return _CLOSING_FENCE_RE.sub("", cleaned.strip())


def parse_json_object(raw: str, required: tuple[str, ...] = ()) -> dict:
    """Return the JSON object in ``raw``, raising StructuredResponseError otherwise.

    ``required`` names keys that must be present; their types are checked by
    the caller, which knows the schema.
    """
    if raw is None:
        raise StructuredResponseError("empty response")
    try:
        parsed = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise StructuredResponseError(f"response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise StructuredResponseError(f"expected a JSON object, got {type(parsed).__name__}")

    missing = [key for key in required if key not in parsed]
    if missing:
        raise StructuredResponseError(f"response is missing field(s): {', '.join(missing)}")
    return parsed


def require_text(raw: str) -> str:
    """Accept any non-blank plain-text answer."""
    if raw is None or not raw.strip():
        raise StructuredResponseError("empty response")
    return raw.strip()
