"""Utilities for parsing structured outputs returned by LLM calls.

Chat responses are expected to carry a JSON object somewhere in free text,
possibly inside a code fence.  The helpers here locate it and coerce the
individual fields, so that a single malformed field never voids a whole
response.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List

from ..exceptions import ResponseParseError
from .text_cleaning import strip_think_blocks

__all__ = ["extract_structured_json", "clamp_int", "string_list"]


def _wrap(parsed: Any, list_key: str) -> Dict[str, Any]:
    if isinstance(parsed, list):
        return {list_key: parsed}
    if isinstance(parsed, dict):
        return parsed
    raise ResponseParseError(f"Expected a JSON object, got {type(parsed).__name__}")


def extract_structured_json(response_text: str, *, list_key: str = "items") -> Dict[str, Any]:
    """Robustly extract JSON from an LLM response.

    Parameters
    ----------
    response_text
        The raw message content returned by the chat model.
    list_key
        When the top-level parsed value is a list it is wrapped into
        ``{list_key: <list>}`` so callers can always expect a dict.

    Returns
    -------
    dict[str, Any]
        The parsed JSON object.

    Raises
    ------
    ResponseParseError
        If no valid JSON snippet can be located in *response_text*.
    """

    cleaned: str = strip_think_blocks(response_text or "").strip()
    if not cleaned:
        raise ResponseParseError("Empty model response")

    # 1. Try to parse the whole string first (fast path)
    try:
        return _wrap(json.loads(cleaned), list_key)
    except json.JSONDecodeError:
        pass

    # 2. Search for fenced JSON block, with or without explicit `json` label
    fenced = re.search(
        r"```(?:json)?\s*([\[{].*?[\]}])\s*```",
        cleaned,
        flags=re.DOTALL | re.IGNORECASE,
    )
    if fenced:
        snippet = fenced.group(1).strip()
        try:
            return _wrap(json.loads(snippet), list_key)
        except json.JSONDecodeError:
            cleaned = snippet  # Narrow search space.

    # 3. Outermost {...} object embedded in prose
    braces = re.search(r"\{.*\}", cleaned, flags=re.DOTALL)
    if braces:
        try:
            return _wrap(json.loads(braces.group(0)), list_key)
        except json.JSONDecodeError:
            pass

    # 4. Progressive truncation from first { or [
    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if not starts:
        raise ResponseParseError("Could not locate JSON in model response")

    candidate = cleaned[min(starts):]
    for end in range(len(candidate), 0, -1):
        if candidate[end - 1] not in "}]":
            continue
        try:
            return _wrap(json.loads(candidate[:end]), list_key)
        except json.JSONDecodeError:
            continue

    raise ResponseParseError("Could not locate JSON in model response")


def clamp_int(value: Any, *, low: int, high: int, default: int) -> int:
    """Coerce *value* to an int within [low, high].

    Numbers and numeric strings are rounded and clamped; anything else
    (``"N/A"``, ``None``, NaN, nested objects) yields *default*.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value)
        if not match:
            return default
        number = float(match.group(0))
    else:
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return max(low, min(high, int(round(number))))


def string_list(value: Any) -> List[str]:
    """Return the non-empty, stripped strings found in *value* if it is a list."""
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]
