"""Shared helper utilities used across services."""

from __future__ import annotations

import re
from typing import Final, Any, Optional

# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def strip_think_blocks(text: str) -> str:
    """Extract content after the closing </think> tag from an LLM response.

    Handles missing tags and safely removes JSON code fences if present.
    """
    if not text:
        return (text or "").strip()

    marker: Final[str] = "</think>"
    idx: int = text.rfind(marker)

    # Fallback to full text if marker is missing
    after: str = text if idx == -1 else text[idx + len(marker) :]

    cleaned: str = after.strip()

    # Remove JSON code fences if present
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json") :].strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:].strip()
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3].strip()

    return cleaned


def sanitize_llm_text(
    text: str,
    *,
    remove_quotes: bool = True,
    single_line: bool = True,
    **_: Any,
) -> str:
    """Standardise free text returned by the model (e.g. a summary).

    Parameters
    ----------
    text : str
        Raw LLM text.
    remove_quotes : bool, default True
        Drop one pair of wrapping single or double quotes.
    single_line : bool, default True
        Collapse newlines into single spaces.
    """
    cleaned: str = strip_think_blocks(text)

    if remove_quotes:
        cleaned = re.sub(r"^[\"']|[\"']$", "", cleaned.strip())

    if single_line:
        cleaned = re.sub(r"\s*\n+\s*", " ", cleaned)

    return cleaned.strip()


def normalize_text(value: Optional[str]) -> str:
    """Lower-case, trim and collapse internal whitespace; ``None`` -> ``""``."""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip().lower()


def normalize_name(value: Optional[str]) -> str:
    """Normalise an organizer/venue name: like :func:`normalize_text` minus punctuation."""
    return normalize_text(re.sub(r"[^\w\s]", "", value or ""))


def truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


__all__ = [
    "strip_think_blocks",
    "sanitize_llm_text",
    "normalize_text",
    "normalize_name",
    "truncate",
]
