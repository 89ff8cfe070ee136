"""Utility functions for the event curation project.

Re-exports the text-cleaning, parsing, datetime and batching helpers so that
imports like `from ..utils import normalize_text` work as expected.
"""

from .text_cleaning import (  # noqa: F401
    strip_think_blocks,
    sanitize_llm_text,
    normalize_text,
    normalize_name,
    truncate,
)
from .datetime_utils import utcnow, ensure_utc, local_day, format_duration  # noqa: F401
from .llm_parsing import extract_structured_json, clamp_int, string_list  # noqa: F401
from .batching import chunked, run_chunked, Deadline  # noqa: F401

__all__ = [
    "strip_think_blocks",
    "sanitize_llm_text",
    "normalize_text",
    "normalize_name",
    "truncate",
    "utcnow",
    "ensure_utc",
    "local_day",
    "format_duration",
    "extract_structured_json",
    "clamp_int",
    "string_list",
    "chunked",
    "run_chunked",
    "Deadline",
]
