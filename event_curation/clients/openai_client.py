"""Lazily created OpenAI client shared by chat and embedding calls."""

from __future__ import annotations

from openai import OpenAI as _OpenAIClient

from ..config import OPENAI_API_KEY, OPENAI_MAX_RETRIES, OPENAI_TIMEOUT_SECONDS

_client: _OpenAIClient | None = None


def get_openai() -> _OpenAIClient:
    """Return the process-wide :class:`openai.OpenAI` instance.

    The SDK's own retries absorb short rate-limit bursts; anything still
    failing after them is left for the next scheduled run.
    """
    global _client
    if _client is None:
        if not OPENAI_API_KEY:
            raise EnvironmentError("OPENAI_API_KEY is not set in environment variables")
        _client = _OpenAIClient(
            api_key=OPENAI_API_KEY,
            timeout=OPENAI_TIMEOUT_SECONDS,
            max_retries=OPENAI_MAX_RETRIES,
        )
    return _client

__all__ = ["get_openai"]
