"""Singleton accessor for Pinecone and helper for obtaining the Index."""

from __future__ import annotations

from pinecone import Pinecone as _Pinecone

from ..config import PINECONE_API_KEY, PINECONE_INDEX_NAME

_pc: _Pinecone | None = None


def get_pinecone() -> _Pinecone:
    """Return a singleton :class:`pinecone.Pinecone` client."""
    global _pc
    if _pc is None:
        if not PINECONE_API_KEY:
            raise EnvironmentError("PINECONE_API_KEY is not set in environment variables")
        _pc = _Pinecone(api_key=PINECONE_API_KEY)
    return _pc


def get_index():
    """Return the configured Pinecone Index instance (cosine metric, 1536 dims)."""
    return get_pinecone().Index(PINECONE_INDEX_NAME)

__all__ = ["get_pinecone", "get_index"]
