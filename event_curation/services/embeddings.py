"""Embedding utilities using the OpenAI API, plus the vector math built on them."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..clients.openai_client import get_openai
from ..config import EMBEDDING_DIMENSIONS, EMBEDDING_MODEL
from ..exceptions import DimensionMismatch

logger = logging.getLogger(__name__)

# Separator used by build_embedding_text.  Stored vectors were produced with
# this exact format: "Title - Summary - tag1, tag2 - Organizer".
EMBEDDING_TEXT_SEPARATOR: str = " - "


def build_embedding_text(
    title: str,
    summary: Optional[str],
    tags: Optional[Iterable[str]] = None,
    organizer: Optional[str] = None,
) -> str:
    """Concatenate title, summary, tags and organizer, skipping empty parts."""
    parts: List[str] = []
    if title and title.strip():
        parts.append(title.strip())
    if summary and summary.strip():
        parts.append(summary.strip())
    clean_tags = [tag.strip() for tag in (tags or []) if tag and tag.strip()]
    if clean_tags:
        parts.append(", ".join(clean_tags))
    if organizer and organizer.strip():
        parts.append(organizer.strip())
    return EMBEDDING_TEXT_SEPARATOR.join(parts)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors, in [-1, 1].

    Raises
    ------
    DimensionMismatch
        If the vectors have different lengths.
    """
    if len(a) != len(b):
        raise DimensionMismatch(f"Embedding dimensions must match: {len(a)} vs {len(b)}")

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def mean_vector(vectors: Sequence[Sequence[float]]) -> Optional[List[float]]:
    """Per-dimension arithmetic mean; ``None`` for an empty input."""
    if not vectors:
        return None
    dims = {len(v) for v in vectors}
    if len(dims) != 1:
        raise DimensionMismatch(f"Cannot average vectors of lengths {sorted(dims)}")
    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()


class EmbeddingService:
    """Wraps the embedding provider; ``embed`` returns ``None`` on failure."""

    def __init__(
        self,
        client=None,
        model: str = EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ):
        self._client = client
        self.model = model
        self.dimensions = dimensions

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai()
        return self._client

    def embed(self, text: str) -> Optional[List[float]]:
        """Generate a vector embedding for *text*.

        ``None`` means "retry later": provider errors are logged, not raised.
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        logger.info("Generating embedding for text (first 50 chars): %s…", text[:50])
        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
            )
        except Exception as exc:
            logger.error("Embedding request failed: %s", exc)
            return None

        embedding = list(response.data[0].embedding)
        if len(embedding) != self.dimensions:
            logger.error(
                "Embedding provider returned %d dims, expected %d", len(embedding), self.dimensions
            )
            return None
        logger.debug("Generated embedding of length %d", len(embedding))
        return embedding


__all__ = [
    "EMBEDDING_TEXT_SEPARATOR",
    "build_embedding_text",
    "cosine_similarity",
    "mean_vector",
    "EmbeddingService",
]
