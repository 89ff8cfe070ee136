"""Nearest-neighbour queries over stored event embeddings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Union

from ..config import EMBEDDING_DIMENSIONS
from ..exceptions import DimensionMismatch, NotFound
from ..models import Event
from .embeddings import EmbeddingService
from .storage import EventStore, VectorIndex

logger = logging.getLogger(__name__)

ORDER_BY_SIMILARITY = "similarity"
ORDER_BY_DATE = "date"


@dataclass(slots=True)
class SimilarEvent:
    event: Event
    similarity: float


class SimilarityIndex:
    """``nearest_to(event_id | vector, ...)`` over the vector index.

    Candidates come from the vector index and are re-read from the event
    store, so events deleted since they were indexed never surface.
    """

    def __init__(
        self,
        store: EventStore,
        vectors: VectorIndex,
        embeddings: Optional[EmbeddingService] = None,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ):
        self.store = store
        self.vectors = vectors
        self.embeddings = embeddings
        self.dimensions = dimensions

    def nearest_to(
        self,
        target: Union[str, Sequence[float]],
        *,
        limit: int = 5,
        min_similarity: float = 0.5,
        exclude_ids: Sequence[str] = (),
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        order_by: str = ORDER_BY_SIMILARITY,
    ) -> List[SimilarEvent]:
        """Return up to *limit* events with similarity >= *min_similarity*.

        *target* is an event id or a query vector.  An event id that does not
        exist or has no embedding raises :class:`NotFound`; the event itself is
        never part of its own result.  ``order_by="date"`` returns the same
        set sorted by start time (ascending) for date-grouped display.
        """
        if order_by not in (ORDER_BY_SIMILARITY, ORDER_BY_DATE):
            raise ValueError(f"Unknown order_by: {order_by!r}")

        excluded = set(exclude_ids)
        if isinstance(target, str):
            source = self.store.get(target)
            if source is None or not source.embedding:
                raise NotFound(f"Event {target} has no stored embedding")
            vector = source.embedding
            excluded.add(source.id)
        else:
            vector = list(target)
            if len(vector) != self.dimensions:
                raise DimensionMismatch(
                    f"Query vector has {len(vector)} dims, expected {self.dimensions}"
                )

        matches = self.vectors.query(
            vector,
            top_k=limit + len(excluded),
            start=start,
            end=end,
            exclude_ids=sorted(excluded),
        )
        scores = {
            event_id: score
            for event_id, score in matches
            if event_id not in excluded and score >= min_similarity
        }
        if not scores:
            return []

        results = [
            SimilarEvent(event=event, similarity=scores[event.id])
            for event in self.store.get_many(scores)
            if event.embedding is not None
        ]
        results.sort(key=lambda r: (-r.similarity, r.event.id))
        results = results[:limit]
        if order_by == ORDER_BY_DATE:
            results.sort(key=lambda r: r.event.start_date)
        return results

    def semantic_search(self, query: str, **options) -> List[SimilarEvent]:
        """Embed a free-text *query* and return the nearest events."""
        if self.embeddings is None:
            raise RuntimeError("semantic_search requires an EmbeddingService")
        vector = self.embeddings.embed(query)
        if vector is None:
            logger.warning("Failed to generate query embedding for %r", query[:50])
            return []
        options.setdefault("min_similarity", 0.4)
        return self.nearest_to(vector, **options)


__all__ = ["SimilarEvent", "SimilarityIndex", "ORDER_BY_SIMILARITY", "ORDER_BY_DATE"]
