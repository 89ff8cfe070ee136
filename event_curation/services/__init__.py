"""Service layer modules grouping business logic by concern.

This module provides convenience re-exports so that callers can simply do for
example `from event_curation.services import SimilarityIndex` without having
to know which underlying module provides the symbol.
"""

from .llm import Completion, LanguageModel  # noqa: F401
from .embeddings import (  # noqa: F401
    EmbeddingService,
    build_embedding_text,
    cosine_similarity,
    mean_vector,
)
from .storage import EventStore, ProfileStore, VectorIndex  # noqa: F401
from .similarity import SimilarEvent, SimilarityIndex  # noqa: F401
from .deduplication import FingerprintDeduplicator, SemanticDeduplicator  # noqa: F401
from .recurrence import RecurrenceCheck, RecurrenceDetector  # noqa: F401
from .scoring import QualityScorer, ScoringEngine, recurring_score, fallback_score  # noqa: F401
from .tagging import TagSummaryGenerator  # noqa: F401
from .personalization import CentroidEngine, PersonalizedScore  # noqa: F401

__all__ = [
    "Completion",
    "LanguageModel",
    "EmbeddingService",
    "build_embedding_text",
    "cosine_similarity",
    "mean_vector",
    "EventStore",
    "ProfileStore",
    "VectorIndex",
    "SimilarEvent",
    "SimilarityIndex",
    "FingerprintDeduplicator",
    "SemanticDeduplicator",
    "RecurrenceCheck",
    "RecurrenceDetector",
    "QualityScorer",
    "ScoringEngine",
    "recurring_score",
    "fallback_score",
    "TagSummaryGenerator",
    "CentroidEngine",
    "PersonalizedScore",
]
