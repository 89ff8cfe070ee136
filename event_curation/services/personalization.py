"""Per-user taste personalization via signal centroids.

A user's positive interactions (favorite, calendar add, share, view source)
and negative ones (hide) are each averaged into a centroid embedding.  An
event scores ``sim(event, positive) - sim(event, negative)``, so hidden
events actively push similar ones down instead of merely not boosting them.
Centroids are cached on the profile for a short TTL; any signal mutation
clears the cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from ..config import (
    CENTROID_CACHE_TTL_SECONDS,
    GOOD_MATCH_THRESHOLD,
    GREAT_MATCH_THRESHOLD,
    SIGNAL_RETENTION_DAYS,
)
from ..models import Embedding, Signal, SignalType, UserTasteProfile
from ..utils.datetime_utils import utcnow
from .embeddings import cosine_similarity, mean_vector
from .storage import EventStore, ProfileStore

logger = logging.getLogger(__name__)

TIER_GREAT = "great"
TIER_GOOD = "good"


@dataclass(slots=True)
class Centroids:
    positive: Optional[Embedding]
    negative: Optional[Embedding]
    updated_at: Optional[datetime] = None
    from_cache: bool = False


@dataclass(slots=True)
class NearestLikedEvent:
    event_id: str
    title: str
    similarity: float


@dataclass(slots=True)
class PersonalizedScore:
    score: float
    tier: Optional[str]
    nearest_liked: Optional[NearestLikedEvent] = None


def score_against_centroids(
    event_embedding: Sequence[float],
    positive: Optional[Sequence[float]],
    negative: Optional[Sequence[float]],
) -> float:
    """0 without a positive centroid, else positive similarity minus negative."""
    if not positive:
        return 0.0
    positive_sim = cosine_similarity(event_embedding, positive)
    if not negative:
        return positive_sim
    return positive_sim - cosine_similarity(event_embedding, negative)


class CentroidEngine:
    """Compute, cache and apply a user's taste centroids."""

    def __init__(
        self,
        profiles: ProfileStore,
        events: EventStore,
        *,
        ttl_seconds: int = CENTROID_CACHE_TTL_SECONDS,
        retention_days: int = SIGNAL_RETENTION_DAYS,
        great_threshold: float = GREAT_MATCH_THRESHOLD,
        good_threshold: float = GOOD_MATCH_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.profiles = profiles
        self.events = events
        self.ttl = timedelta(seconds=ttl_seconds)
        self.retention = timedelta(days=retention_days)
        self.great_threshold = great_threshold
        self.good_threshold = good_threshold
        self._clock = clock

    # -- signals -------------------------------------------------------------

    def active_signals(self, signals: Sequence[Signal], now: Optional[datetime] = None) -> List[Signal]:
        """Signals that are active and inside the retention window."""
        cutoff = (now or self._clock()) - self.retention
        return [s for s in signals if s.active and s.timestamp >= cutoff]

    def record_signal(self, user_id: str, event_id: str, signal_type: SignalType) -> UserTasteProfile:
        signal = Signal(event_id=event_id, signal_type=signal_type, timestamp=self._clock())
        logger.info("Recording %s signal for user %s on %s", signal_type.value, user_id, event_id)
        return self.profiles.add_signal(user_id, signal)

    def hide_event(self, user_id: str, event_id: str) -> UserTasteProfile:
        return self.record_signal(user_id, event_id, SignalType.HIDE)

    def deactivate_signal(self, user_id: str, event_id: str, signal_type: SignalType) -> bool:
        return self.profiles.set_signal_active(
            user_id, Signal(event_id=event_id, signal_type=signal_type), False
        )

    def reactivate_signal(self, user_id: str, event_id: str, signal_type: SignalType) -> bool:
        return self.profiles.set_signal_active(
            user_id, Signal(event_id=event_id, signal_type=signal_type), True
        )

    # -- centroids -----------------------------------------------------------

    def compute_centroid(self, event_ids: Sequence[str]) -> Optional[Embedding]:
        """Mean embedding of the given events, skipping those without one."""
        if not event_ids:
            return None
        vectors = [e.embedding for e in self.events.get_many(event_ids) if e.embedding]
        if not vectors:
            return None
        logger.info(
            "Computed centroid from %d/%d events with embeddings",
            len(vectors),
            len(set(event_ids)),
        )
        return mean_vector(vectors)

    def _cache_is_fresh(self, profile: UserTasteProfile, now: datetime) -> bool:
        if profile.centroid_updated_at is None:
            return False
        if profile.positive_centroid is None and profile.negative_centroid is None:
            return False
        return now - profile.centroid_updated_at < self.ttl

    def get_centroids(self, user_id: str) -> Centroids:
        """Return cached centroids if fresh, otherwise recompute them synchronously."""
        profile = self.profiles.get(user_id)
        if profile is None:
            logger.info("No preferences found for user %s", user_id)
            return Centroids(positive=None, negative=None)

        now = self._clock()
        if self._cache_is_fresh(profile, now):
            logger.debug("Using cached centroids for user %s", user_id)
            return Centroids(
                positive=profile.positive_centroid,
                negative=profile.negative_centroid,
                updated_at=profile.centroid_updated_at,
                from_cache=True,
            )

        logger.info("Recomputing centroids for user %s", user_id)
        positive = self.compute_centroid(
            [s.event_id for s in self.active_signals(profile.positive_signals, now)]
        )
        negative = self.compute_centroid(
            [s.event_id for s in self.active_signals(profile.negative_signals, now)]
        )
        self.profiles.save_centroids(user_id, positive, negative, now)
        logger.info(
            "Cached centroids for user %s: positive=%s, negative=%s",
            user_id,
            "yes" if positive else "no",
            "yes" if negative else "no",
        )
        return Centroids(positive=positive, negative=negative, updated_at=now)

    # -- scoring -------------------------------------------------------------

    @staticmethod
    def score(
        event_embedding: Sequence[float],
        positive: Optional[Sequence[float]],
        negative: Optional[Sequence[float]],
    ) -> float:
        return score_against_centroids(event_embedding, positive, negative)

    def tier(self, score: float) -> Optional[str]:
        """``"great"`` / ``"good"`` above the thresholds, else not surfaced."""
        if score > self.great_threshold:
            return TIER_GREAT
        if score > self.good_threshold:
            return TIER_GOOD
        return None

    def find_nearest_liked_event(
        self, event_embedding: Sequence[float], positive_signals: Sequence[Signal]
    ) -> Optional[NearestLikedEvent]:
        """The user's liked event closest to *event_embedding* (explanation only)."""
        active = self.active_signals(positive_signals)
        if not active:
            return None
        candidates = [
            NearestLikedEvent(
                event_id=e.id,
                title=e.title,
                similarity=cosine_similarity(event_embedding, e.embedding),
            )
            for e in self.events.get_many([s.event_id for s in active])
            if e.embedding
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.similarity)

    def score_event_for_user(self, user_id: str, event_id: str) -> PersonalizedScore:
        """Personalised score of one event; degrades to 0 / no tier."""
        event = self.events.get(event_id)
        if event is None or not event.embedding:
            return PersonalizedScore(score=0.0, tier=None)

        centroids = self.get_centroids(user_id)
        if centroids.positive is None:
            return PersonalizedScore(score=0.0, tier=None)

        value = self.score(event.embedding, centroids.positive, centroids.negative)
        tier = self.tier(value)
        nearest = None
        if tier is not None:
            profile = self.profiles.get(user_id)
            if profile is not None:
                nearest = self.find_nearest_liked_event(event.embedding, profile.positive_signals)
        return PersonalizedScore(score=value, tier=tier, nearest_liked=nearest)


__all__ = [
    "TIER_GREAT",
    "TIER_GOOD",
    "Centroids",
    "NearestLikedEvent",
    "PersonalizedScore",
    "score_against_centroids",
    "CentroidEngine",
]
