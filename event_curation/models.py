"""Domain models used across the project.

Events and user profiles live in MongoDB as plain documents; the dataclasses
below are the typed view the services work with.  ``from_document`` /
``to_document`` convert between the two.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .utils.datetime_utils import ensure_utc, utcnow

# Type alias for 1536-dimensional embedding vector
Embedding = List[float]

SCORE_FIELDS = (
    "score",
    "score_rarity",
    "score_unique",
    "score_magnitude",
    "score_local_flavor",
    "score_social",
    "score_reason",
)


@dataclass(slots=True)
class ScoreRecord:
    """Quality score of an event.

    ``total`` is the sum of the three primary dimensions (0-10 each).
    ``local_flavor`` and ``social`` (1-10) feed alternate rankings only.
    """

    total: int
    rarity: int
    unique: int
    magnitude: int
    local_flavor: int
    social: int
    reason: str

    def to_fields(self) -> Dict[str, Any]:
        """Return the document fields; always written together."""
        return {
            "score": self.total,
            "score_rarity": self.rarity,
            "score_unique": self.unique,
            "score_magnitude": self.magnitude,
            "score_local_flavor": self.local_flavor,
            "score_social": self.social,
            "score_reason": self.reason,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> Optional["ScoreRecord"]:
        if doc.get("score") is None:
            return None
        return cls(
            total=doc["score"],
            rarity=doc.get("score_rarity", 0),
            unique=doc.get("score_unique", 0),
            magnitude=doc.get("score_magnitude", 0),
            local_flavor=doc.get("score_local_flavor", 0),
            social=doc.get("score_social", 0),
            reason=doc.get("score_reason") or "",
        )


@dataclass(slots=True)
class Event:
    """A local event and the fields filled in by the curation passes."""

    id: str
    title: str
    start_date: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    organizer: Optional[str] = None
    price: Optional[str] = None
    source: str = ""
    recurring_type: Optional[str] = None
    created_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    embedding: Optional[Embedding] = None
    score: Optional[ScoreRecord] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Event":
        return cls(
            id=str(doc["_id"]),
            title=doc.get("title") or "",
            start_date=ensure_utc(doc["start_date"]),
            description=doc.get("description"),
            location=doc.get("location"),
            organizer=doc.get("organizer"),
            price=doc.get("price"),
            source=doc.get("source") or "",
            recurring_type=doc.get("recurring_type"),
            created_at=ensure_utc(doc["created_at"]) if doc.get("created_at") else None,
            tags=list(doc.get("tags") or []),
            summary=doc.get("summary"),
            embedding=doc.get("embedding"),
            score=ScoreRecord.from_document(doc),
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "_id": self.id,
            "title": self.title,
            "start_date": self.start_date,
            "description": self.description,
            "location": self.location,
            "organizer": self.organizer,
            "price": self.price,
            "source": self.source,
            "recurring_type": self.recurring_type,
            "created_at": self.created_at,
            "tags": list(self.tags),
            "summary": self.summary,
            "embedding": self.embedding,
        }
        if self.score is not None:
            doc.update(self.score.to_fields())
        else:
            doc.update(dict.fromkeys(SCORE_FIELDS))
        return doc


class SignalType(str, Enum):
    """Interaction kinds; ``HIDE`` is the only negative one."""

    FAVORITE = "favorite"
    CALENDAR_ADD = "calendar-add"
    SHARE = "share"
    VIEW_SOURCE = "view-source"
    HIDE = "hide"

    @property
    def is_positive(self) -> bool:
        return self is not SignalType.HIDE


@dataclass(slots=True)
class Signal:
    """A user interaction with an event.  Never deleted, only deactivated."""

    event_id: str
    signal_type: SignalType
    timestamp: datetime = field(default_factory=utcnow)
    active: bool = True

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Signal":
        return cls(
            event_id=str(doc["event_id"]),
            signal_type=SignalType(doc.get("signal_type", SignalType.HIDE.value)),
            timestamp=ensure_utc(doc["timestamp"]),
            active=bool(doc.get("active", True)),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "signal_type": self.signal_type.value,
            "timestamp": self.timestamp,
            "active": self.active,
        }


@dataclass(slots=True)
class UserTasteProfile:
    """Signal lists of one user plus the cached centroids derived from them."""

    user_id: str
    positive_signals: List[Signal] = field(default_factory=list)
    negative_signals: List[Signal] = field(default_factory=list)
    positive_centroid: Optional[Embedding] = None
    negative_centroid: Optional[Embedding] = None
    centroid_updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserTasteProfile":
        updated = doc.get("centroid_updated_at")
        return cls(
            user_id=str(doc["user_id"]),
            positive_signals=[Signal.from_document(s) for s in doc.get("positive_signals") or []],
            negative_signals=[Signal.from_document(s) for s in doc.get("negative_signals") or []],
            positive_centroid=doc.get("positive_centroid"),
            negative_centroid=doc.get("negative_centroid"),
            centroid_updated_at=ensure_utc(updated) if updated else None,
        )


@dataclass(slots=True)
class DuplicateGroup:
    """Events judged to be the same real-world occurrence within one pass."""

    keep: Event
    remove: List[Event] = field(default_factory=list)
    merged_description: Optional[str] = None

    @property
    def remove_ids(self) -> List[str]:
        return [event.id for event in self.remove]


@dataclass(slots=True)
class PassStats:
    """Counters returned by every pass instead of raising on partial failure."""

    name: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    timed_out: bool = False
    duration: float = 0.0

    def merge(self, other: "PassStats") -> None:
        self.total += other.total
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.skipped += other.skipped
        self.timed_out = self.timed_out or other.timed_out


__all__ = [
    "Embedding",
    "SCORE_FIELDS",
    "ScoreRecord",
    "Event",
    "SignalType",
    "Signal",
    "UserTasteProfile",
    "DuplicateGroup",
    "PassStats",
]
