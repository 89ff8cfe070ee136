"""Persistence layer: MongoDB event/profile documents + Pinecone vectors.

The event collection is the only shared mutable resource of the pipeline.
Every write here is single-row; the ``*_if_missing`` variants only apply
while the guarded field is still empty, which makes passes idempotent and
safe to run close together.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection

from ..clients.mongodb_client import get_database
from ..clients.pinecone_client import get_index
from ..config import EVENTS_COLLECTION, EVENTS_NAMESPACE, PROFILES_COLLECTION
from ..models import Event, Signal, UserTasteProfile
from ..utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)

_EMPTY = [None, []]


# ---------------------------------------------------------------------------
# "Needs work" predicates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Predicate:
    """A named selection usable both as a Mongo query and in-process."""

    name: str
    query: Dict[str, Any]
    matches: Callable[[Event], bool]


NEEDS_TAGS_OR_SUMMARY = Predicate(
    name="needs_tags_or_summary",
    query={"$or": [{"tags": {"$in": _EMPTY}}, {"summary": None}]},
    matches=lambda e: not e.tags or e.summary is None,
)

NEEDS_EMBEDDING = Predicate(
    name="needs_embedding",
    query={"summary": {"$ne": None}, "embedding": None},
    matches=lambda e: e.summary is not None and e.embedding is None,
)

NEEDS_SCORE = Predicate(
    name="needs_score",
    query={"score": None, "embedding": {"$ne": None}, "summary": {"$ne": None}},
    matches=lambda e: e.score is None and e.embedding is not None and e.summary is not None,
)


def _missing(field: str) -> Dict[str, Any]:
    return {field: {"$in": _EMPTY}}


class EventStore:
    """Point lookups, bounded scans and conditional single-row updates."""

    def __init__(self, collection: Optional[Collection] = None):
        self._collection = collection

    @property
    def collection(self) -> Collection:
        if self._collection is None:
            self._collection = get_database()[EVENTS_COLLECTION]
        return self._collection

    # -- reads ---------------------------------------------------------------

    def get(self, event_id: str) -> Optional[Event]:
        doc = self.collection.find_one({"_id": event_id})
        return Event.from_document(doc) if doc else None

    def get_many(self, event_ids: Iterable[str]) -> List[Event]:
        ids = list(dict.fromkeys(event_ids))
        if not ids:
            return []
        return [Event.from_document(d) for d in self.collection.find({"_id": {"$in": ids}})]

    def scan(
        self,
        predicate: Predicate,
        *,
        limit: int,
        exclude_ids: Sequence[str] = (),
    ) -> List[Event]:
        """Return up to *limit* events matching *predicate*, soonest first."""
        query: Dict[str, Any] = dict(predicate.query)
        if exclude_ids:
            query["_id"] = {"$nin": list(exclude_ids)}
        cursor = self.collection.find(query).sort("start_date", ASCENDING).limit(limit)
        return [Event.from_document(d) for d in cursor]

    def all_events(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Event]:
        """Every event, optionally restricted to a start-date window [start, end)."""
        query: Dict[str, Any] = {}
        window: Dict[str, Any] = {}
        if start is not None:
            window["$gte"] = start
        if end is not None:
            window["$lt"] = end
        if window:
            query["start_date"] = window
        cursor = self.collection.find(query, {"embedding": 0}).sort("start_date", ASCENDING)
        return [Event.from_document(d) for d in cursor]

    def find_by_title(
        self,
        title: str,
        *,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> List[Event]:
        """Events whose title matches *title* ignoring case and whitespace runs, in [start, end]."""
        words = r"\s+".join(re.escape(word) for word in title.split())
        pattern = r"^\s*" + words + r"\s*$"
        query: Dict[str, Any] = {
            "title": {"$regex": pattern, "$options": "i"},
            "start_date": {"$gte": start, "$lte": end},
        }
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        cursor = self.collection.find(query, {"embedding": 0})
        return [Event.from_document(d) for d in cursor]

    def embedding_stats(self) -> Dict[str, int]:
        """Row counts used to report embedding coverage."""
        return {
            "total": self.collection.count_documents({}),
            "with_summary": self.collection.count_documents({"summary": {"$ne": None}}),
            "with_embedding": self.collection.count_documents({"embedding": {"$ne": None}}),
        }

    # -- writes --------------------------------------------------------------

    def set_fields_if_missing(
        self,
        event_id: str,
        fields: Dict[str, Any],
        guard_fields: Optional[Sequence[str]] = None,
    ) -> bool:
        """Set *fields* only while every guard field is still empty.

        Returns ``True`` when the row was updated.
        """
        if not fields:
            return False
        query: Dict[str, Any] = {"_id": event_id}
        for name in guard_fields or list(fields):
            query.update(_missing(name))
        result = self.collection.update_one(query, {"$set": fields})
        return result.modified_count > 0

    def set_fields(self, event_id: str, fields: Dict[str, Any]) -> bool:
        result = self.collection.update_one({"_id": event_id}, {"$set": fields})
        return result.matched_count > 0

    def delete_many(self, event_ids: Iterable[str]) -> int:
        ids = list(dict.fromkeys(event_ids))
        if not ids:
            return 0
        result = self.collection.delete_many({"_id": {"$in": ids}})
        logger.info("Deleted %d events", result.deleted_count)
        return result.deleted_count


class VectorIndex:
    """Cosine-similarity lookups over event embeddings stored in Pinecone."""

    def __init__(self, index=None, namespace: str = EVENTS_NAMESPACE):
        self._index = index
        self.namespace = namespace

    @property
    def index(self):
        if self._index is None:
            self._index = get_index()
        return self._index

    def upsert(self, event_id: str, vector: List[float], start_date: datetime) -> None:
        metadata = {
            "event_id": event_id,
            "start_ts": int(ensure_utc(start_date).timestamp()),
        }
        self.index.upsert(namespace=self.namespace, vectors=[(event_id, vector, metadata)])

    def query(
        self,
        vector: List[float],
        *,
        top_k: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        exclude_ids: Sequence[str] = (),
    ) -> List[Tuple[str, float]]:
        """Return ``(event_id, similarity)`` pairs, most similar first."""
        flt: Dict[str, Any] = {}
        window: Dict[str, Any] = {}
        if start is not None:
            window["$gte"] = int(ensure_utc(start).timestamp())
        if end is not None:
            window["$lte"] = int(ensure_utc(end).timestamp())
        if window:
            flt["start_ts"] = window
        if exclude_ids:
            flt["event_id"] = {"$nin": list(exclude_ids)}

        response = self.index.query(
            namespace=self.namespace,
            vector=vector,
            top_k=top_k,
            include_metadata=False,
            filter=flt or None,
        )
        return [(match.id, float(match.score)) for match in response.matches]

    def delete(self, event_ids: Iterable[str]) -> None:
        ids = list(event_ids)
        if ids:
            self.index.delete(ids=ids, namespace=self.namespace)


_CLEARED_CACHE = {
    "positive_centroid": None,
    "negative_centroid": None,
    "centroid_updated_at": None,
}


class ProfileStore:
    """User taste profiles: signal lists plus the cached centroids."""

    def __init__(self, collection: Optional[Collection] = None):
        self._collection = collection

    @property
    def collection(self) -> Collection:
        if self._collection is None:
            self._collection = get_database()[PROFILES_COLLECTION]
        return self._collection

    def get(self, user_id: str) -> Optional[UserTasteProfile]:
        doc = self.collection.find_one({"user_id": user_id})
        return UserTasteProfile.from_document(doc) if doc else None

    def save_centroids(
        self,
        user_id: str,
        positive: Optional[List[float]],
        negative: Optional[List[float]],
        updated_at: datetime,
    ) -> None:
        self.collection.update_one(
            {"user_id": user_id},
            {
                "$set": {
                    "positive_centroid": positive,
                    "negative_centroid": negative,
                    "centroid_updated_at": updated_at,
                }
            },
        )

    def add_signal(self, user_id: str, signal: Signal) -> UserTasteProfile:
        """Append *signal* and clear the centroid cache in the same write."""
        list_name = "positive_signals" if signal.signal_type.is_positive else "negative_signals"
        doc = self.collection.find_one_and_update(
            {"user_id": user_id},
            {"$push": {list_name: signal.to_document()}, "$set": dict(_CLEARED_CACHE)},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return UserTasteProfile.from_document(doc)

    def set_signal_active(self, user_id: str, signal: Signal, active: bool) -> bool:
        """Flip ``active`` on every matching signal and clear the centroid cache."""
        list_name = "positive_signals" if signal.signal_type.is_positive else "negative_signals"
        result = self.collection.update_one(
            {"user_id": user_id, list_name: {"$exists": True}},
            {"$set": {f"{list_name}.$[s].active": active, **_CLEARED_CACHE}},
            array_filters=[
                {"s.event_id": signal.event_id, "s.signal_type": signal.signal_type.value}
            ],
        )
        return result.matched_count > 0


__all__ = [
    "Predicate",
    "NEEDS_TAGS_OR_SUMMARY",
    "NEEDS_EMBEDDING",
    "NEEDS_SCORE",
    "EventStore",
    "VectorIndex",
    "ProfileStore",
]
