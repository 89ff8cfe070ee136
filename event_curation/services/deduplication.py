"""Two-tier duplicate detection: deterministic fingerprints, then an LLM pass.

The fingerprint tier is cheap and catches most duplicates, so it always runs
first.  The semantic tier looks at one local day at a time and asks the
chat model for same-occurrence listings that differ in wording.  Neither tier
keeps state between runs; every run recomputes from the event table.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..config import SEMANTIC_DEDUP_DAY_DELAY_SECONDS, SEMANTIC_DEDUP_WINDOW_DAYS
from ..models import DuplicateGroup, Event, PassStats
from ..utils.datetime_utils import (
    floor_to_minute,
    local_day,
    local_day_bounds,
    utcnow,
)
from ..utils.llm_parsing import extract_structured_json
from ..utils.text_cleaning import normalize_name, normalize_text, truncate
from .llm import LanguageModel
from .storage import EventStore, VectorIndex

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fingerprint tier
# ---------------------------------------------------------------------------

PRICE_UNKNOWN = "unknown"
PRICE_FREE = "free"
PRICE_PAID = "paid"

Fingerprint = Tuple[str, str, str, str]


def price_class(price: Optional[str]) -> str:
    """Bucket a free-form price string into free / paid / unknown."""
    text = normalize_text(price)
    if not text or text == "unknown":
        return PRICE_UNKNOWN
    if "free" in text:
        return PRICE_FREE
    amounts = re.findall(r"\d+(?:\.\d+)?", text)
    if amounts and all(float(a) == 0 for a in amounts):
        return PRICE_FREE
    return PRICE_PAID


def fingerprint(event: Event) -> Fingerprint:
    """Normalised (title, organizer, start minute, price class) key."""
    return (
        normalize_text(event.title),
        normalize_name(event.organizer),
        floor_to_minute(event.start_date).isoformat(),
        price_class(event.price),
    )


_NO_CREATED_AT = datetime.max.replace(tzinfo=timezone.utc)


def _creation_order(event: Event) -> Tuple[bool, datetime, str]:
    # Rows without created_at sort after every dated row
    created = event.created_at
    return (created is None, created or _NO_CREATED_AT, event.id)


def find_fingerprint_groups(events: Sequence[Event]) -> List[DuplicateGroup]:
    """Group events sharing a fingerprint; the earliest-created one survives.

    The survivor inherits the longest description found in its group.
    """
    buckets: Dict[Fingerprint, List[Event]] = defaultdict(list)
    for event in events:
        buckets[fingerprint(event)].append(event)

    groups: List[DuplicateGroup] = []
    for members in buckets.values():
        if len(members) < 2:
            continue
        ordered = sorted(members, key=_creation_order)
        keep, remove = ordered[0], ordered[1:]

        longest = max(ordered, key=lambda e: len(e.description or ""))
        merged = None
        if len(longest.description or "") > len(keep.description or ""):
            merged = longest.description

        groups.append(DuplicateGroup(keep=keep, remove=remove, merged_description=merged))
    return groups


class FingerprintDeduplicator:
    """Rule-based tier: merge then delete fingerprint duplicates."""

    def __init__(self, store: EventStore, vectors: Optional[VectorIndex] = None):
        self.store = store
        self.vectors = vectors

    def run(self) -> PassStats:
        started = time.monotonic()
        events = self.store.all_events()
        groups = find_fingerprint_groups(events)
        stats = PassStats(name="fingerprint_dedup", total=len(events))

        removed: List[str] = []
        for group in groups:
            if group.merged_description is not None:
                self.store.set_fields(group.keep.id, {"description": group.merged_description})
            removed.extend(group.remove_ids)
            logger.info(
                "Duplicate group for '%s': keeping %s, removing %s",
                group.keep.title,
                group.keep.id,
                ", ".join(group.remove_ids),
            )

        if removed:
            stats.succeeded = self.store.delete_many(removed)
            if self.vectors is not None:
                self.vectors.delete(removed)

        stats.duration = time.monotonic() - started
        logger.info(
            "Fingerprint dedup: %d groups, %d events removed out of %d",
            len(groups),
            stats.succeeded,
            stats.total,
        )
        return stats


# ---------------------------------------------------------------------------
# Semantic tier
# ---------------------------------------------------------------------------

SEMANTIC_DEDUP_SYSTEM_PROMPT = """You identify duplicate event listings. Analyze events on the same day and return the numeric IDs of duplicates to REMOVE.

DUPLICATES are the same real-world event listed multiple times:
- Same event at same venue with different titles
- Same performer at same venue from different sources
- Titles that are variations of each other at same time/venue

NOT DUPLICATES:
- Different events at same venue (different times, 2+ hours apart)
- Similar events at different venues

When duplicates exist, REMOVE the one with:
- "Unknown" price (keep the one with known price)
- Less complete title/description
- Aggregator source (keep venue/primary source)

Be conservative - only flag clear duplicates.

Respond with ONLY valid JSON (no markdown):
{"duplicates":[{"remove":[1,2],"reason":"brief reason"}]}

If no duplicates: {"duplicates":[]}"""

PROMPT_DESCRIPTION_LIMIT = 300


@dataclass(slots=True)
class SemanticDuplicate:
    remove: List[str]
    reason: str


@dataclass(slots=True)
class DayResult:
    day: date
    event_count: int
    groups: List[SemanticDuplicate] = field(default_factory=list)
    tokens_used: int = 0
    error: Optional[str] = None

    @property
    def duplicates_found(self) -> int:
        return sum(len(g.remove) for g in self.groups)


@dataclass(slots=True)
class SemanticDedupResult:
    stats: PassStats
    day_results: List[DayResult] = field(default_factory=list)
    ids_to_remove: List[str] = field(default_factory=list)
    total_tokens_used: int = 0

    @property
    def errors(self) -> List[str]:
        return [f"{r.day.isoformat()}: {r.error}" for r in self.day_results if r.error]


def format_event_for_prompt(event: Event, index: int) -> str:
    return json.dumps(
        {
            "id": index,
            "title": event.title,
            "description": truncate(event.description, PROMPT_DESCRIPTION_LIMIT) or "No description",
            "organizer": event.organizer or "Unknown",
            "location": event.location or "Unknown",
            "time": event.start_date.isoformat(),
            "price": event.price or "Unknown",
            "source": event.source,
        },
        ensure_ascii=False,
    )


def parse_duplicate_groups(text: str, index_to_id: Dict[int, str]) -> List[SemanticDuplicate]:
    """Map the model's numeric indices back to event ids.

    Malformed groups and unknown indices are dropped with a warning.
    """
    payload = extract_structured_json(text, list_key="duplicates")
    raw_groups = payload.get("duplicates")
    if not isinstance(raw_groups, list):
        logger.warning("Semantic dedup response has no duplicates array")
        return []

    groups: List[SemanticDuplicate] = []
    for raw in raw_groups:
        indices = raw.get("remove") if isinstance(raw, dict) else None
        if not isinstance(indices, list) or not indices:
            logger.warning("Skipping invalid duplicate group: %s", raw)
            continue
        ids: List[str] = []
        for index in indices:
            if isinstance(index, bool) or not isinstance(index, int) or index not in index_to_id:
                logger.warning("Ignoring unknown event index %r", index)
                continue
            ids.append(index_to_id[index])
        if ids:
            reason = raw.get("reason") if isinstance(raw.get("reason"), str) else ""
            groups.append(SemanticDuplicate(remove=ids, reason=reason))
    return groups


class SemanticDeduplicator:
    """LLM-assisted tier, run over a rolling window of upcoming days."""

    def __init__(
        self,
        store: EventStore,
        llm: LanguageModel,
        vectors: Optional[VectorIndex] = None,
        *,
        window_days: int = SEMANTIC_DEDUP_WINDOW_DAYS,
        day_delay: float = SEMANTIC_DEDUP_DAY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.llm = llm
        self.vectors = vectors
        self.window_days = window_days
        self.day_delay = day_delay
        self._sleep = sleep

    def process_day(self, day: date, events: Sequence[Event]) -> DayResult:
        """Ask the model for duplicates among *events*; failures stay in the result."""
        result = DayResult(day=day, event_count=len(events))
        if len(events) < 2:
            return result

        index_to_id = {i: event.id for i, event in enumerate(events, start=1)}
        lines = "\n".join(format_event_for_prompt(e, i) for i, e in enumerate(events, start=1))
        user_prompt = (
            f"Here are {len(events)} events on {day.isoformat()}. "
            f"Identify any duplicates:\n\n{lines}"
        )

        try:
            completion = self.llm.complete(SEMANTIC_DEDUP_SYSTEM_PROMPT, user_prompt, max_tokens=4000)
            result.tokens_used = completion.token_usage
            logger.debug("Semantic dedup raw response for %s: %s", day, completion.text)
            result.groups = parse_duplicate_groups(completion.text, index_to_id)
        except Exception as exc:
            logger.error("Semantic dedup failed for %s: %s", day, exc)
            result.error = str(exc)
            result.groups = []
        return result

    def run(self, now: Optional[datetime] = None) -> SemanticDedupResult:
        started = time.monotonic()
        today = local_day(now or utcnow())
        window_start, _ = local_day_bounds(today)
        _, window_end = local_day_bounds(today + timedelta(days=self.window_days - 1))

        by_day: Dict[date, List[Event]] = defaultdict(list)
        for event in self.store.all_events(start=window_start, end=window_end):
            by_day[local_day(event.start_date)].append(event)

        days = sorted(d for d, evs in by_day.items() if len(evs) >= 2)
        result = SemanticDedupResult(stats=PassStats(name="semantic_dedup", total=len(days)))
        logger.info("Semantic dedup over %d days with 2+ events", len(days))

        for position, day in enumerate(days):
            day_result = self.process_day(day, by_day[day])
            result.day_results.append(day_result)
            result.total_tokens_used += day_result.tokens_used
            if day_result.error:
                result.stats.failed += 1
            else:
                result.stats.succeeded += 1
            for group in day_result.groups:
                result.ids_to_remove.extend(group.remove)
                logger.info("%s: removing %s (%s)", day, ", ".join(group.remove), group.reason)
            if self.day_delay > 0 and position < len(days) - 1:
                self._sleep(self.day_delay)

        result.ids_to_remove = list(dict.fromkeys(result.ids_to_remove))
        if result.ids_to_remove:
            self.store.delete_many(result.ids_to_remove)
            if self.vectors is not None:
                self.vectors.delete(result.ids_to_remove)

        result.stats.duration = time.monotonic() - started
        logger.info(
            "Semantic dedup complete: %d removals across %d days, %d tokens",
            len(result.ids_to_remove),
            len(days),
            result.total_tokens_used,
        )
        return result


__all__ = [
    "price_class",
    "fingerprint",
    "find_fingerprint_groups",
    "FingerprintDeduplicator",
    "SemanticDuplicate",
    "DayResult",
    "SemanticDedupResult",
    "format_event_for_prompt",
    "parse_duplicate_groups",
    "SemanticDeduplicator",
]
