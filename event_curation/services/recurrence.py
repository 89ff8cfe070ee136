"""Weekly/daily recurrence detection used to skip the LLM scorer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ..config import (
    RECURRENCE_LOOKAHEAD_DAYS,
    RECURRENCE_LOOKBACK_DAYS,
    RECURRENCE_MIN_MATCHES,
    RECURRENCE_MIN_MATCHES_TITLE_ONLY,
)
from ..models import Event
from ..utils.text_cleaning import normalize_text
from .storage import EventStore

logger = logging.getLogger(__name__)

RECURRING_DAILY = "daily"
RECURRING_WEEKLY = "weekly"


@dataclass(slots=True)
class RecurrenceCheck:
    is_recurring: bool
    match_count: int
    matching_event_ids: List[str] = field(default_factory=list)


class RecurrenceDetector:
    """Find other occurrences of the same title at the same venue or organizer.

    Title-only matches are weak evidence, so when neither location nor
    organizer is known a higher match count is required.
    """

    def __init__(
        self,
        store: EventStore,
        *,
        lookback_days: int = RECURRENCE_LOOKBACK_DAYS,
        lookahead_days: int = RECURRENCE_LOOKAHEAD_DAYS,
        min_matches: int = RECURRENCE_MIN_MATCHES,
        min_matches_title_only: int = RECURRENCE_MIN_MATCHES_TITLE_ONLY,
    ):
        self.store = store
        self.lookback = timedelta(days=lookback_days)
        self.lookahead = timedelta(days=lookahead_days)
        self.min_matches = min_matches
        self.min_matches_title_only = min_matches_title_only

    def is_recurring(
        self,
        title: str,
        location: Optional[str],
        organizer: Optional[str],
        exclude_id: str,
        start_date: datetime,
    ) -> RecurrenceCheck:
        venue = normalize_text(location)
        host = normalize_text(organizer)

        candidates = self.store.find_by_title(
            title,
            start=start_date - self.lookback,
            end=start_date + self.lookahead,
            exclude_id=exclude_id,
        )
        wanted_title = normalize_text(title)
        matches = [
            e.id
            for e in candidates
            if e.id != exclude_id
            and normalize_text(e.title) == wanted_title
            and _same_place(e, venue, host)
        ]

        threshold = self.min_matches if (venue or host) else self.min_matches_title_only
        check = RecurrenceCheck(
            is_recurring=len(matches) >= threshold,
            match_count=len(matches),
            matching_event_ids=matches,
        )
        if check.is_recurring:
            logger.info("'%s' recurs: %d other occurrences", title, check.match_count)
        return check

    def check_event(self, event: Event) -> RecurrenceCheck:
        return self.is_recurring(
            event.title, event.location, event.organizer, event.id, event.start_date
        )


def _same_place(event: Event, venue: str, host: str) -> bool:
    if not venue and not host:
        return True
    if venue and normalize_text(event.location) == venue:
        return True
    return bool(host) and normalize_text(event.organizer) == host


__all__ = ["RECURRING_DAILY", "RECURRING_WEEKLY", "RecurrenceCheck", "RecurrenceDetector"]
