"""LLM-driven event quality scoring with recurrence short-circuits.

Events are scored on three primary dimensions (0-10 each, total 0-30):

* Rarity & Urgency: how often does this happen?
* Cool & Unique Factor: how novel is it?
* Talent & Production Magnitude: what is the scale/caliber?

Two secondary dimensions (1-10), local flavor and social affordance, are
stored for alternate rankings but never added to the total.  Similar
upcoming events retrieved from the vector index ground the rarity estimate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from ..config import SCORING_CONTEXT_LIMIT, SCORING_CONTEXT_MIN_SIMILARITY
from ..exceptions import NotFound
from ..models import Event, ScoreRecord
from ..utils.datetime_utils import utcnow
from ..utils.llm_parsing import clamp_int, extract_structured_json
from ..utils.text_cleaning import truncate
from .llm import LanguageModel
from .recurrence import RECURRING_DAILY, RECURRING_WEEKLY, RecurrenceDetector
from .similarity import SimilarEvent, SimilarityIndex

logger = logging.getLogger(__name__)

PRIMARY_RANGE = (0, 10)
SECONDARY_RANGE = (1, 10)
FALLBACK_DIMENSION = 5
REASON_LIMIT = 500
DEFAULT_REASON = "Score generated by AI."

# Near-duplicate density that caps rarity/uniqueness regardless of the model
NEAR_DUPLICATE_SIMILARITY = 0.8
COMMON_EVENT_COUNT = 15
MODERATE_EVENT_COUNT = 5
COMMON_RARITY_CAP = 3
COMMON_UNIQUE_CAP = 5
MODERATE_RARITY_CAP = 6

SCORING_SYSTEM_PROMPT = """You are an expert Event Curator scoring events for a local events calendar. Score each event on THREE primary dimensions (0-10 each) and TWO secondary dimensions (1-10 each) to help users discover the most interesting events.

## DIMENSION 1 - Rarity & Urgency (How often does this happen?)

Determine if this event is recurring BEFORE scoring:
- 0-2: Daily/weekly recurring (trivia nights, open mics, weekly classes)
- 3-4: Monthly events OR annual recurring (monthly showcases, annual holiday parties)
- 5-6: Limited runs (3-week theater run, seasonal exhibit)
- 7-8: One-time special events (specific tour dates, unique collaborations)
- 9-10: Major one-offs (legendary artist tour, major festival)

Holiday timing does NOT automatically increase rarity.

## DIMENSION 2 - Cool & Unique Factor (How novel/interesting is this?)

If there are 10+ similar events with >70% similarity, uniqueness should rarely exceed 5.
- 0-2: Standard/utility (support groups, basic classes, city meetings)
- 3-4: Common entertainment (cover bands, standard yoga, regular comedy)
- 5-6: Somewhat distinctive (themed events, niche interests)
- 7-8: Genuinely creative (unusual format, specialized skills, immersive)
- 9-10: Truly exceptional

## DIMENSION 3 - Talent & Production Magnitude (What's the scale/caliber?)

Venue prestige alone doesn't determine magnitude.
- 1-2: Casual, minimal production (meetups, group walks, peer-led)
- 3-4: Local professional (bar bands, small workshops, local instructors)
- 5-6: Established local production (monthly showcases, local theater)
- 7-8: Regional draw or major local production (touring regional acts, symphony)
- 9-10: National/international (arena acts, legendary status)

## SECONDARY DIMENSIONS (not part of the total)

- local_flavor (1-10): how strongly the event reflects the quirky, local character of the town.
- social (1-10): how well the event lends itself to meeting people or going with friends.

## SIMILAR EVENTS CONTEXT

Use the similar events list to calibrate your scores:
- 15+ similar events at 80%+ similarity = a COMMON event type, lower rarity and uniqueness
- 5-15 similar events = moderate commonality
- <5 similar events = potentially unique

## OUTPUT FORMAT

Return ONLY valid JSON:
{"rarity": N, "unique": N, "magnitude": N, "local_flavor": N, "social": N, "reason": "One sentence explaining the total score."}

Be conservative - most events should score 8-18 total, not 20+."""


def _record(rarity: int, unique: int, magnitude: int, local_flavor: int, social: int, reason: str) -> ScoreRecord:
    return ScoreRecord(
        total=rarity + unique + magnitude,
        rarity=rarity,
        unique=unique,
        magnitude=magnitude,
        local_flavor=local_flavor,
        social=social,
        reason=reason,
    )


def recurring_score(kind: str) -> ScoreRecord:
    """Fixed low score (5/30) given to daily/weekly recurring events."""
    reason = (
        "Daily recurring event - happens every day."
        if kind == RECURRING_DAILY
        else "Weekly recurring event - happens every week."
    )
    return _record(1, 2, 2, 3, 5, reason)


def fallback_score() -> ScoreRecord:
    """Score persisted when the model gives no usable answer."""
    return _record(1, 2, 2, 3, 5, "[AI scoring failed]")


def parse_score_response(text: str) -> ScoreRecord:
    """Turn a model response into a :class:`ScoreRecord`.

    Out-of-range numbers are clamped and unparseable dimensions fall back to
    mid-scale.  Raises :class:`~event_curation.exceptions.ResponseParseError`
    when the response carries no JSON object at all.
    """
    parsed = extract_structured_json(text)
    low, high = PRIMARY_RANGE
    s_low, s_high = SECONDARY_RANGE

    reason = parsed.get("reason")
    if isinstance(reason, str) and reason.strip():
        reason = reason.strip()[:REASON_LIMIT]
    else:
        reason = DEFAULT_REASON

    return _record(
        clamp_int(parsed.get("rarity"), low=low, high=high, default=FALLBACK_DIMENSION),
        clamp_int(parsed.get("unique"), low=low, high=high, default=FALLBACK_DIMENSION),
        clamp_int(parsed.get("magnitude"), low=low, high=high, default=FALLBACK_DIMENSION),
        clamp_int(parsed.get("local_flavor"), low=s_low, high=s_high, default=FALLBACK_DIMENSION),
        clamp_int(parsed.get("social"), low=s_low, high=s_high, default=FALLBACK_DIMENSION),
        reason,
    )


def calibrate(record: ScoreRecord, similar_events: Sequence[SimilarEvent]) -> ScoreRecord:
    """Cap rarity (and uniqueness) when many near-duplicates are upcoming."""
    near = sum(1 for s in similar_events if s.similarity >= NEAR_DUPLICATE_SIMILARITY)
    rarity, unique = record.rarity, record.unique
    if near >= COMMON_EVENT_COUNT:
        rarity = min(rarity, COMMON_RARITY_CAP)
        unique = min(unique, COMMON_UNIQUE_CAP)
    elif near >= MODERATE_EVENT_COUNT:
        rarity = min(rarity, MODERATE_RARITY_CAP)
    if (rarity, unique) == (record.rarity, record.unique):
        return record
    logger.debug("Calibrated rarity %d->%d unique %d->%d (%d near duplicates)",
                 record.rarity, rarity, record.unique, unique, near)
    return _record(rarity, unique, record.magnitude, record.local_flavor, record.social, record.reason)


def build_scoring_prompt(event: Event, similar_events: Sequence[SimilarEvent]) -> str:
    info = [
        f"Title: {event.title}",
        f"Description: {truncate(event.description, 300)}" if event.description else None,
        f"Location: {event.location}" if event.location else None,
        f"Organizer: {event.organizer}" if event.organizer else None,
        f"Tags: {', '.join(event.tags)}" if event.tags else None,
        f"Summary: {event.summary}" if event.summary else None,
        f"Date: {event.start_date.strftime('%A, %B %d, %Y')}",
        f"Price: {event.price}" if event.price else None,
    ]

    if similar_events:
        lines = []
        for i, s in enumerate(similar_events, start=1):
            venue = s.event.location or s.event.organizer or "Unknown venue"
            lines.append(
                f'{i}. "{s.event.title}" at {venue} on '
                f"{s.event.start_date.strftime('%b %d')} ({round(s.similarity * 100)}% similar)"
            )
        similar_text = "\n".join(lines)
    else:
        similar_text = "(No similar events found - this may indicate a unique event)"

    return (
        "Score this event:\n\n"
        + "\n".join(line for line in info if line)
        + "\n\nSimilar upcoming events (by semantic similarity):\n"
        + similar_text
    )


class QualityScorer:
    """``score(event, similar_events) -> ScoreRecord | None``."""

    def __init__(self, llm: LanguageModel, max_tokens: int = 20000):
        self.llm = llm
        self.max_tokens = max_tokens

    def score(self, event: Event, similar_events: Sequence[SimilarEvent]) -> Optional[ScoreRecord]:
        """Score *event*; ``None`` when the response is empty or has no JSON.

        Provider errors (network, content policy) propagate to the caller.
        """
        completion = self.llm.complete(
            SCORING_SYSTEM_PROMPT, build_scoring_prompt(event, similar_events), self.max_tokens
        )
        if not completion.text.strip():
            logger.warning("Empty scoring response for '%s'", event.title)
            return None
        try:
            record = parse_score_response(completion.text)
        except ValueError as exc:
            logger.warning("Unparseable scoring response for '%s': %s", event.title, exc)
            return None

        record = calibrate(record, similar_events)
        logger.info(
            "Scored '%s': %d/30 (R:%d U:%d M:%d) - %d tokens",
            event.title[:30],
            record.total,
            record.rarity,
            record.unique,
            record.magnitude,
            completion.token_usage,
        )
        return record


SOURCE_MODEL = "model"
SOURCE_RECURRING = "recurring"
SOURCE_FALLBACK = "fallback"


@dataclass(slots=True)
class ScoreOutcome:
    record: ScoreRecord
    source: str


class ScoringEngine:
    """Recurrence gate + similarity context + model scorer for one event."""

    def __init__(
        self,
        scorer: QualityScorer,
        detector: RecurrenceDetector,
        similarity: SimilarityIndex,
        *,
        context_limit: int = SCORING_CONTEXT_LIMIT,
        context_min_similarity: float = SCORING_CONTEXT_MIN_SIMILARITY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.scorer = scorer
        self.detector = detector
        self.similarity = similarity
        self.context_limit = context_limit
        self.context_min_similarity = context_min_similarity
        self._clock = clock

    def similar_context(self, event: Event) -> List[SimilarEvent]:
        """Upcoming near neighbours of *event*; past events never count."""
        try:
            return self.similarity.nearest_to(
                event.id,
                limit=self.context_limit,
                min_similarity=self.context_min_similarity,
                start=self._clock(),
            )
        except NotFound:
            return []

    def evaluate(self, event: Event) -> ScoreOutcome:
        """Return the score to persist for *event*; never ``None``."""
        if event.recurring_type == RECURRING_DAILY:
            return ScoreOutcome(recurring_score(RECURRING_DAILY), SOURCE_RECURRING)

        if self.detector.check_event(event).is_recurring:
            return ScoreOutcome(recurring_score(RECURRING_WEEKLY), SOURCE_RECURRING)

        record = self.scorer.score(event, self.similar_context(event))
        if record is None:
            return ScoreOutcome(fallback_score(), SOURCE_FALLBACK)
        return ScoreOutcome(record, SOURCE_MODEL)


__all__ = [
    "SCORING_SYSTEM_PROMPT",
    "recurring_score",
    "fallback_score",
    "parse_score_response",
    "calibrate",
    "build_scoring_prompt",
    "QualityScorer",
    "ScoreOutcome",
    "ScoringEngine",
    "SOURCE_MODEL",
    "SOURCE_RECURRING",
    "SOURCE_FALLBACK",
]
