"""Combined tag + summary generation in a single chat call."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..models import Event
from ..utils.llm_parsing import extract_structured_json, string_list
from ..utils.text_cleaning import sanitize_llm_text, truncate
from .llm import LanguageModel

logger = logging.getLogger(__name__)

# Official tags the model may choose from; anything else is dropped
ALLOWED_TAGS = (
    # Entertainment
    "Live Music", "Comedy", "Theater & Film", "Dance", "Trivia",
    # Food & Drink
    "Dining", "Beer", "Wine & Spirits", "Food Classes",
    # Activities
    "Art", "Crafts", "Fitness", "Wellness", "Spiritual", "Outdoors", "Tours", "Gaming",
    "Sports", "Education", "Book Club",
    # Audience/Social
    "Family", "Dating", "Networking", "Nightlife", "LGBTQ+", "Pets",
    "Community", "Civic", "Volunteering", "Support Groups",
    # Seasonal
    "Holiday", "Markets",
)

# Placeholders persisted so a failing event is not picked up again forever
PLACEHOLDER_TAGS = ["Event"]
PLACEHOLDER_SUMMARY_EMPTY = "[AI processing returned no results]"
PLACEHOLDER_SUMMARY_FAILED = "[AI processing failed]"
PLACEHOLDER_SUMMARY_FILTERED = "[Content filtered by AI safety policy]"

TAG_SUMMARY_SYSTEM_PROMPT = (
    "You are an expert event analyzer for a local events calendar. For each event provide:\n\n"
    "1. TAGS in two categories:\n"
    "   - OFFICIAL TAGS (1-4): choose ONLY from this list, exact spelling: "
    + ", ".join(ALLOWED_TAGS)
    + "\n"
    "   - CUSTOM TAGS (1-5): lowercase, specific descriptors for genre, vibe, skill level "
    "or venue type (e.g. \"jazz\", \"beginner friendly\").\n\n"
    "2. SUMMARY: one active sentence under 20 words for semantic search.\n"
    "   - Never repeat the event title or venue name.\n"
    "   - Focus on the hook: the vibe, a detail not in the title, or the exact activity.\n"
    "   - No city names, no dates, no prices.\n\n"
    "Return ONLY valid JSON in this format:\n"
    '{"official": ["Tag1", "Tag2"], "custom": ["tag1", "tag2"], "summary": "Your summary here."}'
)


@dataclass(slots=True)
class TagSummaryResult:
    tags: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    token_usage: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.tags and not self.summary


def build_event_info(event: Event) -> str:
    lines = [
        f"Title: {event.title}",
        f"Description: {truncate(event.description, 500)}" if event.description else None,
        f"Location: {event.location}" if event.location else None,
        f"Organizer: {event.organizer}" if event.organizer else None,
        f"Date: {event.start_date.isoformat()}",
    ]
    return "\n".join(line for line in lines if line)


def parse_tag_summary_response(text: str, title: str = "") -> TagSummaryResult:
    """Validate official tags against :data:`ALLOWED_TAGS` and clean the summary."""
    parsed = extract_structured_json(text)

    official = string_list(parsed.get("official"))
    valid_official = [tag for tag in official if tag in ALLOWED_TAGS]
    invalid = [tag for tag in official if tag not in ALLOWED_TAGS]
    if invalid:
        logger.warning("Invalid official tags for '%s': %s", title, ", ".join(invalid))

    custom = string_list(parsed.get("custom"))

    summary = parsed.get("summary")
    if isinstance(summary, str) and summary.strip():
        summary = sanitize_llm_text(summary) or None
    else:
        summary = None

    return TagSummaryResult(tags=list(dict.fromkeys(valid_official + custom)), summary=summary)


class TagSummaryGenerator:
    """Generate tags and a one-sentence summary for an event."""

    def __init__(self, llm: LanguageModel, max_tokens: int = 20000):
        self.llm = llm
        self.max_tokens = max_tokens

    def generate(self, event: Event) -> TagSummaryResult:
        """Return tags and summary; an unparseable answer yields an empty result.

        Provider errors, including content-policy refusals, propagate.
        """
        completion = self.llm.complete(
            TAG_SUMMARY_SYSTEM_PROMPT,
            f"Analyze this event:\n\n{build_event_info(event)}",
            self.max_tokens,
        )
        try:
            result = parse_tag_summary_response(completion.text, event.title)
        except ValueError as exc:
            logger.warning("Unparseable tag/summary response for '%s': %s", event.title, exc)
            result = TagSummaryResult()
        result.token_usage = completion.token_usage
        logger.info(
            "Generated %d tags for '%s' (%d tokens)",
            len(result.tags),
            event.title[:40],
            completion.token_usage,
        )
        return result


__all__ = [
    "ALLOWED_TAGS",
    "PLACEHOLDER_TAGS",
    "PLACEHOLDER_SUMMARY_EMPTY",
    "PLACEHOLDER_SUMMARY_FAILED",
    "PLACEHOLDER_SUMMARY_FILTERED",
    "TAG_SUMMARY_SYSTEM_PROMPT",
    "TagSummaryResult",
    "build_event_info",
    "parse_tag_summary_response",
    "TagSummaryGenerator",
]
