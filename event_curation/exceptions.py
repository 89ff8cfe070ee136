"""Exception types raised across the curation pipeline."""

from __future__ import annotations


class EventCurationError(Exception):
    """Base class for errors raised by event_curation."""


class NotFound(EventCurationError, LookupError):
    """The referenced event does not exist or has no stored embedding."""


class DimensionMismatch(EventCurationError, ValueError):
    """Two vectors were compared whose lengths differ."""


class ContentPolicyError(EventCurationError):
    """The language model refused the request on content-policy grounds."""


class ResponseParseError(EventCurationError, ValueError):
    """A model response did not contain a usable JSON payload."""


__all__ = [
    "EventCurationError",
    "NotFound",
    "DimensionMismatch",
    "ContentPolicyError",
    "ResponseParseError",
]
