"""Centralised configuration for event_curation.

Environment variables are loaded once and all related constants are
grouped by service for easier maintenance.  Heuristic constants that are
likely tuning targets can be overridden from the environment.
"""

from __future__ import annotations

import os
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Load environment variables from `.env` (if present)
# ---------------------------------------------------------------------------
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


# ---------------------------------------------------------------------------
# Core credentials (from environment)
# ---------------------------------------------------------------------------
OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
PINECONE_API_KEY: str | None = os.getenv("PINECONE_API_KEY")
MONGODB_URI: str | None = os.getenv("MONGODB_URI")

# ---------------------------------------------------------------------------
# Provider settings
# ---------------------------------------------------------------------------
OPENAI_CHAT_MODEL: str = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT_SECONDS: float = _env_float("OPENAI_TIMEOUT_SECONDS", 60.0)
OPENAI_MAX_RETRIES: int = _env_int("OPENAI_MAX_RETRIES", 2)
EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIMENSIONS: int = 1536

MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "events")
EVENTS_COLLECTION: str = "events"
PROFILES_COLLECTION: str = "user_preferences"

PINECONE_INDEX_NAME: str = os.getenv("PINECONE_INDEX_NAME", "events")
EVENTS_NAMESPACE: str = "events"

# Days are bucketed in the local timezone of the calendar
LOCAL_TIMEZONE: str = os.getenv("LOCAL_TIMEZONE", "America/New_York")

# ---------------------------------------------------------------------------
# Personalization
# ---------------------------------------------------------------------------
CENTROID_CACHE_TTL_SECONDS: int = _env_int("CENTROID_CACHE_TTL_SECONDS", 60 * 60)
SIGNAL_RETENTION_DAYS: int = _env_int("SIGNAL_RETENTION_DAYS", 12 * 30)
GREAT_MATCH_THRESHOLD: float = _env_float("GREAT_MATCH_THRESHOLD", 0.90)
GOOD_MATCH_THRESHOLD: float = _env_float("GOOD_MATCH_THRESHOLD", 0.85)

# ---------------------------------------------------------------------------
# Recurrence detection
# ---------------------------------------------------------------------------
RECURRENCE_LOOKBACK_DAYS: int = _env_int("RECURRENCE_LOOKBACK_DAYS", 28)
RECURRENCE_LOOKAHEAD_DAYS: int = _env_int("RECURRENCE_LOOKAHEAD_DAYS", 56)
RECURRENCE_MIN_MATCHES: int = _env_int("RECURRENCE_MIN_MATCHES", 2)
RECURRENCE_MIN_MATCHES_TITLE_ONLY: int = _env_int("RECURRENCE_MIN_MATCHES_TITLE_ONLY", 3)

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
SCORING_CONTEXT_LIMIT: int = 20
SCORING_CONTEXT_MIN_SIMILARITY: float = 0.4

# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------
SEMANTIC_DEDUP_WINDOW_DAYS: int = _env_int("SEMANTIC_DEDUP_WINDOW_DAYS", 11)
SEMANTIC_DEDUP_DAY_DELAY_SECONDS: float = 0.5

# ---------------------------------------------------------------------------
# Batch orchestration
# ---------------------------------------------------------------------------
PAGE_LIMIT: int = _env_int("PAGE_LIMIT", 200)
TAG_CHUNK_SIZE: int = 30
EMBEDDING_CHUNK_SIZE: int = 30
SCORING_CHUNK_SIZE: int = 20
CHUNK_DELAY_SECONDS: float = _env_float("CHUNK_DELAY_SECONDS", 1.0)
PASS_BUDGET_SECONDS: float = _env_float("PASS_BUDGET_SECONDS", 780.0)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Re-exported names
# ---------------------------------------------------------------------------
__all__ = [
    # credentials
    "OPENAI_API_KEY",
    "PINECONE_API_KEY",
    "MONGODB_URI",
    # providers
    "OPENAI_CHAT_MODEL",
    "OPENAI_TIMEOUT_SECONDS",
    "OPENAI_MAX_RETRIES",
    "EMBEDDING_MODEL",
    "EMBEDDING_DIMENSIONS",
    "MONGODB_DATABASE",
    "EVENTS_COLLECTION",
    "PROFILES_COLLECTION",
    "PINECONE_INDEX_NAME",
    "EVENTS_NAMESPACE",
    "LOCAL_TIMEZONE",
    # personalization
    "CENTROID_CACHE_TTL_SECONDS",
    "SIGNAL_RETENTION_DAYS",
    "GREAT_MATCH_THRESHOLD",
    "GOOD_MATCH_THRESHOLD",
    # recurrence
    "RECURRENCE_LOOKBACK_DAYS",
    "RECURRENCE_LOOKAHEAD_DAYS",
    "RECURRENCE_MIN_MATCHES",
    "RECURRENCE_MIN_MATCHES_TITLE_ONLY",
    # scoring
    "SCORING_CONTEXT_LIMIT",
    "SCORING_CONTEXT_MIN_SIMILARITY",
    # dedup
    "SEMANTIC_DEDUP_WINDOW_DAYS",
    "SEMANTIC_DEDUP_DAY_DELAY_SECONDS",
    # batching
    "PAGE_LIMIT",
    "TAG_CHUNK_SIZE",
    "EMBEDDING_CHUNK_SIZE",
    "SCORING_CHUNK_SIZE",
    "CHUNK_DELAY_SECONDS",
    "PASS_BUDGET_SECONDS",
    # logging
    "LOG_LEVEL",
]
