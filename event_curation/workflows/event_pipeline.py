"""Pass entry points and the end-to-end curation pipeline.

Each ``run_*_pass`` fetches bounded pages of rows matching its "needs work"
predicate, processes them in concurrent chunks and repeats until a page
comes back empty or the wall-clock budget is spent.  Per-item failures are
counted, never raised; errors while fetching a page propagate.

Pass order matters: dedup first (no work on rows about to be deleted), then
tags/summaries, embeddings (need a summary), and scoring (needs embeddings
for similarity context).
"""

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..logging_config import logging as _  # noqa: F401  # ensure config applied early
from ..config import (
    CHUNK_DELAY_SECONDS,
    EMBEDDING_CHUNK_SIZE,
    PAGE_LIMIT,
    PASS_BUDGET_SECONDS,
    SCORING_CHUNK_SIZE,
    TAG_CHUNK_SIZE,
)
from ..models import Event, PassStats
from ..services.deduplication import FingerprintDeduplicator, SemanticDeduplicator
from ..services.embeddings import EmbeddingService, build_embedding_text
from ..services.llm import LanguageModel, is_content_policy_error, is_transient_error
from ..services.personalization import CentroidEngine, Centroids, PersonalizedScore
from ..services.recurrence import RecurrenceDetector
from ..services.scoring import (
    SOURCE_FALLBACK,
    SOURCE_RECURRING,
    QualityScorer,
    ScoringEngine,
    fallback_score,
)
from ..services.similarity import SimilarityIndex
from ..services.storage import (
    NEEDS_EMBEDDING,
    NEEDS_SCORE,
    NEEDS_TAGS_OR_SUMMARY,
    EventStore,
    Predicate,
    ProfileStore,
    VectorIndex,
)
from ..services.tagging import (
    PLACEHOLDER_SUMMARY_EMPTY,
    PLACEHOLDER_SUMMARY_FAILED,
    PLACEHOLDER_SUMMARY_FILTERED,
    PLACEHOLDER_TAGS,
    TagSummaryGenerator,
)
from ..utils.batching import Deadline, run_chunked
from ..utils.datetime_utils import format_duration

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Provider-backed collaborators, constructed once and passed explicitly."""

    store: EventStore
    vectors: VectorIndex
    profiles: ProfileStore
    llm: LanguageModel
    embeddings: EmbeddingService
    similarity: SimilarityIndex
    detector: RecurrenceDetector
    scoring: ScoringEngine
    tagger: TagSummaryGenerator
    centroids: CentroidEngine

    @classmethod
    def build(
        cls,
        *,
        store: Optional[EventStore] = None,
        vectors: Optional[VectorIndex] = None,
        profiles: Optional[ProfileStore] = None,
        llm: Optional[LanguageModel] = None,
        embeddings: Optional[EmbeddingService] = None,
    ) -> "Components":
        """Wire the components; anything not injected uses the default clients."""
        store = store or EventStore()
        vectors = vectors or VectorIndex()
        profiles = profiles or ProfileStore()
        llm = llm or LanguageModel()
        embeddings = embeddings or EmbeddingService()
        similarity = SimilarityIndex(store, vectors, embeddings)
        detector = RecurrenceDetector(store)
        return cls(
            store=store,
            vectors=vectors,
            profiles=profiles,
            llm=llm,
            embeddings=embeddings,
            similarity=similarity,
            detector=detector,
            scoring=ScoringEngine(QualityScorer(llm), detector, similarity),
            tagger=TagSummaryGenerator(llm),
            centroids=CentroidEngine(profiles, store),
        )


@dataclass
class BatchSettings:
    page_limit: int = PAGE_LIMIT
    chunk_size: int = 10
    delay: float = CHUNK_DELAY_SECONDS
    budget: Optional[float] = PASS_BUDGET_SECONDS
    sleep: Callable[[float], None] = time.sleep


@dataclass
class PipelineReport:
    passes: List[PassStats] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(p.failed for p in self.passes)


def _describe(event: Event) -> str:
    return f"'{event.title[:40]}' ({event.id})"


def _run_paged(
    name: str,
    store: EventStore,
    predicate: Predicate,
    worker: Callable[[Event], bool],
    settings: BatchSettings,
) -> PassStats:
    """Page through *predicate* until it is exhausted or the budget is spent.

    Rows already attempted in this run are excluded from later pages, so a
    transient failure is retried by the next scheduled run, not in a loop.
    """
    started = time.monotonic()
    deadline = Deadline(settings.budget)
    stats = PassStats(name=name)
    attempted: List[str] = []

    while True:
        if deadline.expired:
            stats.timed_out = True
            break
        page = store.scan(predicate, limit=settings.page_limit, exclude_ids=attempted)
        if not page:
            break
        logger.info("[%s] Processing page of %d events", name, len(page))
        attempted.extend(e.id for e in page)

        result = run_chunked(
            page,
            worker,
            chunk_size=settings.chunk_size,
            delay=settings.delay,
            deadline=deadline,
            describe=_describe,
            sleep=settings.sleep,
        )
        stats.total += len(page) - result.not_started
        stats.succeeded += result.succeeded
        stats.failed += result.failed
        if result.timed_out:
            stats.timed_out = True
            break
        if len(page) < settings.page_limit:
            break

    stats.duration = time.monotonic() - started
    _log_stats(stats)
    return stats


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def run_dedup_pass(components: Components, *, semantic: bool = True) -> PassStats:
    """Fingerprint tier, then (optionally) the LLM tier over the rolling window."""
    stats = PassStats(name="dedup")
    fingerprint_stats = FingerprintDeduplicator(components.store, components.vectors).run()
    stats.merge(fingerprint_stats)
    stats.duration += fingerprint_stats.duration

    if semantic:
        result = SemanticDeduplicator(
            components.store, components.llm, components.vectors
        ).run()
        stats.succeeded += len(result.ids_to_remove)
        stats.failed += result.stats.failed
        stats.duration += result.stats.duration
        for error in result.errors:
            logger.warning("Semantic dedup day failed: %s", error)

    _log_stats(stats)
    return stats


def run_tag_summary_pass(components: Components, settings: Optional[BatchSettings] = None) -> PassStats:
    """Fill missing tags and summaries; permanent failures get placeholders."""
    settings = settings or BatchSettings(chunk_size=TAG_CHUNK_SIZE)
    store = components.store

    def write(event: Event, tags: Optional[List[str]], summary: Optional[str]) -> None:
        if tags and not event.tags:
            store.set_fields_if_missing(event.id, {"tags": tags})
        if summary and event.summary is None:
            store.set_fields_if_missing(event.id, {"summary": summary})

    def worker(event: Event) -> bool:
        try:
            result = components.tagger.generate(event)
        except Exception as exc:
            if is_transient_error(exc):
                logger.warning("Transient failure tagging %s: %s", _describe(event), exc)
                return False
            filtered = is_content_policy_error(exc)
            logger.error(
                "Failed to tag %s%s: %s", _describe(event), " [CONTENT FILTER]" if filtered else "", exc
            )
            write(
                event,
                PLACEHOLDER_TAGS,
                PLACEHOLDER_SUMMARY_FILTERED if filtered else PLACEHOLDER_SUMMARY_FAILED,
            )
            return False

        if result.is_empty:
            logger.error("Empty tag/summary result for %s", _describe(event))
            write(event, PLACEHOLDER_TAGS, PLACEHOLDER_SUMMARY_EMPTY)
            return False

        write(
            event,
            result.tags or PLACEHOLDER_TAGS,
            result.summary or PLACEHOLDER_SUMMARY_EMPTY,
        )
        return True

    return _run_paged("tags_and_summaries", store, NEEDS_TAGS_OR_SUMMARY, worker, settings)


def run_embedding_pass(components: Components, settings: Optional[BatchSettings] = None) -> PassStats:
    """Embed events that have a summary but no embedding yet."""
    settings = settings or BatchSettings(chunk_size=EMBEDDING_CHUNK_SIZE)

    def worker(event: Event) -> bool:
        text = build_embedding_text(event.title, event.summary, event.tags, event.organizer)
        vector = components.embeddings.embed(text)
        if vector is None:
            return False
        # Index first: the row only stops matching NEEDS_EMBEDDING once both exist
        components.vectors.upsert(event.id, vector, event.start_date)
        components.store.set_fields_if_missing(event.id, {"embedding": vector})
        logger.info("Generated embedding for %s", _describe(event))
        return True

    stats = _run_paged("embeddings", components.store, NEEDS_EMBEDDING, worker, settings)
    coverage = components.store.embedding_stats()
    logger.info(
        "Embedding coverage: %d/%d events (%d with summary)",
        coverage["with_embedding"],
        coverage["total"],
        coverage["with_summary"],
    )
    return stats


def run_scoring_pass(components: Components, settings: Optional[BatchSettings] = None) -> PassStats:
    """Score embedded events; recurring ones bypass the model."""
    settings = settings or BatchSettings(chunk_size=SCORING_CHUNK_SIZE)
    sources: List[str] = []

    def worker(event: Event) -> bool:
        try:
            outcome = components.scoring.evaluate(event)
            record, source = outcome.record, outcome.source
        except Exception as exc:
            if is_transient_error(exc):
                logger.warning("Transient failure scoring %s: %s", _describe(event), exc)
                return False
            logger.error(
                "Failed to score %s%s: %s",
                _describe(event),
                " [CONTENT FILTER]" if is_content_policy_error(exc) else "",
                exc,
            )
            record, source = fallback_score(), SOURCE_FALLBACK

        components.store.set_fields_if_missing(event.id, record.to_fields(), guard_fields=["score"])
        sources.append(source)
        return source != SOURCE_FALLBACK

    stats = _run_paged("scoring", components.store, NEEDS_SCORE, worker, settings)
    stats.skipped = sources.count(SOURCE_RECURRING)
    if stats.skipped:
        logger.info("[scoring] %d recurring events scored without the model", stats.skipped)
    return stats


def get_user_centroids(components: Components, user_id: str) -> Centroids:
    return components.centroids.get_centroids(user_id)


def score_event_for_user(components: Components, user_id: str, event_id: str) -> PersonalizedScore:
    return components.centroids.score_event_for_user(user_id, event_id)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------

def run(components: Optional[Components] = None, *, semantic_dedup: bool = True) -> PipelineReport:
    """Execute every pass once, in dependency order."""
    logger.info("Starting event curation pipeline")
    started = time.monotonic()
    components = components or Components.build()
    report = PipelineReport()

    try:
        report.passes.append(run_dedup_pass(components, semantic=semantic_dedup))
        report.passes.append(run_tag_summary_pass(components))
        report.passes.append(run_embedding_pass(components))
        report.passes.append(run_scoring_pass(components))
    except Exception:
        logger.exception(
            "Pipeline failed after %s", format_duration(time.monotonic() - started)
        )
        raise

    logger.info("Pipeline complete in %s", format_duration(time.monotonic() - started))
    return report


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point; item-level failures are logged, not fatal."""
    parser = argparse.ArgumentParser(description="Run every event curation pass once.")
    parser.add_argument(
        "--skip-semantic-dedup",
        action="store_true",
        help="only run the fingerprint dedup tier (no LLM calls for dedup)",
    )
    args = parser.parse_args(argv)

    report = run(semantic_dedup=not args.skip_semantic_dedup)
    if report.failed:
        logger.warning("Pipeline finished with %d failed items", report.failed)
    return 0


def _log_stats(stats: PassStats) -> None:
    logger.info("=== %s ===", stats.name)
    logger.info("Processed: %d", stats.total)
    logger.info("Succeeded: %d", stats.succeeded)
    logger.info("Failed: %d", stats.failed)
    if stats.skipped:
        logger.info("Skipped: %d", stats.skipped)
    if stats.timed_out:
        logger.info("Stopped early: time budget exhausted")
    logger.info("Duration: %s", format_duration(stats.duration))
    logger.info("=====================================")


__all__ = [
    "Components",
    "BatchSettings",
    "PipelineReport",
    "run_dedup_pass",
    "run_tag_summary_pass",
    "run_embedding_pass",
    "run_scoring_pass",
    "get_user_centroids",
    "score_event_for_user",
    "run",
    "main",
]
