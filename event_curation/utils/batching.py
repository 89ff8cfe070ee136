"""Chunked, rate-limited parallel execution with per-item failure isolation."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of *items* of at most *size* elements."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for i in range(0, len(items), size):
        yield items[i : i + size]


@dataclass
class ChunkRunResult:
    """Outcome of :func:`run_chunked`."""

    succeeded: int = 0
    failed: int = 0
    not_started: int = 0
    timed_out: bool = False


class Deadline:
    """Wall-clock budget measured with a monotonic clock."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires = None if seconds is None else clock() + seconds

    @property
    def expired(self) -> bool:
        return self._expires is not None and self._clock() >= self._expires


def run_chunked(
    items: Sequence[T],
    worker: Callable[[T], bool],
    *,
    chunk_size: int,
    delay: float = 0.0,
    deadline: Optional[Deadline] = None,
    describe: Callable[[T], str] = repr,
    sleep: Callable[[float], None] = time.sleep,
) -> ChunkRunResult:
    """Run *worker* over *items* in concurrent chunks.

    *worker* returns ``True`` on success and ``False`` for a handled failure;
    any exception it raises is logged and counted as a failure without
    affecting sibling items.  Once *deadline* has expired no further chunk
    is started, but the chunk already in flight always completes.
    """
    result = ChunkRunResult()
    chunks = list(chunked(items, chunk_size))

    for index, chunk in enumerate(chunks):
        if deadline is not None and deadline.expired:
            result.timed_out = True
            result.not_started = sum(len(c) for c in chunks[index:])
            logger.warning(
                "Time budget exhausted: %d items left for the next run", result.not_started
            )
            break

        with ThreadPoolExecutor(max_workers=len(chunk)) as executor:
            futures = [(item, executor.submit(worker, item)) for item in chunk]
            for item, future in futures:
                try:
                    ok = future.result()
                except Exception as exc:
                    logger.error("Unhandled failure for %s: %s", describe(item), exc)
                    ok = False
                if ok:
                    result.succeeded += 1
                else:
                    result.failed += 1

        if delay > 0 and index < len(chunks) - 1:
            sleep(delay)

    return result


__all__ = ["chunked", "ChunkRunResult", "Deadline", "run_chunked"]
