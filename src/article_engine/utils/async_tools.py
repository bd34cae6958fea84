"""Timeouts and rate-limited batching for collaborator calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, TypeVar

from article_engine.errors import ProviderError

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def with_timeout(awaitable: Awaitable[T], seconds: float, label: str) -> T:
    """Await ``awaitable`` for at most ``seconds``; a timeout becomes a transient ProviderError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise ProviderError(f"{label} timed out after {seconds:.0f}s") from None


def generation_timeout(expected_words: int, settings) -> float:
    """Long-form calls get a longer budget that scales with the requested length."""
    extra = max(0, expected_words) / 1000 * settings.generation_timeout_per_1k_words
    return settings.generation_timeout + extra


async def run_in_batches(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 2,
    delay: float = 1.0,
    cancel_event: asyncio.Event | None = None,
) -> list[tuple[T, R | BaseException]]:
    """Run ``worker`` over ``items`` in windows of ``concurrency`` calls.

    Sleeps ``delay`` seconds between windows and checks ``cancel_event``
    before each one. Failures are returned in place of results, never raised.
    Items not started before cancellation are absent from the output.
    """
    pending = list(items)
    results: list[tuple[T, R | BaseException]] = []

    for start in range(0, len(pending), max(1, concurrency)):
        if cancel_event is not None and cancel_event.is_set():
            log.info(f"Batch cancelled after {len(results)}/{len(pending)} items")
            break
        if start > 0 and delay > 0:
            await asyncio.sleep(delay)

        window = pending[start:start + max(1, concurrency)]
        outcomes = await asyncio.gather(*(worker(item) for item in window), return_exceptions=True)
        results.extend(zip(window, outcomes))

    return results
