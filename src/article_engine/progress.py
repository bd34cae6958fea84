"""Progress channel: phase updates fanned out to any number of subscribers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    phase: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self):
        return f"[{self.phase}] {self.message}"


_CLOSED = object()


class ProgressChannel:
    """Publishes ProgressEvents to callback listeners and async-iterator subscribers.

    Each subscriber gets its own bounded queue. When a slow subscriber's queue
    is full the oldest event is dropped for that subscriber only, so a stalled
    UI never blocks the pipeline.
    """

    def __init__(self, max_buffer: int = 256):
        self.max_buffer = max_buffer
        self._listeners: list[Callable[[ProgressEvent], None]] = []
        self._queues: list[asyncio.Queue] = []
        self._closed = False
        self.history: list[ProgressEvent] = []

    def add_listener(self, callback: Callable[[ProgressEvent], None]):
        self._listeners.append(callback)

    def subscribe(self) -> AsyncIterator[ProgressEvent]:
        """Return an async iterator of events published from now until close()."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_buffer)
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue) -> AsyncIterator[ProgressEvent]:
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def publish(self, phase: str, message: str) -> ProgressEvent:
        event = ProgressEvent(phase=phase, message=message)
        self.history.append(event)
        log.info(f"[{phase}] {message}", extra={"phase": phase})
        if self._closed:
            return event

        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception as e:
                log.warning(f"Progress listener failed: {e}")

        for queue in list(self._queues):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)
        return event

    def close(self):
        """Signal end-of-stream to every subscriber."""
        if self._closed:
            return
        self._closed = True
        for queue in list(self._queues):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(_CLOSED)
