"""
In-process fan-out of import progress events.

The engine publishes from a worker thread; SSE handlers subscribe from the
event loop.  Each subscriber owns a small bounded ``asyncio.Queue`` fed with
``loop.call_soon_threadsafe`` so ``publish`` never waits on a slow client:
when a queue is full the oldest pending event is dropped, which only ever
loses intermediate progress (the completion event is always the newest).

A subscriber is first given the durable snapshot of the job, so a client
that connects late or reconnects sees the current state without waiting
for the next event, and a job that already finished yields its terminal
event immediately.  While idle the stream re-reads the durable state every
heartbeat interval.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

EVENT_PROGRESS = "progress"
EVENT_COMPLETE = "complete"
EVENT_ERROR = "error"
EVENT_HEARTBEAT = "heartbeat"

_FINAL_EVENTS = frozenset({EVENT_COMPLETE, EVENT_ERROR})


@dataclass(frozen=True)
class ImportEvent:
    """One message on an import's progress stream."""

    kind: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return self.kind in _FINAL_EVENTS

    @property
    def processed_rows(self) -> int:
        if "processedRows" in self.data:
            return int(self.data["processedRows"])
        return int((self.data.get("results") or {}).get("processedRows", 0))

    @property
    def sse_name(self) -> str:
        return f"import:{self.kind}"


class _Subscription:
    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int) -> None:
        self.loop = loop
        self.queue: asyncio.Queue[ImportEvent] = asyncio.Queue(maxsize=maxsize)

    def put(self, event: ImportEvent) -> None:
        # Runs on the subscriber's loop
        if self.queue.full():
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(event)


SnapshotLoader = Callable[[], ImportEvent | None]


class ProgressBroadcaster:
    """Per-import-id publish/subscribe hub.

    Args:
        queue_size: Pending events kept per subscriber before coalescing.
        heartbeat_seconds: Idle interval after which a subscriber re-reads
            the durable job state.
    """

    def __init__(self, queue_size: int = 32, heartbeat_seconds: float = 15.0) -> None:
        self._queue_size = queue_size
        self._heartbeat = heartbeat_seconds
        self._lock = threading.Lock()
        self._subscribers: dict[int, set[_Subscription]] = {}

    def subscriber_count(self, import_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(import_id, ()))

    def publish(self, import_id: int, event: ImportEvent) -> None:
        """Deliver *event* to every current subscriber of *import_id*.

        Safe to call from any thread; returns without waiting.
        """
        with self._lock:
            targets = list(self._subscribers.get(import_id, ()))

        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub.put, event)
            except RuntimeError:
                # Subscriber's loop is closed
                self._remove(import_id, sub)

    def _add(self, import_id: int, sub: _Subscription) -> None:
        with self._lock:
            self._subscribers.setdefault(import_id, set()).add(sub)

    def _remove(self, import_id: int, sub: _Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(import_id)
            if subs is None:
                return
            subs.discard(sub)
            if not subs:
                del self._subscribers[import_id]

    async def subscribe(
        self,
        import_id: int,
        load_snapshot: SnapshotLoader,
    ) -> AsyncIterator[ImportEvent]:
        """Yield events for *import_id* until the job reaches a final state.

        ``load_snapshot`` is a blocking callable returning the job's durable
        state as an event (``None`` when the job no longer exists); it runs in
        a worker thread.  The subscription is registered before the snapshot
        is read so no event published in between is missed.
        """
        sub = _Subscription(asyncio.get_running_loop(), self._queue_size)
        self._add(import_id, sub)
        try:
            snapshot = await asyncio.to_thread(load_snapshot)
            if snapshot is None:
                return
            yield snapshot
            if snapshot.is_final:
                return
            last_processed = snapshot.processed_rows

            while True:
                try:
                    event = await asyncio.wait_for(sub.queue.get(), timeout=self._heartbeat)
                except asyncio.TimeoutError:
                    event = await asyncio.to_thread(load_snapshot)
                    if event is None:
                        return
                    if not event.is_final and event.processed_rows <= last_processed:
                        yield ImportEvent(EVENT_HEARTBEAT, {"importId": import_id})
                        continue

                if not event.is_final and event.processed_rows < last_processed:
                    continue
                last_processed = max(last_processed, event.processed_rows)
                yield event
                if event.is_final:
                    return
        finally:
            self._remove(import_id, sub)
            logger.debug("subscriber left import %s", import_id)
