"""
Post-commit event delivery.

Services publish a ``QueueEvent`` only after their state change has been
written. ``publish`` just enqueues; a background worker hands each event to
every sink (SMS, realtime subscribers, audit trail). A failing or slow sink
never reaches back into the request that produced the event.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .. import clock
from ..models.queue import QueueEvent

logger = logging.getLogger(__name__)

Sink = Callable[[QueueEvent], Awaitable[Any]]


class EventType:
    QUEUE_CREATED = "queue.created"
    QUEUE_PENDING_LAB = "queue.pending_lab_approval"
    QUEUE_APPROVED = "queue.approved"
    QUEUE_LAB_REJECTED = "queue.lab_rejected"
    QUEUE_CALLED = "queue.called"
    QUEUE_COMPLETED = "queue.completed"
    QUEUE_CANCELLED = "queue.cancelled"
    QUEUE_REJECTED = "queue.rejected"
    LAB_REQUEST_CREATED = "lab_request.created"
    LAB_REQUEST_UPDATED = "lab_request.updated"


def entry_event(
    event_type: str,
    entry: dict,
    actor_id: Optional[str] = None,
    **context: Any,
) -> QueueEvent:
    """Build the event describing a queue entry document."""
    return QueueEvent(
        event_type=event_type,
        department=entry.get("department"),
        queue_number=entry.get("queue_number"),
        patient_id=entry.get("patient_id"),
        queue_entry_id=str(entry["_id"]),
        status=entry.get("status"),
        actor_id=actor_id,
        context=context,
        occurred_at=clock.now(),
    )


class EventBus:
    """In-process outbox with a single delivery worker."""

    def __init__(self):
        self._sinks: Dict[str, Sink] = {}
        self._queue: "asyncio.Queue[QueueEvent]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def register(self, name: str, sink: Sink) -> None:
        self._sinks[name] = sink

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def publish(self, event: QueueEvent) -> None:
        """Enqueue an event for delivery; never blocks, never raises."""
        try:
            self._queue.put_nowait(event)
        except Exception as e:
            logger.error("Dropping event %s for %s: %s", event.event_type, event.queue_number, e)

    async def deliver(self, event: QueueEvent) -> None:
        for name, sink in list(self._sinks.items()):
            try:
                await sink(event)
            except Exception:
                logger.exception("Sink %s failed for %s (%s)", name, event.event_type, event.queue_number)

    async def drain(self) -> int:
        """Deliver everything queued so far, in order. Returns the count."""
        delivered = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self.deliver(event)
            finally:
                self._queue.task_done()
            delivered += 1
        return delivered

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.deliver(event)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self.drain()


_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get or create the global event bus."""
    global _bus
    if _bus is None:
        _bus = EventBus()
    return _bus


def reset_event_bus(sinks: Optional[List[tuple]] = None) -> EventBus:
    """Replace the global bus (startup and tests)."""
    global _bus
    _bus = EventBus()
    for name, sink in sinks or []:
        _bus.register(name, sink)
    return _bus


def publish(event: QueueEvent) -> None:
    get_event_bus().publish(event)
