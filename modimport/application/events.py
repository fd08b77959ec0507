"""Job-state-changed events and the bus that fans them out to subscribers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256


@dataclass(frozen=True)
class JobEvent:
    job_id: str
    status: str
    previous_status: str | None
    job: dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "previous_status": self.previous_status,
            "job": self.job,
            "emitted_at": self.emitted_at.isoformat(),
        }


class JobEventBus:
    """Publishes job updates to callbacks and asyncio queues.

    Publishers never block: a full subscriber queue drops its oldest event.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._callbacks: list[Callable[[JobEvent], None]] = []
        self._queues: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue[JobEvent]]] = []
        self._lock = Lock()

    def subscribe(self, callback: Callable[[JobEvent], None]) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def open_queue(self) -> asyncio.Queue[JobEvent]:
        """Queue receiving every event from now on. Must be called inside a running loop."""
        queue: asyncio.Queue[JobEvent] = asyncio.Queue(maxsize=self._queue_size)
        with self._lock:
            self._queues.append((asyncio.get_running_loop(), queue))
        return queue

    def close_queue(self, queue: asyncio.Queue[JobEvent]) -> None:
        with self._lock:
            self._queues = [(loop, q) for loop, q in self._queues if q is not queue]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks) + len(self._queues)

    @staticmethod
    def _offer(queue: asyncio.Queue[JobEvent], event: JobEvent) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            logger.warning("[JobEvents] Subscriber queue full, dropped oldest event")
        queue.put_nowait(event)

    def publish(self, event: JobEvent) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
            queues = list(self._queues)

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("[JobEvents] Subscriber failed for job %s", event.job_id)

        for loop, queue in queues:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                self._offer(queue, event)
            elif not loop.is_closed():
                loop.call_soon_threadsafe(self._offer, queue, event)
