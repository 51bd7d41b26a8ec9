"""Thread-safe, in-process pub/sub for monitor events.

The monitor publishes; the dashboard (or anything else) consumes, either
through a callback registered with on() or by draining its own queue from
subscribe(). Delivery is best-effort: a failing callback is logged and
skipped, and a subscriber whose queue is full is dropped. Publishing never
raises into the scan that produced the event.

Event shape::

    {
        "ts": 1739648400.123,       # publish timestamp
        "seq": 47,                  # monotonic sequence
        "type": "project:added",    # <domain>:<action>
        "data": { ... },            # event-specific payload
    }
"""

from __future__ import annotations

import queue
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from .constants import EVENT_BUFFER_SIZE, SUBSCRIBER_QUEUE_SIZE
from .logging import get_logger

logger = get_logger(__name__)

PROJECT_ADDED = "project:added"
PROJECT_UPDATED = "project:updated"
PROJECT_SKIPPED = "project:skipped"
SCAN_COMPLETE = "scan:complete"
LOG = "log"

# Listener key that receives every event type
ALL_EVENTS = "*"

Listener = Callable[[dict[str, Any]], None]


class EventBus:
    """Pub/sub with a bounded replay buffer.

    ``_lock`` guards the sequence counter, the buffer, listeners and
    subscriber queues. Listeners are called outside the lock.
    """

    def __init__(
        self,
        *,
        buffer_size: int = EVENT_BUFFER_SIZE,
        subscriber_queue_size: int = SUBSCRIBER_QUEUE_SIZE,
    ) -> None:
        self._lock = threading.Lock()
        self._seq = 0
        self._buffer: deque[dict[str, Any]] = deque(maxlen=buffer_size)
        self._listeners: dict[str, list[Listener]] = {}
        self._subscribers: list[queue.Queue[dict[str, Any]]] = []
        self._subscriber_queue_size = subscriber_queue_size

    @property
    def seq(self) -> int:
        """Current sequence number (monotonically increasing)."""
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def on(self, event_type: str, callback: Listener) -> None:
        """Register a callback for one event type, or ALL_EVENTS."""
        with self._lock:
            self._listeners.setdefault(event_type, []).append(callback)

    def off(self, event_type: str, callback: Listener) -> None:
        """Remove a previously registered callback (no-op if unknown)."""
        with self._lock:
            callbacks = self._listeners.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def subscribe(self, maxsize: int | None = None) -> queue.Queue[dict[str, Any]]:
        """Create a queue that receives every event published from now on."""
        q: queue.Queue[dict[str, Any]] = queue.Queue(
            maxsize=self._subscriber_queue_size if maxsize is None else maxsize
        )
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue[dict[str, Any]]) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    def publish(self, event_type: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        """Broadcast an event to listeners and subscriber queues.

        Returns:
            The full event dict with ``seq`` assigned.
        """
        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "data": data or {},
            }
            self._buffer.append(event)

            dead: list[queue.Queue[dict[str, Any]]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(event)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)
                logger.info("Dropped unresponsive event subscriber (queue full)")

            callbacks = [
                *self._listeners.get(event_type, []),
                *self._listeners.get(ALL_EVENTS, []),
            ]

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Event listener failed for %s", event_type)

        return event

    def recent(self, event_type: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """Most recent buffered events, oldest first."""
        with self._lock:
            events = list(self._buffer)
        if event_type is not None:
            events = [e for e in events if e["type"] == event_type]
        if limit <= 0:
            return []
        return events[-limit:]
