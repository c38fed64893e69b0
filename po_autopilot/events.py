"""
In-process notification channel.

``EventBus`` is a small publish/subscribe hub.  One instance is built per
application (see ``api.create_app``) and handed to whatever needs to publish
or listen.  Delivery is best-effort and synchronous: a handler that raises is
logged and skipped, never propagated to the publisher or to other handlers.

``EventStream`` adapts the bus to a Server-Sent Events feed for dashboards.
It emits a keep-alive ping every ``heartbeat_interval`` seconds, whether or
not events are flowing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from .utils import utcnow

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

PO_CREATED = "po:created"
PO_UPDATED = "po:updated"
PO_STATUS_CHANGED = "po:status_changed"

PO_TOPICS = (PO_CREATED, PO_UPDATED, PO_STATUS_CHANGED)

# SSE message type for each bus topic.
STREAM_TYPES = {
    PO_CREATED: "po_created",
    PO_UPDATED: "po_updated",
    PO_STATUS_CHANGED: "po_status_changed",
}


class EventBus:
    def __init__(self) -> None:
        self._listeners: Dict[str, Set[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``topic`` and return an unsubscribe callable."""
        with self._lock:
            self._listeners.setdefault(topic, set()).add(handler)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.get(topic, set()).discard(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver ``payload`` to every handler of ``topic``.

        Returns the number of handlers that completed without raising.
        """
        with self._lock:
            handlers = list(self._listeners.get(topic, ()))
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception("Event handler for %s failed", topic)
        return delivered

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        with self._lock:
            if topic is not None:
                return len(self._listeners.get(topic, ()))
            return sum(len(handlers) for handlers in self._listeners.values())


def format_sse(message: Dict[str, Any]) -> str:
    return f"data: {json.dumps(message, default=str)}\n\n"


class EventStream:
    """One SSE subscriber.

    Messages published from worker threads are handed to the event loop
    that iterates the stream.  Subscriptions are released when iteration
    stops for any reason: client disconnect, cancellation or ``close()``.
    """

    def __init__(
        self,
        bus: EventBus,
        heartbeat_interval: float = 30.0,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> None:
        self.bus = bus
        self.heartbeat_interval = heartbeat_interval
        self._is_disconnected = is_disconnected
        self._unsubscribers: List[Callable[[], None]] = []
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.closed = False

    def _enqueue(self, message: Dict[str, Any]) -> None:
        if self.closed or self._loop is None or self._queue is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, message)
        except RuntimeError:
            # loop already closed
            self.close()

    def _open(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        for topic in PO_TOPICS:
            stream_type = STREAM_TYPES[topic]
            self._unsubscribers.append(
                self.bus.subscribe(topic, lambda data, t=stream_type: self._enqueue({"type": t, "data": data}))
            )

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        logger.debug("Event stream closed")

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        self._open()
        next_ping = self._loop.time() + self.heartbeat_interval
        try:
            yield {"type": "connected", "timestamp": utcnow().isoformat()}
            while not self.closed:
                if self._is_disconnected is not None and await self._is_disconnected():
                    break
                now = self._loop.time()
                remaining = next_ping - now
                if remaining <= 0:
                    # the ping clock is not reset by events
                    next_ping = now + self.heartbeat_interval
                    yield {"type": "ping", "timestamp": utcnow().isoformat()}
                    continue
                try:
                    message = await asyncio.wait_for(self._queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    continue
                yield message
        finally:
            self.close()

    async def sse(self) -> AsyncIterator[str]:
        async for message in self.messages():
            yield format_sse(message)
