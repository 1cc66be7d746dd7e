from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

logger = logging.getLogger("irrigation.hub.events")

HubTopic = Literal["pump", "tank", "sensor", "activity", "alert", "weather"]
HUB_TOPICS: frozenset[str] = frozenset({"pump", "tank", "sensor", "activity", "alert", "weather"})


def _json_default(value: Any) -> Any:
    if isinstance(value, set):
        return sorted(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return str(value)


@dataclass(frozen=True, slots=True)
class EventMessage:
    type: str
    data: Any
    id: str | None = None
    retry: int | None = None
    created_at: float = field(default_factory=lambda: time.time())

    def to_sse(self) -> bytes:
        payload = json.dumps(self.data, separators=(",", ":"), default=_json_default)
        lines: list[str] = []
        if self.retry is not None:
            lines.append(f"retry: {self.retry}")
        if self.id is not None:
            lines.append(f"id: {self.id}")
        lines.append(f"event: {self.type}")
        for chunk in payload.splitlines() or ["{}"]:
            lines.append(f"data: {chunk}")
        return ("\n".join(lines) + "\n\n").encode("utf-8")


class EventSubscription:
    def __init__(self, bus: EventBus, queue: asyncio.Queue[EventMessage], topics: frozenset[str] | None) -> None:
        self._bus = bus
        self._queue = queue
        self._closed = False
        self.topics = topics

    def accepts(self, event_type: str) -> bool:
        return self.topics is None or event_type in self.topics

    async def get(self) -> EventMessage:
        return await self._queue.get()

    def get_nowait(self) -> EventMessage:
        return self._queue.get_nowait()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._bus._unsubscribe(self)


class EventBus:
    """Fan-out broadcaster for irrigation hub state changes, consumed by the SSE endpoint."""

    def __init__(self, *, subscriber_queue_size: int = 256) -> None:
        self._subscriber_queue_size = max(16, subscriber_queue_size)
        self._subscribers: set[EventSubscription] = set()
        self._lock = asyncio.Lock()
        self._counter = 0

    async def publish(self, event_type: HubTopic, data: Any, *, retry: int | None = None) -> int:
        """Queue ``data`` for every interested subscriber; return how many received it."""
        message = EventMessage(type=event_type, data=data, id=self._next_id(), retry=retry)
        delivered = 0
        async with self._lock:
            stale: list[EventSubscription] = []
            for subscription in self._subscribers:
                if not subscription.accepts(event_type):
                    continue
                try:
                    subscription._queue.put_nowait(message)
                    delivered += 1
                except asyncio.QueueFull:
                    stale.append(subscription)
            for subscription in stale:
                logger.debug("Dropping slow event subscriber")
                self._subscribers.discard(subscription)
        return delivered

    async def subscribe(self, topics: Iterable[str] | None = None) -> EventSubscription:
        wanted = frozenset(topics) & HUB_TOPICS if topics is not None else None
        queue: asyncio.Queue[EventMessage] = asyncio.Queue(self._subscriber_queue_size)
        subscription = EventSubscription(self, queue, wanted)
        async with self._lock:
            self._subscribers.add(subscription)
        return subscription

    async def subscriber_count(self) -> int:
        async with self._lock:
            return len(self._subscribers)

    async def _unsubscribe(self, subscription: EventSubscription) -> None:
        async with self._lock:
            self._subscribers.discard(subscription)

    def _next_id(self) -> str:
        self._counter += 1
        return str(self._counter)


event_bus = EventBus()

__all__ = ["EventBus", "EventMessage", "EventSubscription", "HUB_TOPICS", "HubTopic", "event_bus"]
