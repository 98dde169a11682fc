"""In-process fan-out channel for research events."""
from __future__ import annotations

import asyncio
from typing import AsyncIterator

from loguru import logger

from brainlift.models.events import SSEEvent

_CLOSED = object()


class Subscription:
    """A bounded queue of events for one consumer.

    Events are delivered in publish order. When the consumer falls behind
    and the queue is full, the oldest queued event is dropped so that
    publishers never block.
    """

    def __init__(self, bus: "EventBus", maxsize: int, document_id: str | None = None):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(maxsize, 1))
        self.document_id = document_id
        self.dropped = 0
        self._closed = False

    def _offer(self, item: object) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(f"Event subscription lagging; dropped oldest event ({self.dropped} total)")
        self._queue.put_nowait(item)

    def deliver(self, event: SSEEvent) -> None:
        if self._closed:
            return
        if self.document_id is not None and event.document_id != self.document_id:
            return
        self._offer(event)

    async def get(self) -> SSEEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> SSEEvent | None:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if item is _CLOSED:
            return None
        return item

    def drain(self) -> list[SSEEvent]:
        events: list[SSEEvent] = []
        while (event := self.get_nowait()) is not None:
            events.append(event)
        return events

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._unsubscribe(self)
        self._offer(_CLOSED)

    def __aiter__(self) -> AsyncIterator[SSEEvent]:
        return self

    async def __anext__(self) -> SSEEvent:
        return await self.get()


class EventBus:
    def __init__(self, default_maxsize: int = 256):
        self.default_maxsize = default_maxsize
        self._subscriptions: list[Subscription] = []

    def subscribe(self, *, document_id: str | None = None, maxsize: int | None = None) -> Subscription:
        subscription = Subscription(self, maxsize or self.default_maxsize, document_id)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: SSEEvent) -> None:
        for subscription in list(self._subscriptions):
            subscription.deliver(event)

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
