from __future__ import annotations

import asyncio
import logging
import threading
import uuid

from .writer import LiveEvent, heartbeat_event

logger = logging.getLogger(__name__)


class Subscription:
    """One dashboard connection's mailbox, bound to the loop that opened it."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue_size: int) -> None:
        self.id = str(uuid.uuid4())
        self.dropped = 0
        self._loop = loop
        self._queue: asyncio.Queue[LiveEvent] = asyncio.Queue(maxsize=queue_size)

    def offer(self, event: LiveEvent) -> bool:
        """Hand an event over from any thread. False once the owning loop is gone."""
        if self._loop.is_closed():
            return False
        try:
            self._loop.call_soon_threadsafe(self._deliver, event)
        except RuntimeError:
            return False
        return True

    def _deliver(self, event: LiveEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    async def get(self) -> LiveEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


class LiveEventBus:
    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = max(1, queue_size)
        self._lock = threading.Lock()
        self._subscribers: dict[str, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(asyncio.get_running_loop(), self._queue_size)
        with self._lock:
            self._subscribers[subscription.id] = subscription
        logger.info("live subscriber connected id=%s", subscription.id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
        if removed is not None:
            logger.info("live subscriber removed id=%s dropped=%s", subscription.id, subscription.dropped)

    def publish(self, event: LiveEvent) -> int:
        with self._lock:
            snapshot = list(self._subscribers.values())
        offered = 0
        for subscription in snapshot:
            if subscription.offer(event):
                offered += 1
            else:
                self.unsubscribe(subscription)
        return offered

    def heartbeat(self) -> int:
        return self.publish(heartbeat_event())

    async def run_heartbeats(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.heartbeat()
