"""
Event Bus — async pub/sub between transports and the app.

Transports publish typed events (QRReady, Authenticated, AuthFailed, Ready,
Disconnected, MessageReceived) on TRANSPORT_TOPIC. RelayApp subscribes and
routes them, so transport code never calls into the exchange pipeline.

Every subscriber owns a bounded asyncio.Queue. Publishing never waits: if
a subscriber has fallen that far behind, the event is dropped for it and
a warning is logged. A listener runs until its task is cancelled.

    bus = EventBus()
    queue = bus.subscribe(TRANSPORT_TOPIC)
    await bus.publish(TRANSPORT_TOPIC, Ready())
    async for event in bus.listen(queue):
        ...
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)

TRANSPORT_TOPIC = "transport.events"


class EventBus:
    def __init__(self) -> None:
        self._topics: dict[str, list[asyncio.Queue]] = {}

    def subscribe(self, topic: str, maxsize: int = 1000) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._topics.setdefault(topic, []).append(queue)
        logger.debug("New subscriber on %s (%d now)", topic, self.subscriber_count(topic))
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        """Drop a subscriber. Unknown queues are ignored."""
        queues = self._topics.get(topic)
        if not queues or queue not in queues:
            return
        queues.remove(queue)
        if not queues:
            self._topics.pop(topic)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    async def publish(self, topic: str, event: Any) -> int:
        """Hand event to every subscriber of topic; returns how many took it."""
        taken = sum(self._offer(q, event, topic) for q in self._topics.get(topic, ()))
        if not taken:
            logger.debug("%s on %s reached no subscriber", type(event).__name__, topic)
        return taken

    async def listen(self, queue: asyncio.Queue) -> AsyncIterator[Any]:
        """Yield events from queue until the consuming task is cancelled."""
        while True:
            yield await queue.get()

    @staticmethod
    def _offer(queue: asyncio.Queue, item: Any, topic: str) -> bool:
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning(
                "Subscriber on %s is full, dropping %s", topic, type(item).__name__
            )
            return False
        return True
