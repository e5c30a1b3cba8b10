"""Fan-out of session updates to connected clients."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

MAX_QUEUED = 1000


class Broadcaster:
    """Each subscriber gets its own queue; publishing never blocks."""

    def __init__(self) -> None:
        self._queues: list[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_QUEUED)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def publish(self, message: dict) -> None:
        for queue in list(self._queues):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Dropping update for slow subscriber (%s)", message.get("type"))
