"""
In-Memory Backbone Implementation

Process-local topic broker using asyncio primitives.
Suitable for development, testing, and single-node deployments where
clients only talk to each other through the bridge.

Features:
- Exact-match topic routing
- One bounded inbound queue and reader task per adapter
- Per-topic subscriber tracking for diagnostics
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any

from wsbridge.backbone.ports import (
    BackboneAdapter,
    BackboneClosedError,
    BackboneMessage,
    MessageHandler,
    PublishError,
    SubscribeError,
)
from wsbridge.protocol.envelope import Envelope, serialize_payload

logger = logging.getLogger(__name__)


class InMemoryBroker:
    """
    Topic broker shared by the in-memory adapters of one process.

    Holds no messages: a publish is copied straight into the inbound
    queue of every adapter subscribed to the topic.
    """

    def __init__(self):
        self._subscribers: dict[str, set["InMemoryBackboneAdapter"]] = defaultdict(set)
        self._published_count = 0

    def attach(self, topic: str, adapter: "InMemoryBackboneAdapter") -> None:
        self._subscribers[topic].add(adapter)

    def detach(self, topic: str, adapter: "InMemoryBackboneAdapter") -> None:
        subscribers = self._subscribers.get(topic)
        if subscribers is None:
            return
        subscribers.discard(adapter)
        if not subscribers:
            del self._subscribers[topic]

    def detach_all(self, adapter: "InMemoryBackboneAdapter") -> None:
        for topic in list(self._subscribers):
            self.detach(topic, adapter)

    def publish(self, topic: str, payload: bytes) -> int:
        """
        Deliver a payload to every subscriber of a topic.

        Returns:
            Number of adapters the message was queued for
        """
        self._published_count += 1
        delivered = 0
        for adapter in list(self._subscribers.get(topic, ())):
            if adapter._enqueue(BackboneMessage(topic=topic, payload=payload)):
                delivered += 1
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def stats(self) -> dict[str, Any]:
        return {
            "topics": len(self._subscribers),
            "published": self._published_count,
        }


class InMemoryBackboneAdapter(BackboneAdapter):
    """
    Backbone adapter bound to an InMemoryBroker.

    Inbound messages are buffered in a bounded queue and delivered by a
    single reader task, so the session sees them in publish order.
    """

    def __init__(
        self,
        broker: InMemoryBroker,
        on_message: MessageHandler,
        max_pending: int = 1000,
    ):
        """
        Args:
            broker: Broker shared with the other sessions of this process
            on_message: Handler for inbound messages
            max_pending: Inbound queue depth; overflow is dropped and logged
        """
        super().__init__(on_message)
        self._broker = broker
        self._inbox: asyncio.Queue[BackboneMessage] = asyncio.Queue(maxsize=max_pending)
        self._topics: set[str] = set()
        self._reader_task: asyncio.Task | None = None
        self._connected = False
        self._closed = False

    async def connect(self) -> None:
        if self._closed:
            raise BackboneClosedError("Adapter is closed")
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._reader_loop(),
                name=f"memory_backbone_reader_{id(self)}"
            )
        self._connected = True

    async def publish(self, envelope: Envelope) -> None:
        if not self._connected:
            raise PublishError(envelope.topic, "not connected")
        count = self._broker.publish(envelope.topic, serialize_payload(envelope.payload))
        logger.debug(f"Published to {envelope.topic} ({count} subscribers)")

    async def subscribe(self, topic: str) -> None:
        if not self._connected:
            raise SubscribeError(topic, "not connected")
        if topic in self._topics:
            return
        self._broker.attach(topic, self)
        self._topics.add(topic)

    async def unsubscribe(self, topic: str) -> None:
        if topic not in self._topics:
            return
        self._broker.detach(topic, self)
        self._topics.discard(topic)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._connected = False
        self._broker.detach_all(self)
        self._topics.clear()

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self._topics)

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _enqueue(self, message: BackboneMessage) -> bool:
        """Queue a message from the broker. Returns False if it was dropped."""
        if self._closed:
            return False
        try:
            self._inbox.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Inbound queue full, dropping message on {message.topic}")
            return False

    async def _reader_loop(self) -> None:
        while True:
            message = await self._inbox.get()
            try:
                await self._dispatch(message)
            finally:
                self._inbox.task_done()
