"""
Redis Backbone Implementation

Bridges sessions onto Redis PUBLISH/SUBSCRIBE channels.

Each adapter owns its own client and PubSub object, so one session's
subscriptions are never visible to another. Channel names are the
bridge topics verbatim.

Delivery guarantees are those of Redis pub/sub: at-most-once, no
persistence, no replay for late subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from wsbridge.backbone.ports import (
    BackboneAdapter,
    BackboneClosedError,
    BackboneError,
    BackboneMessage,
    MessageHandler,
    PublishError,
    SubscribeError,
)
from wsbridge.protocol.envelope import Envelope, serialize_payload

if TYPE_CHECKING:
    from redis.asyncio import Redis as RedisType
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)


class RedisBackboneAdapter(BackboneAdapter):
    """
    Redis pub/sub adapter for one session.

    The reader task is started with the first subscription; redis-py
    refuses to read from a PubSub that has no channels.
    """

    def __init__(
        self,
        on_message: MessageHandler,
        redis_url: str = "redis://localhost:6379",
        poll_timeout: float = 1.0,
    ):
        """
        Initialize Redis adapter.

        Args:
            on_message: Handler for inbound messages
            redis_url: Redis connection URL
            poll_timeout: Seconds the reader waits for a message per poll
        """
        super().__init__(on_message)
        self._redis_url = redis_url
        self._poll_timeout = poll_timeout

        self._redis: RedisType | None = None
        self._pubsub: PubSub | None = None
        self._topics: set[str] = set()
        self._reader_task: asyncio.Task | None = None
        self._closed = False

    async def connect(self) -> None:
        """Open the client connection and verify the server answers."""
        if self._closed:
            raise BackboneClosedError("Adapter is closed")
        if self._redis is not None:
            return

        client = aioredis.from_url(self._redis_url)
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            await client.aclose()
            raise BackboneError(f"Redis unavailable at {self._redis_url}: {e}") from e

        self._redis = client
        self._pubsub = client.pubsub(ignore_subscribe_messages=True)
        logger.debug(f"Redis backbone connected to {self._redis_url}")

    async def publish(self, envelope: Envelope) -> None:
        if self._redis is None:
            raise PublishError(envelope.topic, "not connected")
        try:
            receivers = await self._redis.publish(
                envelope.topic,
                serialize_payload(envelope.payload)
            )
        except (RedisError, OSError) as e:
            raise PublishError(envelope.topic, str(e)) from e
        logger.debug(f"Published to {envelope.topic} ({receivers} receivers)")

    async def subscribe(self, topic: str) -> None:
        if self._pubsub is None:
            raise SubscribeError(topic, "not connected")
        if topic in self._topics:
            return
        try:
            await self._pubsub.subscribe(topic)
        except (RedisError, OSError) as e:
            raise SubscribeError(topic, str(e)) from e

        self._topics.add(topic)
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._reader_loop(),
                name=f"redis_backbone_reader_{id(self)}"
            )

    async def unsubscribe(self, topic: str) -> None:
        if self._pubsub is None or topic not in self._topics:
            return
        self._topics.discard(topic)
        try:
            await self._pubsub.unsubscribe(topic)
        except (RedisError, OSError) as e:
            logger.warning(f"Unsubscribe from {topic} failed: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        pubsub, client = self._pubsub, self._redis
        self._pubsub = None
        self._redis = None
        self._topics.clear()

        try:
            if pubsub is not None:
                await pubsub.unsubscribe()
                await pubsub.aclose()
        finally:
            if client is not None:
                await client.aclose()
        logger.debug("Redis backbone closed")

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self._topics)

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    async def _reader_loop(self) -> None:
        """Poll the PubSub and hand each message to the session."""
        while True:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._poll_timeout
                )
            except (RedisError, OSError) as e:
                logger.error(f"Error reading from Redis pubsub: {e}")
                await asyncio.sleep(self._poll_timeout)
                continue

            if message is None or message.get("type") != "message":
                continue

            channel = message["channel"]
            if isinstance(channel, bytes):
                channel = channel.decode("utf-8")
            data = message["data"]
            if isinstance(data, str):
                data = data.encode("utf-8")

            await self._dispatch(BackboneMessage(topic=channel, payload=data))
