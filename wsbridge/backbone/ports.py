"""
Backbone Port Interfaces

Abstract contract for the publish/subscribe backbone a bridging session
talks to.

These ports follow the hexagonal architecture pattern:
- Session code depends only on these interfaces
- Adapters (in-memory, Redis, RabbitMQ) implement them
- The adapter implementation is injected through a BackboneFactory

Ownership: every adapter instance belongs to exactly one session and is
never shared. Inbound messages are delivered to the MessageHandler passed
at construction, one at a time, in arrival order.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from wsbridge.protocol.envelope import Envelope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackboneMessage:
    """A message received from the backbone on a subscribed topic."""
    topic: str
    payload: bytes
    received_at: datetime = field(default_factory=datetime.utcnow)


MessageHandler = Callable[[BackboneMessage], Awaitable[None]]


class BackboneAdapter(ABC):
    """
    Abstract interface for one session's backbone connection.

    Implementations must make subscribe() idempotent and close() safe to
    call more than once.
    """

    def __init__(self, on_message: MessageHandler):
        """
        Args:
            on_message: Coroutine invoked for every inbound backbone message
        """
        self._on_message = on_message

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the backbone connection.

        Raises:
            BackboneError: If the backbone cannot be reached
        """
        ...

    @abstractmethod
    async def publish(self, envelope: Envelope) -> None:
        """
        Send the envelope payload to its topic.

        Raises:
            PublishError: If the connection is unavailable
        """
        ...

    @abstractmethod
    async def subscribe(self, topic: str) -> None:
        """
        Register interest in a topic. Subscribing twice is a no-op.

        Raises:
            SubscribeError: If the connection is unavailable
        """
        ...

    @abstractmethod
    async def unsubscribe(self, topic: str) -> None:
        """Drop interest in a topic. Unknown topics are ignored."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Release every subscription, stop delivery and close the connection.

        Idempotent.
        """
        ...

    @property
    @abstractmethod
    def subscriptions(self) -> frozenset[str]:
        """Topics currently subscribed."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether publish/subscribe can currently be issued."""
        ...

    async def _dispatch(self, message: BackboneMessage) -> None:
        """
        Hand an inbound message to the session.

        A failing handler is logged so the reader keeps running.
        """
        try:
            await self._on_message(message)
        except Exception as e:
            logger.error(f"Message handler failed for topic {message.topic}: {e}")


BackboneFactory = Callable[[MessageHandler], BackboneAdapter]


# =============================================================================
# Exceptions
# =============================================================================

class BackboneError(Exception):
    """Base exception for backbone errors."""
    pass


class PublishError(BackboneError):
    """A publish could not be delivered to the backbone."""
    def __init__(self, topic: str, reason: str):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Publish to {topic} failed: {reason}")


class SubscribeError(BackboneError):
    """A subscription could not be registered with the backbone."""
    def __init__(self, topic: str, reason: str):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Subscribe to {topic} failed: {reason}")


class BackboneClosedError(BackboneError):
    """The adapter has been closed."""
    pass
