"""Shared fixtures for bridge tests.

RecordingAdapter stands in for a real backbone: it records every
publish/subscribe call and lets tests push inbound messages at the
session without a broker.
"""

import pytest
import pytest_asyncio

from wsbridge.backbone.ports import (
    BackboneAdapter,
    BackboneMessage,
    PublishError,
    SubscribeError,
)
from wsbridge.protocol.envelope import Envelope
from wsbridge.session.session import BridgeSession


class RecordingAdapter(BackboneAdapter):
    """In-test adapter that records calls instead of talking to a broker."""

    def __init__(self, on_message):
        super().__init__(on_message)
        self.calls: list[tuple[str, object]] = []
        self.topics: set[str] = set()
        self.connected = False
        self.close_count = 0
        self.fail_publish = False
        self.fail_subscribe = False
        self.fail_close = False

    async def connect(self) -> None:
        self.connected = True

    async def publish(self, envelope: Envelope) -> None:
        self.calls.append(("publish", envelope))
        if self.fail_publish:
            raise PublishError(envelope.topic, "backbone down")

    async def subscribe(self, topic: str) -> None:
        self.calls.append(("subscribe", topic))
        if self.fail_subscribe:
            raise SubscribeError(topic, "backbone down")
        self.topics.add(topic)

    async def unsubscribe(self, topic: str) -> None:
        self.calls.append(("unsubscribe", topic))
        self.topics.discard(topic)

    async def close(self) -> None:
        self.close_count += 1
        self.connected = False
        if self.fail_close:
            raise RuntimeError("close failed")

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self.topics)

    @property
    def is_connected(self) -> bool:
        return self.connected

    # Test helpers

    async def deliver(self, topic: str, payload: bytes) -> None:
        await self._dispatch(BackboneMessage(topic=topic, payload=payload))

    @property
    def published(self) -> list[Envelope]:
        return [arg for name, arg in self.calls if name == "publish"]

    @property
    def subscribed(self) -> list[str]:
        return [arg for name, arg in self.calls if name == "subscribe"]


class AdapterFactory:
    """BackboneFactory that keeps every adapter it builds."""

    def __init__(self):
        self.created: list[RecordingAdapter] = []

    def __call__(self, on_message) -> RecordingAdapter:
        adapter = RecordingAdapter(on_message)
        self.created.append(adapter)
        return adapter


class SentFrames(list):
    """Collects frames a session writes to its client."""

    async def __call__(self, text: str) -> None:
        self.append(text)


@pytest.fixture
def adapter_factory() -> AdapterFactory:
    return AdapterFactory()


@pytest.fixture
def sent() -> SentFrames:
    return SentFrames()


@pytest_asyncio.fixture
async def session(adapter_factory, sent):
    """A started session backed by a RecordingAdapter."""
    bridge_session = BridgeSession(
        conn_id="conn_test",
        send=sent,
        backbone_factory=adapter_factory,
    )
    await bridge_session.start()
    yield bridge_session
    await bridge_session.close()


@pytest.fixture
def adapter(session, adapter_factory) -> RecordingAdapter:
    return adapter_factory.created[0]
