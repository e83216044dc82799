"""Unit tests for RabbitMQBackboneAdapter.

aio-pika is replaced with mocks; these tests check exchange/queue setup,
bindings, publishing and teardown.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aio_pika import ExchangeType
from aio_pika.exceptions import ChannelInvalidStateError

from wsbridge.backbone import rabbitmq
from wsbridge.backbone.ports import (
    BackboneError,
    BackboneMessage,
    PublishError,
    SubscribeError,
)
from wsbridge.backbone.rabbitmq import RabbitMQBackboneAdapter
from wsbridge.protocol.envelope import Envelope, FrameKind
from wsbridge.session.session import BridgeSession


@pytest.fixture
def amqp(monkeypatch):
    """Mock connection graph: connection -> channel -> exchange, queue."""
    exchange = MagicMock()
    exchange.publish = AsyncMock()

    queue = MagicMock()
    queue.name = "amq.gen-test"
    queue.consume = AsyncMock(return_value="ctag-1")
    queue.bind = AsyncMock()
    queue.unbind = AsyncMock()
    queue.cancel = AsyncMock()

    channel = MagicMock()
    channel.set_qos = AsyncMock()
    channel.declare_exchange = AsyncMock(return_value=exchange)
    channel.declare_queue = AsyncMock(return_value=queue)

    connection = MagicMock()
    connection.is_closed = False
    connection.channel = AsyncMock(return_value=channel)
    connection.close = AsyncMock()

    connect_robust = AsyncMock(return_value=connection)
    monkeypatch.setattr(rabbitmq.aio_pika, "connect_robust", connect_robust)

    mocks = MagicMock()
    mocks.connect_robust = connect_robust
    mocks.connection = connection
    mocks.channel = channel
    mocks.exchange = exchange
    mocks.queue = queue
    return mocks


async def noop_handler(message: BackboneMessage) -> None:
    pass


@pytest.mark.asyncio
async def test_connect_declares_topic_exchange_and_private_queue(amqp):
    adapter = RabbitMQBackboneAdapter(
        noop_handler,
        rabbitmq_url="amqp://example/",
        exchange_name="bridge.test",
    )
    await adapter.connect()

    amqp.connect_robust.assert_awaited_once_with("amqp://example/")
    amqp.channel.set_qos.assert_awaited_once_with(prefetch_count=1)
    amqp.channel.declare_exchange.assert_awaited_once_with(
        "bridge.test", ExchangeType.TOPIC, durable=True
    )
    amqp.channel.declare_queue.assert_awaited_once_with(exclusive=True, auto_delete=True)
    amqp.queue.consume.assert_awaited_once()
    assert adapter.is_connected
    await adapter.close()


@pytest.mark.asyncio
async def test_connect_failure_raises_backbone_error(amqp):
    amqp.connect_robust.side_effect = ConnectionError("refused")
    adapter = RabbitMQBackboneAdapter(noop_handler)

    with pytest.raises(BackboneError):
        await adapter.connect()
    assert not adapter.is_connected


@pytest.mark.asyncio
async def test_setup_failure_closes_connection(amqp):
    amqp.channel.declare_exchange.side_effect = ConnectionError("channel closed")
    adapter = RabbitMQBackboneAdapter(noop_handler)

    with pytest.raises(BackboneError):
        await adapter.connect()
    amqp.connection.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_publish_uses_topic_as_routing_key(amqp):
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()

    await adapter.publish(Envelope(topic="room/1", payload="hi"))

    call = amqp.exchange.publish.await_args
    assert call.kwargs["routing_key"] == "room/1"
    assert call.args[0].body == b"hi"
    await adapter.close()


@pytest.mark.asyncio
async def test_publish_error_is_translated(amqp):
    amqp.exchange.publish.side_effect = ConnectionError("gone")
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()

    with pytest.raises(PublishError):
        await adapter.publish(Envelope(topic="room/1", payload="hi"))
    await adapter.close()


@pytest.mark.asyncio
async def test_subscribe_binds_once(amqp):
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()

    await adapter.subscribe("priv/42")
    await adapter.subscribe("priv/42")

    amqp.queue.bind.assert_awaited_once_with(amqp.exchange, routing_key="priv/42")
    assert adapter.subscriptions == {"priv/42"}
    await adapter.close()


@pytest.mark.asyncio
async def test_subscribe_error_is_translated(amqp):
    amqp.queue.bind.side_effect = ConnectionError("gone")
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()

    with pytest.raises(SubscribeError):
        await adapter.subscribe("priv/42")
    assert adapter.subscriptions == frozenset()
    await adapter.close()


@pytest.mark.asyncio
async def test_unsubscribe_unbinds(amqp):
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()
    await adapter.subscribe("room/1")

    await adapter.unsubscribe("room/1")
    await adapter.unsubscribe("room/1")

    amqp.queue.unbind.assert_awaited_once_with(amqp.exchange, routing_key="room/1")
    await adapter.close()


@pytest.mark.asyncio
async def test_incoming_message_is_dispatched(amqp):
    received: list[BackboneMessage] = []

    async def handler(message: BackboneMessage) -> None:
        received.append(message)

    adapter = RabbitMQBackboneAdapter(handler)
    await adapter.connect()

    incoming = MagicMock()
    incoming.routing_key = "priv/42"
    incoming.body = b"hello"
    await adapter._on_amqp_message(incoming)

    assert [(m.topic, m.payload) for m in received] == [("priv/42", b"hello")]
    incoming.process.assert_called_once_with()
    await adapter.close()


@pytest.mark.asyncio
async def test_close_cancels_consumer_and_closes_connection_once(amqp):
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()
    await adapter.subscribe("priv/42")

    await adapter.close()
    await adapter.close()

    amqp.queue.cancel.assert_awaited_once_with("ctag-1")
    amqp.connection.close.assert_awaited_once()
    assert adapter.subscriptions == frozenset()
    assert not adapter.is_connected


@pytest.mark.asyncio
async def test_closed_channel_on_publish_is_translated(amqp):
    amqp.exchange.publish.side_effect = ChannelInvalidStateError("channel closed")
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()

    with pytest.raises(PublishError):
        await adapter.publish(Envelope(topic="room/1", payload="hi"))
    await adapter.close()


@pytest.mark.asyncio
async def test_closed_channel_on_subscribe_is_translated(amqp):
    amqp.queue.bind.side_effect = ChannelInvalidStateError("channel closed")
    adapter = RabbitMQBackboneAdapter(noop_handler)
    await adapter.connect()

    with pytest.raises(SubscribeError):
        await adapter.subscribe("priv/42")
    await adapter.close()


@pytest.mark.asyncio
async def test_closed_channel_on_connect_is_translated(amqp):
    amqp.channel.set_qos.side_effect = ChannelInvalidStateError("channel closed")
    adapter = RabbitMQBackboneAdapter(noop_handler)

    with pytest.raises(BackboneError):
        await adapter.connect()
    amqp.connection.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_session_survives_closed_channel(amqp, sent):
    amqp.exchange.publish.side_effect = ChannelInvalidStateError("channel closed")
    session = BridgeSession("conn_a", sent, RabbitMQBackboneAdapter)
    await session.start()

    kind = await session.handle_frame('{"action":"publish","topic":"room/1","data":"hi"}')

    assert kind == FrameKind.PUBLISH
    assert not session.is_closed
    await session.close()
