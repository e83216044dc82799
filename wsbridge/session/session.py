"""
Bridging Session

Owns one client connection's view of the backbone: its private topic and
its exclusively owned backbone adapter.

Session Lifecycle:
1. UNINITIALIZED - Adapter connected, no private topic yet
2. INITIALIZED   - An init frame set the private topic
3. CLOSED        - Client disconnected, adapter released

Dispatch per decoded frame (exactly one side effect, init does two):
- PASSTHROUGH -> publish the frame as received to the private topic
- PUBLISH     -> publish data to the frame's topic
- SUBSCRIBE   -> subscribe to the frame's topic
- INIT        -> set private topic, subscribe to it, acknowledge to the client
- SYSTEM      -> publish the frame as received to the system topic

Frames are handled strictly in the order the caller awaits handle_frame().
Nothing raised while handling a frame escapes: malformed frames and
backbone failures are logged and the session carries on.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from wsbridge.backbone.ports import (
    BackboneAdapter,
    BackboneError,
    BackboneFactory,
    BackboneMessage,
)
from wsbridge.protocol.envelope import (
    SYSTEM_TOPIC,
    ClientFrame,
    Envelope,
    FrameKind,
    ProtocolError,
    create_init_response,
    decode,
    encode,
    encode_delivery,
)

logger = logging.getLogger(__name__)

SendFn = Callable[[str], Awaitable[None]]


class SessionState(str, Enum):
    """Session lifecycle states."""
    UNINITIALIZED = "uninitialized"  # No private topic
    INITIALIZED = "initialized"      # Private topic set
    CLOSED = "closed"                # Torn down


class SessionTeardownError(Exception):
    """Releasing the backbone adapter failed."""
    def __init__(self, conn_id: str, cause: BaseException):
        self.conn_id = conn_id
        self.cause = cause
        super().__init__(f"Teardown of {conn_id} failed: {cause}")


class BridgeSession:
    """
    Per-connection bridge between a client and the backbone.

    The adapter is created by start() from the injected factory and is
    never shared with another session.
    """

    def __init__(
        self,
        conn_id: str,
        send: SendFn,
        backbone_factory: BackboneFactory,
        system_topic: str = SYSTEM_TOPIC,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        """
        Initialize the session.

        Args:
            conn_id: Identifier of the client connection
            send: Coroutine writing one text frame to the client
            backbone_factory: Builds this session's adapter
            system_topic: Destination for unrecognized actions
            log: Diagnostic sink; defaults to the module logger
        """
        self.conn_id = conn_id
        self._send = send
        self._backbone_factory = backbone_factory
        self._system_topic = system_topic
        self._log = log or logger

        self._adapter: BackboneAdapter | None = None
        self._private_topic: str | None = None
        self._state = SessionState.UNINITIALIZED
        self.created_at = datetime.utcnow()

        # Diagnostics
        self._frames_received = 0
        self._frames_dropped = 0
        self._messages_delivered = 0

        self._handlers: dict[FrameKind, Callable[[ClientFrame], Awaitable[None]]] = {
            FrameKind.PASSTHROUGH: self._handle_passthrough,
            FrameKind.PUBLISH: self._handle_publish,
            FrameKind.SUBSCRIBE: self._handle_subscribe,
            FrameKind.INIT: self._handle_init,
            FrameKind.SYSTEM: self._handle_system,
        }

    # === Properties ===

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def private_topic(self) -> str | None:
        return self._private_topic

    @property
    def adapter(self) -> BackboneAdapter | None:
        return self._adapter

    @property
    def is_closed(self) -> bool:
        return self._state == SessionState.CLOSED

    # === Lifecycle ===

    async def start(self) -> None:
        """
        Create and connect this session's backbone adapter.

        Raises:
            BackboneError: If the backbone cannot be reached
        """
        self._adapter = self._backbone_factory(self._on_backbone_message)
        await self._adapter.connect()
        self._log.debug(f"Session {self.conn_id} connected to backbone")

    async def close(self) -> None:
        """
        Release the backbone adapter. Safe to call more than once.

        Raises:
            SessionTeardownError: If the adapter failed to close
        """
        if self._state == SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED

        adapter, self._adapter = self._adapter, None
        if adapter is None:
            return
        try:
            await adapter.close()
        except Exception as e:
            raise SessionTeardownError(self.conn_id, e) from e

    # === Client -> Backbone ===

    async def handle_frame(self, raw: str | bytes) -> FrameKind | None:
        """
        Decode one client frame and dispatch it.

        Args:
            raw: Frame as received from the client

        Returns:
            The dispatched FrameKind, or None if the frame was dropped
        """
        if self._state == SessionState.CLOSED:
            self._log.debug(f"Ignoring frame on closed session {self.conn_id}")
            return None
        if self._adapter is None:
            raise RuntimeError(f"Session {self.conn_id} has not been started")

        self._frames_received += 1
        self._log.debug(f"Message from websocket {self.conn_id}: {raw!r}")

        try:
            frame = decode(raw)
        except ProtocolError as e:
            self._frames_dropped += 1
            self._log.warning(f"Dropping malformed frame from {self.conn_id}: {e.reason}")
            return None

        if frame.kind == FrameKind.PASSTHROUGH and self._private_topic is None:
            self._frames_dropped += 1
            self._log.warning(
                f"Dropping frame from {self.conn_id}: no private topic, send init first"
            )
            return None

        await self._handlers[frame.kind](frame)
        return frame.kind

    async def _handle_passthrough(self, frame: ClientFrame) -> None:
        await self._publish(encode(self._private_topic, frame.received))

    async def _handle_publish(self, frame: ClientFrame) -> None:
        await self._publish(encode(frame.topic, frame.data))

    async def _handle_subscribe(self, frame: ClientFrame) -> None:
        await self._subscribe(frame.topic)

    async def _handle_init(self, frame: ClientFrame) -> None:
        # A repeated init replaces the private topic; the earlier one stays
        # subscribed until the session closes.
        if self._private_topic is not None and self._private_topic != frame.data:
            self._log.info(
                f"Session {self.conn_id} private topic changed "
                f"{self._private_topic} -> {frame.data}"
            )
        self._private_topic = frame.data
        self._state = SessionState.INITIALIZED

        subscribed = await self._subscribe(frame.data)
        await self._send_to_client(create_init_response(success=subscribed))

    async def _handle_system(self, frame: ClientFrame) -> None:
        await self._publish(encode(self._system_topic, frame.received))

    async def _publish(self, envelope: Envelope) -> bool:
        try:
            await self._adapter.publish(envelope)
        except BackboneError as e:
            self._log.error(f"Session {self.conn_id}: {e}")
            return False
        self._log.debug(f"Message to backbone from {self.conn_id}: {envelope!r}")
        return True

    async def _subscribe(self, topic: str) -> bool:
        try:
            await self._adapter.subscribe(topic)
        except BackboneError as e:
            self._log.error(f"Session {self.conn_id}: {e}")
            return False
        self._log.debug(f"Session {self.conn_id} subscribed to {topic}")
        return True

    # === Backbone -> Client ===

    async def _on_backbone_message(self, message: BackboneMessage) -> None:
        """Forward a backbone message to the client."""
        if self._state == SessionState.CLOSED:
            return
        if await self._send_to_client(encode_delivery(message.topic, message.payload)):
            self._messages_delivered += 1

    async def _send_to_client(self, text: str) -> bool:
        try:
            await self._send(text)
            return True
        except Exception as e:
            self._log.warning(f"Send to {self.conn_id} failed: {e}")
            return False

    def to_summary_dict(self) -> dict[str, Any]:
        """Return a summary for logging/debugging."""
        return {
            "conn_id": self.conn_id,
            "state": self._state.value,
            "private_topic": self._private_topic,
            "subscriptions": sorted(self._adapter.subscriptions) if self._adapter else [],
            "frames_received": self._frames_received,
            "frames_dropped": self._frames_dropped,
            "messages_delivered": self._messages_delivered,
            "created_at": self.created_at.isoformat(),
        }
