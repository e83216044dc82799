"""
Bridge Message Envelope Codec

Translates between the two framing conventions the bridge sits between:

- Client side: JSON frames on a websocket,
  {"action"?: "publish" | "subscribe" | "init" | <other>, "topic"?: str, "data"?: any}
- Backbone side: an Envelope of {topic, payload} handed to a pub/sub adapter

Frame classification:
- no action (or a non-object JSON value) -> PASSTHROUGH, sent to the session's private topic
- "publish"   -> PUBLISH, data sent to the given topic
- "subscribe" -> SUBSCRIBE, the given topic is subscribed
- "init"      -> INIT, data becomes the session's private topic
- anything else (start, stop, uninstall, ...) -> SYSTEM, sent to the system topic

PASSTHROUGH and SYSTEM frames are forwarded as received, without
re-serializing the decoded JSON.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# Well-known destination for administrative actions
SYSTEM_TOPIC = "/system"


class ProtocolError(Exception):
    """Raised when an inbound client frame cannot be decoded or is incomplete."""
    def __init__(self, reason: str, raw: str | bytes | None = None):
        self.reason = reason
        self.raw = raw
        super().__init__(reason)


class FrameAction(str, Enum):
    """Action values the bridge interprets itself."""
    PUBLISH = "publish"
    SUBSCRIBE = "subscribe"
    INIT = "init"


class FrameKind(str, Enum):
    """Dispatch category of a decoded client frame."""
    PASSTHROUGH = "passthrough"  # No action, routed to the private topic
    PUBLISH = "publish"          # Explicit topic + data
    SUBSCRIBE = "subscribe"      # Register interest in a topic
    INIT = "init"                # Set the private topic
    SYSTEM = "system"            # Unrecognized action, routed to the system topic


class Envelope(BaseModel):
    """
    A message addressed to the backbone.

    Immutable: built once by encode() and consumed by an adapter's publish.
    """
    model_config = ConfigDict(frozen=True)

    topic: str = Field(
        ...,
        description="Backbone destination"
    )
    payload: Any = Field(
        default=None,
        description="Opaque content; serialized with serialize_payload()"
    )


class ClientFrame(BaseModel):
    """
    A decoded inbound client frame.

    Transient: lives for the duration of a single dispatch.
    """
    model_config = ConfigDict(frozen=True)

    kind: FrameKind
    value: Any = Field(
        default=None,
        description="The whole decoded frame"
    )
    received: str | bytes = Field(
        ...,
        description="The frame exactly as received, used as payload for passthrough/system"
    )
    action: str | None = None
    topic: str | None = None
    data: Any = None


def encode(destination: str, payload: Any) -> Envelope:
    """Build an Envelope for the backbone."""
    return Envelope(topic=destination, payload=payload)


def decode(raw: str | bytes) -> ClientFrame:
    """
    Parse and classify a raw client frame.

    Args:
        raw: Frame text (or bytes) as received from the client

    Returns:
        The classified ClientFrame

    Raises:
        ProtocolError: If the frame is not JSON or lacks the fields its action needs
    """
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Frame is not valid JSON: {e}", raw) from e

    if not isinstance(value, dict):
        return ClientFrame(kind=FrameKind.PASSTHROUGH, value=value, received=raw)

    action = value.get("action")
    if action is None:
        return ClientFrame(kind=FrameKind.PASSTHROUGH, value=value, received=raw)

    if not isinstance(action, str):
        raise ProtocolError(f"Action must be a string, got {type(action).__name__}", raw)

    topic = value.get("topic")
    data = value.get("data")

    if action == FrameAction.PUBLISH.value:
        _require_topic(action, topic, raw)
        if "data" not in value:
            raise ProtocolError("publish frame requires 'data'", raw)
        kind = FrameKind.PUBLISH
    elif action == FrameAction.SUBSCRIBE.value:
        _require_topic(action, topic, raw)
        kind = FrameKind.SUBSCRIBE
    elif action == FrameAction.INIT.value:
        if not isinstance(data, str) or not data:
            raise ProtocolError("init frame requires the private topic in 'data'", raw)
        kind = FrameKind.INIT
    else:
        kind = FrameKind.SYSTEM

    return ClientFrame(
        kind=kind,
        value=value,
        received=raw,
        action=action,
        topic=topic,
        data=data,
    )


def _require_topic(action: str, topic: Any, raw: str | bytes) -> None:
    if not isinstance(topic, str) or not topic:
        raise ProtocolError(f"{action} frame requires a non-empty 'topic'", raw)


def serialize_payload(payload: Any) -> bytes:
    """
    Convert an envelope payload to its backbone wire form.

    bytes pass through, str is UTF-8 encoded, anything else is JSON.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def encode_delivery(topic: str, payload: bytes) -> str:
    """
    Build the client-facing frame for a message received from the backbone.

    Args:
        topic: Backbone topic the message arrived on
        payload: Raw backbone payload

    Returns:
        JSON text {"topic": ..., "payload": ...} with the payload as text
    """
    text = payload.decode("utf-8", errors="replace")
    return json.dumps({"topic": topic, "payload": text})


def create_init_response(success: bool = True) -> str:
    """Acknowledgment sent to the client after an init frame."""
    return json.dumps({
        "action": FrameAction.INIT.value,
        "type": "response",
        "data": "success" if success else "error",
    })
