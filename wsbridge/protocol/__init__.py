# Protocol Layer
# Client frame decoding and backbone envelope construction

from wsbridge.protocol.envelope import (
    SYSTEM_TOPIC,
    ClientFrame,
    Envelope,
    FrameAction,
    FrameKind,
    ProtocolError,
    create_init_response,
    decode,
    encode,
    encode_delivery,
    serialize_payload,
)

__all__ = [
    "SYSTEM_TOPIC",
    "ClientFrame",
    "Envelope",
    "FrameAction",
    "FrameKind",
    "ProtocolError",
    "create_init_response",
    "decode",
    "encode",
    "encode_delivery",
    "serialize_payload",
]
