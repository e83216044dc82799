# WebSocket Pub/Sub Bridge
# Relays websocket client sessions onto a publish/subscribe backbone

__version__ = "0.1.0"

# Re-export commonly used components for convenience
from wsbridge.protocol import (
    SYSTEM_TOPIC,
    Envelope,
    FrameKind,
    ProtocolError,
)
from wsbridge.backbone import (
    BackboneAdapter,
    BackboneError,
    PublishError,
    SubscribeError,
    create_backbone_factory,
)
from wsbridge.session import (
    BridgeSession,
    SessionRegistry,
    SessionState,
    SessionTeardownError,
)

__all__ = [
    "__version__",
    # Protocol
    "SYSTEM_TOPIC",
    "Envelope",
    "FrameKind",
    "ProtocolError",
    # Backbone
    "BackboneAdapter",
    "BackboneError",
    "PublishError",
    "SubscribeError",
    "create_backbone_factory",
    # Sessions
    "BridgeSession",
    "SessionRegistry",
    "SessionState",
    "SessionTeardownError",
]
