# Session Layer
# Per-connection bridging state machine and the registry that owns sessions

from wsbridge.session.session import (
    BridgeSession,
    SessionState,
    SessionTeardownError,
)
from wsbridge.session.registry import SessionRegistry

__all__ = [
    "BridgeSession",
    "SessionState",
    "SessionTeardownError",
    "SessionRegistry",
]
