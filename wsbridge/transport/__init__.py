# Transport Layer
# Handles websocket connections and per-connection outbound queues
# Kept apart from the session logic so other client transports can reuse it

from wsbridge.transport.handler import BridgeHandler
from wsbridge.transport.queue import BackpressureError, OutboundQueue, OutboundQueueManager

__all__ = ["BridgeHandler", "BackpressureError", "OutboundQueue", "OutboundQueueManager"]
