"""
WebSocket Handler

The accept-side of the bridge. Each websocket connection gets its own
BridgeSession from the registry and its own outbound queue; frames are
read one at a time and handed to the session in arrival order.

Connection lifecycle:
1. accept, assign a connection id
2. create the outbound queue, open the session (backbone connect)
3. read loop: text or binary frame -> session.handle_frame()
4. on disconnect or error: close the session, remove the queue
"""

from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect

from wsbridge.backbone.ports import BackboneError
from wsbridge.session.registry import SessionRegistry
from wsbridge.transport.queue import OutboundQueueManager

logger = logging.getLogger(__name__)

# Close code sent when the backbone cannot be reached
BACKBONE_UNAVAILABLE_CODE = 1011


class BridgeHandler:
    """
    Handles websocket connections for the bridge.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        queue_manager: OutboundQueueManager | None = None,
    ):
        """
        Initialize the handler.

        Args:
            registry: Owns the per-connection sessions
            queue_manager: Per-connection outbound queues
        """
        self._registry = registry
        self._queues = queue_manager or OutboundQueueManager(max_queue_size=200)

    async def handle_connection(self, websocket: WebSocket) -> None:
        """
        Handle a websocket connection from accept to cleanup.

        Args:
            websocket: The websocket connection
        """
        await websocket.accept()
        conn_id = f"conn_{uuid4().hex[:12]}"
        logger.info(f"WebSocket connected: {conn_id}")

        queue = await self._queues.create(conn_id, websocket.send_text)

        try:
            session = await self._registry.open_session(conn_id, queue.send)
        except BackboneError as e:
            logger.error(f"Backbone unavailable for {conn_id}: {e}")
            await self._refuse(websocket, conn_id, "Backbone unavailable")
            return
        except Exception as e:
            # e.g. a malformed backbone URL rejected by the client library
            logger.error(f"Session setup failed for {conn_id}: {e}")
            await self._refuse(websocket, conn_id, "Session setup failed")
            return

        try:
            while True:
                raw = await self._receive_frame(websocket)
                if raw is None:
                    break
                await session.handle_frame(raw)

        except WebSocketDisconnect:
            pass

        except Exception as e:
            logger.error(f"WebSocket error on {conn_id}: {e}")

        finally:
            logger.info(f"Closing socket {conn_id}")
            await self._registry.close_session(conn_id)
            await self._queues.remove(conn_id)

    async def _refuse(self, websocket: WebSocket, conn_id: str, reason: str) -> None:
        """Drop the connection's queue and close it before any session exists."""
        await self._queues.remove(conn_id)
        await websocket.close(code=BACKBONE_UNAVAILABLE_CODE, reason=reason)

    async def _receive_frame(self, websocket: WebSocket) -> str | bytes | None:
        """
        Receive one frame.

        Returns:
            Frame text or bytes, or None once the client has disconnected
        """
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return None
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes")
