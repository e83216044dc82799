"""
Session Registry

Maps each live client connection to its BridgingSession.

Sessions are opened when a client connects and closed when it
disconnects, on every exit path. The registry holds no state shared
between sessions beyond this mapping: each session owns its adapter.
"""

import asyncio
import logging

from wsbridge.backbone.ports import BackboneFactory
from wsbridge.protocol.envelope import SYSTEM_TOPIC
from wsbridge.session.session import (
    BridgeSession,
    SendFn,
    SessionState,
    SessionTeardownError,
)

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Manages the lifecycle of bridging sessions.

    Safe for concurrent async use; the mapping is guarded by an asyncio lock
    while backbone I/O happens outside it.
    """

    def __init__(
        self,
        backbone_factory: BackboneFactory,
        system_topic: str = SYSTEM_TOPIC,
    ):
        """
        Initialize the registry.

        Args:
            backbone_factory: Builds one adapter per session
            system_topic: Destination for unrecognized client actions
        """
        self._backbone_factory = backbone_factory
        self._system_topic = system_topic

        # conn_id -> BridgeSession
        self._sessions: dict[str, BridgeSession] = {}

        self._lock = asyncio.Lock()

    async def open_session(self, conn_id: str, send: SendFn) -> BridgeSession:
        """
        Create, start and register a session for a new connection.

        Args:
            conn_id: Connection identifier
            send: Coroutine writing a text frame to the client

        Returns:
            The started BridgeSession

        Raises:
            ValueError: If conn_id already has a session
            BackboneError: If the session's adapter cannot connect
        """
        async with self._lock:
            if conn_id in self._sessions:
                raise ValueError(f"Session already open for {conn_id}")

        session = BridgeSession(
            conn_id=conn_id,
            send=send,
            backbone_factory=self._backbone_factory,
            system_topic=self._system_topic,
        )

        try:
            await session.start()
        except BaseException:
            await self._discard(session)
            raise

        async with self._lock:
            duplicate = conn_id in self._sessions
            if not duplicate:
                self._sessions[conn_id] = session

        if duplicate:
            await self._discard(session)
            raise ValueError(f"Session already open for {conn_id}")

        logger.info(f"Session opened: {conn_id}")
        return session

    async def _discard(self, session: BridgeSession) -> None:
        """Close a session that never made it into the registry."""
        try:
            await session.close()
        except SessionTeardownError as e:
            logger.error(f"Cleanup of unregistered session failed: {e}")

    async def close_session(self, conn_id: str) -> bool:
        """
        Tear down and unregister a session.

        The session is removed even if releasing its adapter fails.

        Args:
            conn_id: Connection identifier

        Returns:
            True if a session was closed, False if none was registered
        """
        async with self._lock:
            session = self._sessions.pop(conn_id, None)

        if session is None:
            return False

        try:
            await session.close()
        except SessionTeardownError as e:
            logger.error(f"Session teardown failed: {e}")

        logger.info(f"Session closed: {conn_id}")
        return True

    async def get_session(self, conn_id: str) -> BridgeSession | None:
        """Get the session for a connection."""
        async with self._lock:
            return self._sessions.get(conn_id)

    async def list_sessions(self) -> list[BridgeSession]:
        async with self._lock:
            return list(self._sessions.values())

    async def shutdown(self) -> None:
        """Close every open session."""
        async with self._lock:
            conn_ids = list(self._sessions)

        for conn_id in conn_ids:
            await self.close_session(conn_id)

        logger.info(f"Session registry shutdown ({len(conn_ids)} sessions closed)")

    @property
    def session_count(self) -> int:
        """Number of open sessions."""
        return len(self._sessions)

    @property
    def initialized_count(self) -> int:
        """Number of sessions with a private topic."""
        return sum(
            1 for s in self._sessions.values()
            if s.state == SessionState.INITIALIZED
        )
