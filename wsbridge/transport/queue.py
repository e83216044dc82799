"""
Outbound Queue Manager

Per-connection outgoing queue with a single writer task.

Two producers write to a client: the session's init acknowledgment and
backbone deliveries from the adapter's reader. Funnelling both through
one queue means the websocket only ever has one concurrent sender.

Design:
- Each connection gets a dedicated bounded asyncio.Queue
- Single writer coroutine drains the queue into the websocket
- Backpressure: a put that cannot complete in time raises BackpressureError
- Clean shutdown on disconnect
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class BackpressureError(Exception):
    """Raised when a connection's outbound queue stays full."""
    def __init__(self, conn_id: str, queue_size: int):
        self.conn_id = conn_id
        self.queue_size = queue_size
        super().__init__(f"Outbound queue full for {conn_id} (size={queue_size})")


class OutboundQueue:
    """
    Outbound message queue for a single connection.
    """

    def __init__(
        self,
        conn_id: str,
        write_fn: Callable[[str], Awaitable[None]],
        max_size: int = 200,
        put_timeout: float = 1.0,
    ):
        """
        Initialize connection queue.

        Args:
            conn_id: Connection identifier
            write_fn: Async function writing one frame to the websocket
            max_size: Max queue depth before backpressure
            put_timeout: Seconds send() waits for space
        """
        self.conn_id = conn_id
        self._write_fn = write_fn
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max_size)
        self._writer_task: asyncio.Task | None = None
        self._closed = False
        self._max_size = max_size
        self._put_timeout = put_timeout

    async def start(self) -> None:
        """Start the writer task."""
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(
                self._writer_loop(),
                name=f"outbound_writer_{self.conn_id}"
            )

    async def stop(self) -> None:
        """Stop the writer task; frames still queued are discarded."""
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

        if self._writer_task:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
            self._writer_task = None

    async def send(self, message: str) -> None:
        """
        Queue a frame for the client.

        Raises:
            BackpressureError: If no space frees up within put_timeout
            RuntimeError: If the queue has been stopped
        """
        if self._closed:
            raise RuntimeError(f"Outbound queue closed for {self.conn_id}")

        try:
            await asyncio.wait_for(
                self._queue.put(message),
                timeout=self._put_timeout
            )
        except asyncio.TimeoutError:
            raise BackpressureError(self.conn_id, self._max_size)

    @property
    def qsize(self) -> int:
        """Current queue depth."""
        return self._queue.qsize()

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def _writer_loop(self) -> None:
        """Drain the queue into the websocket, one frame at a time."""
        while not self._closed:
            message = await self._queue.get()

            # None is the shutdown signal
            if message is None:
                break

            try:
                await self._write_fn(message)
            except Exception as e:
                # Connection likely dead; the receive side will notice and clean up
                logger.warning(f"Write failed for {self.conn_id}: {e}")
                self._closed = True
                break
            finally:
                self._queue.task_done()


class OutboundQueueManager:
    """
    Manages per-connection outbound queues.

    Creates queues on connect and cleans up on disconnect.
    """

    def __init__(self, max_queue_size: int = 200):
        """
        Args:
            max_queue_size: Max queue depth per connection
        """
        self._max_queue_size = max_queue_size
        self._queues: dict[str, OutboundQueue] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        conn_id: str,
        write_fn: Callable[[str], Awaitable[None]]
    ) -> OutboundQueue:
        """
        Create and start the queue for a connection.

        Raises:
            ValueError: If the connection already has a queue
        """
        async with self._lock:
            if conn_id in self._queues:
                raise ValueError(f"Outbound queue already exists for {conn_id}")
            queue = OutboundQueue(conn_id, write_fn, self._max_queue_size)
            await queue.start()
            self._queues[conn_id] = queue
            return queue

    async def remove(self, conn_id: str) -> None:
        """Remove and stop the queue for a connection."""
        async with self._lock:
            queue = self._queues.pop(conn_id, None)
        if queue:
            await queue.stop()

    async def shutdown(self) -> None:
        """Stop all queues."""
        async with self._lock:
            queues = list(self._queues.values())
            self._queues.clear()
        for queue in queues:
            await queue.stop()

    def queue_size(self, conn_id: str) -> int:
        """Get queue depth for a connection."""
        queue = self._queues.get(conn_id)
        return queue.qsize if queue else 0

    def connection_count(self) -> int:
        """Number of active connection queues."""
        return len(self._queues)
