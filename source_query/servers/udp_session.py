"""
Asyncio UDP session

One connected datagram socket bound to a single remote endpoint, used by
both the server query client and the master server client. Each exchange
sends one request and awaits one or more datagrams, each receive bounded
by the session timeout.
"""

import asyncio
import functools
import logging
from typing import Optional

from source_query.config import config
from source_query.utils.endpoint import Endpoint

logger = logging.getLogger(__name__)


def exchange(method):
    """
    Serialize a request/response exchange on its session.

    If the caller cancels the exchange the socket is closed before the
    cancellation propagates, so no receive is left pending on it.
    """
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            try:
                return await method(self, *args, **kwargs)
            except asyncio.CancelledError:
                logger.debug(f"[{self.TAG}] {method.__name__} cancelled, closing {self.endpoint}")
                self.close()
                raise

    return wrapper


class UDPSession:
    """
    Connected UDP socket with a receive queue.

    Attributes:
        endpoint: Remote endpoint the socket is connected to
        timeout: Send/receive timeout in seconds
        transport: asyncio datagram transport, None until connected
    """

    TAG = 'UDP'

    def __init__(self, endpoint: Endpoint, timeout: float = None):
        self.endpoint = endpoint
        self.timeout = config.timeout if timeout is None else timeout
        self.transport = None
        self._datagrams = None
        self._lock = None

    # =========================================================================
    # UDP Protocol Handler
    # =========================================================================

    class SessionProtocol(asyncio.DatagramProtocol):
        """Pushes received datagrams and socket errors onto the session queue."""

        def __init__(self, queue: asyncio.Queue):
            self.queue = queue
            super().__init__()

        def connection_made(self, transport):
            self.transport = transport

        def datagram_received(self, data, addr):
            self.queue.put_nowait(data)

        def error_received(self, exc):
            self.queue.put_nowait(exc)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def connected(self) -> bool:
        return self.transport is not None and not self.transport.is_closing()

    async def connect(self) -> bool:
        """
        Open the socket.

        Returns:
            True when the socket is ready
        """
        if self.connected:
            return True

        loop = asyncio.get_running_loop()
        queue = asyncio.Queue()

        try:
            transport, _ = await asyncio.wait_for(
                loop.create_datagram_endpoint(
                    lambda: self.SessionProtocol(queue),
                    remote_addr=(self.endpoint.address, self.endpoint.port)
                ),
                self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"[{self.TAG}] Failed to open socket to {self.endpoint}: {e}")
            return False

        self.transport = transport
        self._datagrams = queue
        logger.debug(f"[{self.TAG}] Connected to {self.endpoint}")
        return True

    def close(self):
        """Close the socket. Pending datagrams are dropped."""
        if self.transport is not None:
            self.transport.close()
            logger.debug(f"[{self.TAG}] Closed {self.endpoint}")
        self.transport = None
        self._datagrams = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()

    # =========================================================================
    # Send / receive
    # =========================================================================

    def _drain(self):
        """Discard datagrams left over from an earlier exchange."""
        dropped = 0
        while not self._datagrams.empty():
            self._datagrams.get_nowait()
            dropped += 1
        if dropped:
            logger.debug(f"[{self.TAG}] Dropped {dropped} stale datagram(s) from {self.endpoint}")

    async def _send(self, data: bytes) -> bool:
        if not await self.connect():
            return False

        self._drain()

        try:
            self.transport.sendto(data)
        except OSError as e:
            logger.warning(f"[{self.TAG}] Send to {self.endpoint} failed: {e}")
            return False

        logger.debug(f"[{self.TAG}] Sent {len(data)} bytes to {self.endpoint}")
        return True

    async def _receive(self) -> Optional[bytes]:
        """
        Wait for the next datagram.

        Returns:
            Datagram bytes, or None on timeout or socket error
        """
        if self._datagrams is None:
            return None

        try:
            item = await asyncio.wait_for(self._datagrams.get(), self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"[{self.TAG}] Receive from {self.endpoint} timed out after {self.timeout}s")
            return None

        if isinstance(item, Exception):
            logger.warning(f"[{self.TAG}] Socket error from {self.endpoint}: {item}")
            return None

        return item

    def __repr__(self):
        return f"<{type(self).__name__} {self.endpoint} timeout={self.timeout}s>"
