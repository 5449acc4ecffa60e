"""
Master Server Client

Pages through the server list held by the Steam master server.

Protocol: UDP, port 27011
Request (A2M_GET_SERVERS_BATCH2):
    0x31 [region] [last address "ip:port\\0"] [filter\\0]
Response (M2A_SERVER_BATCH):
    FF FF FF FF 66 0A ([ip:4] [port:2 big-endian]) * n

Communication Flow:
1. Client sends the request with cursor 0.0.0.0:0
2. Master answers with one batch of addresses
3. Client repeats the request with the last address of the batch
4. The list ends with a batch whose last record is 0.0.0.0:0
"""

import asyncio
import logging
import socket
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import AsyncIterator, List, Optional, Union

from source_query.config import config
from source_query.protocol.source_proto import PacketError, encode_string
from source_query.servers.master_server_filter import MasterServerFilter
from source_query.servers.udp_session import UDPSession, exchange
from source_query.utils.endpoint import NULL_ENDPOINT, Endpoint

logger = logging.getLogger(__name__)


A2M_GET_SERVERS_BATCH2 = 0x31
M2A_SERVER_BATCH = 0x66

SERVER_BATCH_HEADER = b'\xFF\xFF\xFF\xFF' + bytes([M2A_SERVER_BATCH, 0x0A])
RECORD_SIZE = 6


class Region(IntEnum):
    US_EAST = 0x00
    US_WEST = 0x01
    SOUTH_AMERICA = 0x02
    EUROPE = 0x03
    ASIA = 0x04
    AUSTRALIA = 0x05
    MIDDLE_EAST = 0x06
    AFRICA = 0x07
    WORLD = 0xFF


@dataclass
class DirectoryPage:
    """
    One batch of the server list.

    Attributes:
        servers: Addresses in this batch, sentinel excluded
        cursor: Last address decoded, sent back to ask for the next batch
        last: True when the batch ended with the 0.0.0.0:0 sentinel
    """
    servers: List[Endpoint] = field(default_factory=list)
    cursor: Endpoint = NULL_ENDPOINT
    last: bool = False


def build_server_request(region: int, cursor: Endpoint, server_filter: str) -> bytes:
    """Build an A2M_GET_SERVERS_BATCH2 request."""
    return (
        bytes([A2M_GET_SERVERS_BATCH2, region & 0xFF])
        + encode_string(str(cursor))
        + encode_string(server_filter)
    )


def parse_server_batch(data: bytes) -> DirectoryPage:
    """
    Decode an M2A_SERVER_BATCH response.

    Decoding stops at the sentinel record or when fewer than 6 bytes remain.

    Raises:
        PacketError: If the datagram is too short or the header is wrong
    """
    if len(data) < len(SERVER_BATCH_HEADER):
        raise PacketError(f"Server batch too short: {len(data)} bytes")
    if data[:len(SERVER_BATCH_HEADER)] != SERVER_BATCH_HEADER:
        raise PacketError(f"Bad server batch header: {data[:6].hex()}")

    page = DirectoryPage()
    offset = len(SERVER_BATCH_HEADER)

    while len(data) - offset >= RECORD_SIZE:
        octets = data[offset:offset + 4]
        port = struct.unpack_from('>H', data, offset + 4)[0]
        offset += RECORD_SIZE

        endpoint = Endpoint('.'.join(str(b) for b in octets), port)
        page.cursor = endpoint

        if endpoint.is_null():
            page.last = True
            break

        page.servers.append(endpoint)

    return page


class MasterServer(UDPSession):
    """
    Client for one master server address.

    Example:
        for master in await MasterServer.get_list():
            async with master:
                servers = await master.get_server_list(Region.EUROPE, server_filter)
            if servers is not None:
                break
    """

    TAG = 'MASTER'

    @classmethod
    async def get_list(cls, host: str = None, port: int = None,
                       timeout: float = None) -> List['MasterServer']:
        """
        Resolve the master server hostname.

        Returns:
            One client per resolved IPv4 address, empty if resolution fails
        """
        host = host or config.MASTER_SERVER_HOST
        port = port or config.MASTER_SERVER_PORT

        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, port, family=socket.AF_INET,
                                           type=socket.SOCK_DGRAM)
        except socket.gaierror as e:
            logger.error(f"[MASTER] Failed to resolve {host}: {e}")
            return []

        addresses = []
        for _, _, _, _, sockaddr in infos:
            if sockaddr[0] not in addresses:
                addresses.append(sockaddr[0])

        logger.debug(f"[MASTER] {host} resolved to {', '.join(addresses)}")
        return [cls(Endpoint(address, port), timeout) for address in addresses]

    @exchange
    async def _fetch_page(self, region: int, server_filter: str, cursor: Endpoint) -> Optional[DirectoryPage]:
        if not await self._send(build_server_request(region, cursor, server_filter)):
            return None

        data = await self._receive()
        if not data:
            logger.warning(f"[MASTER] No batch from {self.endpoint} after {cursor}")
            return None

        try:
            page = parse_server_batch(data)
        except PacketError as e:
            logger.warning(f"[MASTER] Bad batch from {self.endpoint}: {e}")
            return None

        logger.debug(f"[MASTER] {len(page.servers)} server(s) after {cursor}, last={page.last}")
        return page

    async def _rounds(self, region: int, server_filter) -> AsyncIterator[Optional[DirectoryPage]]:
        """Yield each page in turn; a failed round yields None and ends the listing."""
        if server_filter is None:
            server_filter = ''
        server_filter = str(server_filter)

        cursor = NULL_ENDPOINT
        while True:
            page = await self._fetch_page(int(region), server_filter, cursor)
            yield page

            if page is None or page.last:
                return

            if not page.servers:
                logger.warning(f"[MASTER] Empty batch without end marker from {self.endpoint}")
                return

            cursor = page.cursor

    async def iter_pages(self, region: int = Region.WORLD,
                         server_filter: Union[MasterServerFilter, str, None] = None
                         ) -> AsyncIterator[DirectoryPage]:
        """
        Yield pages as they arrive.

        A malformed or missing batch ends the iteration; pages already
        yielded stay with the caller.
        """
        async for page in self._rounds(region, server_filter):
            if page is None:
                return
            yield page

    async def get_server_list(self, region: int = Region.WORLD,
                              server_filter: Union[MasterServerFilter, str, None] = None
                              ) -> Optional[List[Endpoint]]:
        """
        Fetch the whole server list.

        Returns:
            Every address in the list, or None if any round fails
        """
        servers = []
        async for page in self._rounds(region, server_filter):
            if page is None:
                return None
            servers.extend(page.servers)

        logger.info(f"[MASTER] {len(servers)} server(s) from {self.endpoint}")
        return servers
