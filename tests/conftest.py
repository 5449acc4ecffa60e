"""
Shared fixtures: a scripted UDP server on localhost
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from source_query.utils.endpoint import Endpoint


class FakeUDPServer(asyncio.DatagramProtocol):
    """
    Answers each datagram with whatever the handler returns.

    Attributes:
        requests: Every datagram received, in order
    """

    def __init__(self, handler):
        self.handler = handler
        self.requests = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.requests.append(data)
        for reply in self.handler(data):
            self.transport.sendto(reply, addr)

    @property
    def endpoint(self) -> Endpoint:
        host, port = self.transport.get_extra_info('sockname')[:2]
        return Endpoint(host, port)


@asynccontextmanager
async def fake_udp_server(handler):
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: FakeUDPServer(handler),
        local_addr=('127.0.0.1', 0)
    )
    try:
        yield protocol
    finally:
        transport.close()


@pytest.fixture
def udp_server():
    """Factory: `async with udp_server(handler) as server: ...`"""
    return fake_udp_server
