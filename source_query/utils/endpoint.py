"""
Network endpoint text form

Renders and parses the address:port strings used by the master server
cursor and by the Steam Web API.
"""

import ipaddress
from typing import NamedTuple


class Endpoint(NamedTuple):
    """UDP destination (address, port)."""
    address: str
    port: int

    def is_null(self) -> bool:
        """True for the 0.0.0.0:0 sentinel."""
        return self.port == 0 and self.address == '0.0.0.0'

    def __str__(self):
        if ':' in self.address:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


NULL_ENDPOINT = Endpoint('0.0.0.0', 0)


def make_endpoint(address: str, port: int) -> Endpoint:
    """
    Build a validated Endpoint.

    Raises:
        ValueError: If the address is not an IP address or the port is out of range
    """
    port = int(port)
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"Port out of range: {port}")
    return Endpoint(str(ipaddress.ip_address(address)), port)


def parse_endpoint(text: str) -> Endpoint:
    """
    Parse 'addr', 'addr:port', '[v6]' or '[v6]:port'.

    A missing port is 0.

    Example:
        >>> parse_endpoint('192.168.1.10:27015')
        Endpoint(address='192.168.1.10', port=27015)
        >>> parse_endpoint('[::1]:27015')
        Endpoint(address='::1', port=27015)

    Raises:
        ValueError: If the text is not a valid endpoint
    """
    text = text.strip()
    port = '0'

    if text.startswith('['):
        end = text.find(']')
        if end == -1:
            raise ValueError(f"Invalid endpoint: {text!r}")
        address = text[1:end]
        rest = text[end + 1:]
        if rest:
            if not rest.startswith(':'):
                raise ValueError(f"Invalid endpoint: {text!r}")
            port = rest[1:]
    elif text.count(':') == 1:
        address, port = text.split(':')
    else:
        # Bare IPv4, or IPv6 without brackets and therefore without a port
        address = text

    if not port.isdigit():
        raise ValueError(f"Invalid port in endpoint: {text!r}")

    return make_endpoint(address, int(port))
