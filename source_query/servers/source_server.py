"""
Source Server Query Client

Queries a single Source engine game server over UDP (A2S protocol).

Protocol: UDP
Requests:
- A2S_INFO (0x54): server name, map, player counts, extra data
- A2S_RULES (0x56): server cvars, requires a challenge
- A2S_PLAYER (0x55): connected players, requires a challenge

Communication Flow (rules/players):
1. Client sends request with challenge FF FF FF FF
2. Server responds with S2C_CHALLENGE (0x41) and a 4-byte token
3. Client resends the request with the token
4. Server responds with the data, possibly split over several packets
"""

import logging
import time
from typing import List, Optional

from source_query.protocol.source_proto import (
    SINGLE_PACKET_HEADER,
    SINGLE_PACKET_PREFIX,
    SPLIT_PACKET_HEADER,
    PacketError,
    PacketReader,
    SplitFragment,
    SplitPacketAssembly,
    read_header,
)
from source_query.servers.source_server_info import Player, Rule, ServerInfo
from source_query.servers.udp_session import UDPSession, exchange
from source_query.utils.steamid import SteamID

logger = logging.getLogger(__name__)


# Response type constants (server -> client)
S2C_CHALLENGE = 0x41  # 'A'
S2A_PLAYER = 0x44     # 'D'
S2A_RULES = 0x45      # 'E'
S2A_INFO = 0x49       # 'I'

# Request type constants (client -> server)
A2S_PLAYER = 0x55  # 'U'
A2S_RULES = 0x56   # 'V'

A2S_INFO_REQUEST = SINGLE_PACKET_PREFIX + b'TSource Engine Query\x00'
A2S_PLAYER_REQUEST = SINGLE_PACKET_PREFIX + bytes([A2S_PLAYER])
A2S_RULES_REQUEST = SINGLE_PACKET_PREFIX + bytes([A2S_RULES])

# Sent in place of a token to ask for one
A2S_CHALLENGE = SINGLE_PACKET_PREFIX

# Extra data flag bits
EDF_GAME_ID = 0x01
EDF_STEAM_ID = 0x10
EDF_KEYWORDS = 0x20
EDF_SPECTATOR = 0x40
EDF_PORT = 0x80


# =============================================================================
# Response Decoders
# =============================================================================

def decode_info(buffer: bytes) -> ServerInfo:
    """
    Decode an S2A_INFO response.

    Format:
    [FF FF FF FF] 0x49 [version] [hostname\\0] [map\\0] [folder\\0] [game\\0]
    [app id:2] [players] [max players] [bots] [type] [os] [password] [vac]
    [version\\0] [EDF] [extra data...]

    Raises:
        PacketError: If the header or type is wrong or the packet is truncated
    """
    reader = PacketReader(buffer)
    if reader.read_long() != SINGLE_PACKET_HEADER or reader.read_byte() != S2A_INFO:
        raise PacketError("Not an S2A_INFO response")

    fields = {
        'version': reader.read_byte(),
        'hostname': reader.read_string(),
        'map': reader.read_string(),
        'game_directory': reader.read_string(),
        'game_description': reader.read_string(),
        'app_id': reader.read_ushort(),
        'num_players': reader.read_byte(),
        'max_players': reader.read_byte(),
        'num_bots': reader.read_byte(),
        'server_type': reader.read_char(),
        'os': reader.read_char(),
        'password': reader.read_bool(),
        'secure': reader.read_bool(),
        'game_version': reader.read_string(),
    }

    # Older servers stop before the EDF byte
    edf = reader.read_byte() if reader.remaining else 0

    if edf & EDF_PORT:
        fields['port'] = reader.read_ushort()

    if edf & EDF_STEAM_ID:
        fields['steam_id'] = SteamID(reader.read_ulonglong())

    if edf & EDF_SPECTATOR:
        fields['tv_port'] = reader.read_ushort()
        fields['tv_name'] = reader.read_string()

    if edf & EDF_KEYWORDS:
        fields['tags'] = reader.read_string()

    if edf & EDF_GAME_ID:
        fields['game_id'] = reader.read_ulonglong()

    return ServerInfo(**fields)


def decode_rules(buffer: bytes) -> List[Rule]:
    """
    Decode an S2A_RULES response.

    Format: [FF FF FF FF] 0x45 [count:2] ([name\\0] [value\\0]) * count
    """
    reader = PacketReader(buffer, 5)
    count = reader.read_ushort()
    return [Rule(reader.read_string(), reader.read_string()) for _ in range(count)]


def decode_players(buffer: bytes) -> List[Player]:
    """
    Decode an S2A_PLAYER response.

    Format: [FF FF FF FF] 0x44 [count] ([index] [name\\0] [kills:4] [time:float]) * count
    """
    reader = PacketReader(buffer, 5)
    count = reader.read_byte()

    players = []
    for _ in range(count):
        index = reader.read_byte()
        name = reader.read_string()
        kills = reader.read_long()
        time_connected = reader.read_float()
        players.append(Player(index, name, kills, time_connected))

    return players


# =============================================================================
# Query Client
# =============================================================================

class SourceServer(UDPSession):
    """
    Query client bound to one game server.

    Every operation returns None when the server does not answer in time
    or answers with something that cannot be decoded.

    Example:
        async with SourceServer(Endpoint('203.0.113.5', 27015)) as server:
            info = await server.get_info()
            players = await server.get_players()
    """

    TAG = 'QUERY'

    @exchange
    async def ping(self) -> Optional[float]:
        """
        Measure the round trip of an A2S_INFO request.

        Returns:
            Latency in seconds, or None if the server is unreachable
        """
        if not await self.connect():
            return None

        started = time.perf_counter()
        if not await self._send(A2S_INFO_REQUEST):
            return None

        data = await self._receive()
        elapsed = time.perf_counter() - started

        if not data:
            logger.info(f"[QUERY] {self.endpoint} unreachable")
            return None

        logger.debug(f"[QUERY] Ping {self.endpoint}: {elapsed * 1000:.1f} ms")
        return elapsed

    @exchange
    async def get_info(self) -> Optional[ServerInfo]:
        """Request server information (A2S_INFO)."""
        if not await self._send(A2S_INFO_REQUEST):
            return None

        buffer = await self._receive_packet()
        if not buffer:
            return None

        try:
            info = decode_info(buffer)
        except PacketError as e:
            logger.warning(f"[QUERY] Bad info response from {self.endpoint}: {e}")
            return None

        logger.debug(f"[QUERY] Info from {self.endpoint}: {info.hostname!r} on {info.map}")
        return info

    @exchange
    async def get_rules(self) -> Optional[List[Rule]]:
        """Request the server rules (A2S_RULES)."""
        buffer = await self._receive_with_challenge(S2A_RULES, A2S_RULES_REQUEST)
        if buffer is None:
            return None

        try:
            rules = decode_rules(buffer)
        except PacketError as e:
            logger.warning(f"[QUERY] Bad rules response from {self.endpoint}: {e}")
            return None

        logger.debug(f"[QUERY] {len(rules)} rule(s) from {self.endpoint}")
        return rules

    @exchange
    async def get_players(self) -> Optional[List[Player]]:
        """Request the connected players (A2S_PLAYER)."""
        buffer = await self._receive_with_challenge(S2A_PLAYER, A2S_PLAYER_REQUEST)
        if buffer is None:
            return None

        try:
            players = decode_players(buffer)
        except PacketError as e:
            logger.warning(f"[QUERY] Bad player response from {self.endpoint}: {e}")
            return None

        logger.debug(f"[QUERY] {len(players)} player(s) from {self.endpoint}")
        return players

    # =========================================================================
    # Exchange Helpers
    # =========================================================================

    async def _receive_with_challenge(self, response_type: int, request: bytes) -> Optional[bytes]:
        """
        Send a request that may be answered with a challenge.

        The first request carries FF FF FF FF instead of a token. A server
        that wants a challenge answers with S2C_CHALLENGE and the request is
        sent once more with the token. The final answer must carry
        response_type.

        Returns:
            Response packet, or None on failure
        """
        packet = request + A2S_CHALLENGE
        challenged = False

        while True:
            if not await self._send(packet):
                return None

            buffer = await self._receive_packet()
            if buffer is None or len(buffer) < 5:
                return None

            header = read_header(buffer)
            current_type = buffer[4]
            if header != SINGLE_PACKET_HEADER:
                logger.warning(f"[QUERY] Unexpected header {header} from {self.endpoint}")
                return None

            if current_type == response_type:
                return buffer

            if current_type != S2C_CHALLENGE or challenged:
                logger.warning(
                    f"[QUERY] Unexpected response 0x{current_type:02x} from {self.endpoint}, "
                    f"expected 0x{response_type:02x}"
                )
                return None

            if len(buffer) < 9:
                logger.warning(f"[QUERY] Challenge from {self.endpoint} too short: {len(buffer)} bytes")
                return None

            token = buffer[5:9]
            logger.debug(f"[QUERY] Challenge from {self.endpoint}: {token.hex()}")
            packet = request + token
            challenged = True

    async def _receive_packet(self) -> Optional[bytes]:
        """
        Receive one logical response.

        A single packet (FF FF FF FF) is returned as is. A split response
        (FE FF FF FF) is collected fragment by fragment, joined in index
        order and decompressed if flagged.

        Returns:
            Packet bytes, or None on timeout or any framing error
        """
        data = await self._receive()
        if not data:
            return None

        try:
            header = read_header(data)
            if header == SINGLE_PACKET_HEADER:
                return data
            if header != SPLIT_PACKET_HEADER:
                raise PacketError(f"Unknown packet header {header}")

            assembly = None
            while True:
                fragment = SplitFragment.parse(data)
                if assembly is None:
                    assembly = SplitPacketAssembly(fragment.total)
                assembly.add(fragment)

                logger.debug(
                    f"[QUERY] Fragment {fragment.number + 1}/{fragment.total} "
                    f"from {self.endpoint} ({len(fragment.payload)} bytes)"
                )

                if assembly.complete:
                    break

                data = await self._receive()
                if not data:
                    logger.warning(
                        f"[QUERY] Split response from {self.endpoint} incomplete: "
                        f"{assembly.received} of {assembly.total} fragments"
                    )
                    return None

            return assembly.payload()

        except PacketError as e:
            logger.warning(f"[QUERY] Bad packet from {self.endpoint}: {e}")
            return None
