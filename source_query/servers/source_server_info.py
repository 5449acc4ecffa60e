"""
Decoded server query results
"""

from dataclasses import dataclass
from typing import Optional

from source_query.utils.steamid import SteamID


@dataclass(frozen=True)
class ServerInfo:
    """A2S_INFO response"""
    version: int
    hostname: str
    map: str
    game_directory: str
    game_description: str
    app_id: int
    num_players: int
    max_players: int
    num_bots: int
    server_type: str  # 'd' dedicated, 'l' listen, 'p' SourceTV relay
    os: str           # 'l' linux, 'w' windows, 'm'/'o' mac
    password: bool
    secure: bool
    game_version: str

    # Extra data, present only when flagged in the EDF byte
    port: Optional[int] = None
    steam_id: Optional[SteamID] = None
    tv_port: Optional[int] = None
    tv_name: Optional[str] = None
    tags: Optional[str] = None
    game_id: Optional[int] = None


@dataclass(frozen=True)
class Rule:
    name: str
    value: str


@dataclass(frozen=True)
class Player:
    index: int
    name: str
    kills: int
    time_connected: float  # seconds
