"""
Master server filter

Serializes the server list filter to the backslash-delimited form
understood by the master server, e.g. \\type\\d\\gamedir\\cstrike\\appid\\10.
Keys are always emitted in the same order.
"""

import logging
from dataclasses import dataclass, fields
from typing import Optional

from source_query.protocol.source_proto import build_filter_message, parse_filter_message
from source_query.utils.endpoint import Endpoint, parse_endpoint

logger = logging.getLogger(__name__)


# key -> attribute, for filters that are either present as "1" or absent
FLAG_KEYS = {
    'secure': 'secure_only',
    'linux': 'linux_only',
    'empty': 'not_empty',
    'full': 'not_full',
    'proxy': 'spectator_only',
    'noplayers': 'no_players',
    'white': 'whitelisted_only',
    'collapse_addr_hash': 'one_per_address',
}

TEXT_KEYS = {
    'gamedir': 'game_directory',
    'map': 'map',
    'gametype': 'tags',
    'gamedata': 'hidden_tags_all',
    'gamedataor': 'hidden_tags_any',
    'name_match': 'server_name',
    'version_match': 'version',
}

NUMBER_KEYS = {
    'appid': 'app_id',
    'napp': 'not_app_id',
}

GROUP_KEYS = {
    'nor': 'nor',
    'nand': 'nand',
}


@dataclass
class MasterServerFilter:
    """
    Server list filter.

    Attributes:
        dedicated_only: Dedicated servers only
        secure_only: VAC protected servers only
        game_directory: Servers running this mod (e.g. 'cstrike')
        map: Servers running this map
        linux_only: Servers running on Linux
        not_empty: Servers that are not empty
        not_full: Servers that are not full
        spectator_only: Spectator proxies only
        app_id: Servers running this app id
        not_app_id: Servers not running this app id
        no_players: Servers without players
        whitelisted_only: Whitelisted servers only
        tags: Servers with all of these comma separated tags
        hidden_tags_all: Servers with all of these hidden tags
        hidden_tags_any: Servers with any of these hidden tags
        server_name: Hostname wildcard match
        version: Version wildcard match
        one_per_address: Return only one server per IP address
        game_address: Servers on this IP (and port, when not 0)
        nor: "N\\cond1\\...": exclude servers matching any of N conditions
        nand: "N\\cond1\\...": exclude servers matching all of N conditions
    """
    dedicated_only: bool = False
    secure_only: bool = False
    game_directory: Optional[str] = None
    map: Optional[str] = None
    linux_only: bool = False
    not_empty: bool = False
    not_full: bool = False
    spectator_only: bool = False
    app_id: int = 0
    not_app_id: int = 0
    no_players: bool = False
    whitelisted_only: bool = False
    tags: Optional[str] = None
    hidden_tags_all: Optional[str] = None
    hidden_tags_any: Optional[str] = None
    server_name: Optional[str] = None
    version: Optional[str] = None
    one_per_address: bool = False
    game_address: Optional[Endpoint] = None
    nor: Optional[str] = None
    nand: Optional[str] = None

    def to_params(self) -> list:
        """Ordered (key, value) pairs of the active filters."""
        params = []

        if self.dedicated_only:
            params.append(('type', 'd'))
        if self.secure_only:
            params.append(('secure', '1'))
        if self.game_directory:
            params.append(('gamedir', self.game_directory))
        if self.map:
            params.append(('map', self.map))
        if self.linux_only:
            params.append(('linux', '1'))
        if self.not_empty:
            params.append(('empty', '1'))
        if self.not_full:
            params.append(('full', '1'))
        if self.spectator_only:
            params.append(('proxy', '1'))
        if self.app_id:
            params.append(('appid', self.app_id))
        if self.not_app_id:
            params.append(('napp', self.not_app_id))
        if self.no_players:
            params.append(('noplayers', '1'))
        if self.whitelisted_only:
            params.append(('white', '1'))
        if self.tags:
            params.append(('gametype', self.tags))
        if self.hidden_tags_all:
            params.append(('gamedata', self.hidden_tags_all))
        if self.hidden_tags_any:
            params.append(('gamedataor', self.hidden_tags_any))
        if self.server_name:
            params.append(('name_match', self.server_name))
        if self.version:
            params.append(('version_match', self.version))
        if self.one_per_address:
            params.append(('collapse_addr_hash', '1'))
        if self.game_address is not None:
            if self.game_address.port == 0:
                params.append(('gameaddr', self.game_address.address))
            else:
                params.append(('gameaddr', str(self.game_address)))
        if self.nor:
            params.append(('nor', self.nor))
        if self.nand:
            params.append(('nand', self.nand))

        return params

    def __str__(self):
        return build_filter_message(self.to_params())

    @classmethod
    def parse(cls, msg: str) -> Optional['MasterServerFilter']:
        """
        Read a filter string back into a filter.

        A nor/nand value is the number of conditions that follow it; those
        conditions are kept verbatim as part of the group.

        Returns:
            MasterServerFilter, or None if the string is malformed or has
            unknown keys
        """
        try:
            pairs = parse_filter_message(msg)
        except ValueError as e:
            logger.warning(f"[FILTER] {e}")
            return None

        server_filter = cls()
        i = 0
        while i < len(pairs):
            key, value = pairs[i]
            i += 1

            if key == 'type':
                server_filter.dedicated_only = value == 'd'
            elif key in FLAG_KEYS:
                setattr(server_filter, FLAG_KEYS[key], value != '0')
            elif key in TEXT_KEYS:
                setattr(server_filter, TEXT_KEYS[key], value)
            elif key in NUMBER_KEYS:
                if not value.isdigit():
                    logger.warning(f"[FILTER] Invalid {key} value: {value!r}")
                    return None
                setattr(server_filter, NUMBER_KEYS[key], int(value))
            elif key == 'gameaddr':
                try:
                    server_filter.game_address = parse_endpoint(value)
                except ValueError as e:
                    logger.warning(f"[FILTER] Invalid gameaddr: {e}")
                    return None
            elif key in GROUP_KEYS:
                if not value.isdigit() or i + int(value) > len(pairs):
                    logger.warning(f"[FILTER] Invalid {key} group: {value!r}")
                    return None
                count = int(value)
                group = value + build_filter_message(pairs[i:i + count])
                setattr(server_filter, GROUP_KEYS[key], group)
                i += count
            else:
                logger.warning(f"[FILTER] Unknown filter key: {key!r}")
                return None

        return server_filter

    def __bool__(self):
        return any(getattr(self, f.name) != f.default for f in fields(self))
