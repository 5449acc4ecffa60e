"""
SteamID codec

Packs a 64-bit Steam account identifier and converts it to and from its
textual forms:

- Steam2 (legacy):  STEAM_0:1:12345
- Steam3 (modern):  [U:1:24691], [A:1:0:5], [g:1:4]
- Steam64 (raw):    76561197960290419

Bit layout (lowest bit first):
    account id   32 bits
    instance     20 bits
    account type  4 bits
    universe      8 bits
"""

import re
from enum import IntEnum
from typing import Optional, Union

from source_query.utils.bitvector import BitVector64, UINT64_MASK


class AccountType(IntEnum):
    """Steam account types"""
    INVALID = 0
    INDIVIDUAL = 1        # single user account
    MULTISEAT = 2         # multiseat (e.g. cybercafe) account
    GAME_SERVER = 3       # game server account
    ANON_GAME_SERVER = 4  # anonymous game server account
    PENDING = 5
    CONTENT_SERVER = 6
    CLAN = 7
    CHAT = 8
    CONSOLE_USER = 9      # local PSN/Live account
    ANON_USER = 10
    MAX = 11              # at most 16 values fit the field


class Universe(IntEnum):
    """Steam universes, each one a self-contained Steam instance"""
    INVALID = 0
    PUBLIC = 1
    BETA = 2
    INTERNAL = 3
    DEV = 4
    MAX = 5


class UserInstance(IntEnum):
    """Simultaneous user account instances (0 = all)"""
    ALL = 0
    DESKTOP = 1
    CONSOLE = 2
    WEB = 4
    MAX = 5


ACCOUNT_ID_OFFSET = 0
ACCOUNT_ID_MASK = 0xFFFFFFFF

ACCOUNT_INSTANCE_OFFSET = 32
ACCOUNT_INSTANCE_MASK = 0xFFFFF

ACCOUNT_TYPE_OFFSET = 52
ACCOUNT_TYPE_MASK = 0xF

ACCOUNT_UNIVERSE_OFFSET = 56
ACCOUNT_UNIVERSE_MASK = 0xFF


class ChatInstanceFlag(IntEnum):
    """
    Flags for chat accounts.

    They occupy the top 8 bits of the 20-bit instance field, leaving the
    low 12 bits for the instance number itself.
    """
    MASK = 0xFFF
    CLAN = (ACCOUNT_INSTANCE_MASK + 1) >> 1
    LOBBY = (ACCOUNT_INSTANCE_MASK + 1) >> 2
    MMS_LOBBY = (ACCOUNT_INSTANCE_MASK + 1) >> 3


ACCOUNT_TYPE_TO_CHAR = {
    AccountType.ANON_GAME_SERVER: 'A',
    AccountType.GAME_SERVER: 'G',
    AccountType.MULTISEAT: 'M',
    AccountType.PENDING: 'P',
    AccountType.CONTENT_SERVER: 'C',
    AccountType.CLAN: 'g',
    AccountType.CHAT: 'T',  # lobby chat is 'L', clan chat is 'c'
    AccountType.INVALID: 'I',  # 'i' is also invalid
    AccountType.INDIVIDUAL: 'U',
    AccountType.ANON_USER: 'a',
}

CHAR_TO_ACCOUNT_TYPE = {
    'i': AccountType.INVALID,
    'I': AccountType.INVALID,
    'U': AccountType.INDIVIDUAL,
    'M': AccountType.MULTISEAT,
    'G': AccountType.GAME_SERVER,
    'A': AccountType.ANON_GAME_SERVER,
    'P': AccountType.PENDING,
    'C': AccountType.CONTENT_SERVER,
    'g': AccountType.CLAN,
    'T': AccountType.CHAT,
    'L': AccountType.CHAT,
    'c': AccountType.CHAT,
    'a': AccountType.ANON_USER,
}


# =============================================================================
# Grammars
# =============================================================================

# STEAM_X:Y:Z, X:Y:Z or the short 1:Z form. The prefix is optional.
STEAM2_PATTERN = re.compile(
    r'(?:STEAM_)?(?:(?P<short>1)|(?P<universe>[0-4]):(?P<auth_server>[01])):(?P<account_id>[0-9]{1,10})'
)

# Each grammar is an ordered table of alternatives. Every alternative fills
# the same slots: type, universe, account and instance (instance_paren when
# the instance is written in parentheses). The first alternative that
# matches the whole input wins.
STEAM3_STRICT_GRAMMAR = (
    re.compile(
        r'(?P<type>A)[:\-]?(?:(?P<universe>[0-4])[:\-])?(?P<account>[0-9]+)'
        r'(?:[:\-](?P<instance>[0-9]{1,10})|\((?P<instance_paren>[0-9]{1,10})\))?'
    ),
    re.compile(
        r'(?:(?P<type>[GMPCgcLTIUai])[:\-]?)?(?:(?P<universe>[0-4])[:\-])?(?P<account>[0-9]+)'
    ),
)

STEAM3_LOOSE_GRAMMAR = (
    re.compile(
        r'(?P<type>A)[:\-]?(?:(?P<universe>[0-4])[:\-])?(?P<account>[0-9]+)'
        r'(?:(?::|\()(?P<instance>[0-9]{1,10})\)?)?'
    ),
    re.compile(
        r'(?:(?P<type>[GMPCgcLTIUai])[:\-]?)?(?:(?P<universe>[0-4])[:\-])?(?P<account>[0-9]+)'
    ),
)

# 2**64 - 1 has 20 digits
MAX_ACCOUNT_DIGITS = 20


def _match_grammar(grammar: tuple, text: str) -> Optional[dict]:
    """
    Match text against a grammar table.

    Returns:
        Dictionary with type, universe, account and instance slots
        (None for slots that were not present), or None if no alternative
        matches the whole string.
    """
    for pattern in grammar:
        match = pattern.fullmatch(text)
        if match is None:
            continue

        groups = match.groupdict()
        instance = groups.get('instance')
        if instance is None:
            instance = groups.get('instance_paren')

        return {
            'type': groups.get('type'),
            'universe': groups.get('universe'),
            'account': groups['account'],
            'instance': instance,
        }

    return None


def _check_default_universe(universe):
    if universe == Universe.INVALID or universe >= Universe.MAX:
        raise ValueError(f"Invalid default universe: {universe!r}")


# =============================================================================
# SteamID
# =============================================================================

class SteamID:
    """
    64-bit Steam account identifier.

    A SteamID is either fully set by one of the parsers or left at zero.

    Example:
        >>> steam_id = SteamID.from_steam2('STEAM_0:0:66138017')
        >>> steam_id.render()
        '[U:1:132276034]'
        >>> steam_id.render(steam3=False)
        'STEAM_0:0:66138017'
        >>> steam_id.steam64
        76561198092541762
    """

    def __init__(self, value: Union[int, str] = 0, universe: Universe = Universe.PUBLIC):
        """
        Create a SteamID.

        Args:
            value: Raw 64-bit value, or text in Steam3/Steam64 form
            universe: Universe used when the text does not carry one

        Raises:
            ValueError: If text is given and cannot be parsed
        """
        self._bits = BitVector64()

        if isinstance(value, str):
            if not self.set_from_string(value, universe):
                raise ValueError(f"Unknown SteamID format: {value!r}")
        else:
            self._bits.data = value

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    @property
    def account_id(self) -> int:
        """Unique account identifier"""
        return self._bits[ACCOUNT_ID_OFFSET, ACCOUNT_ID_MASK]

    @account_id.setter
    def account_id(self, value: int):
        self._bits[ACCOUNT_ID_OFFSET, ACCOUNT_ID_MASK] = value

    @property
    def account_instance(self) -> int:
        """Dynamic instance ID"""
        return self._bits[ACCOUNT_INSTANCE_OFFSET, ACCOUNT_INSTANCE_MASK]

    @account_instance.setter
    def account_instance(self, value: int):
        self._bits[ACCOUNT_INSTANCE_OFFSET, ACCOUNT_INSTANCE_MASK] = value

    @property
    def account_type(self) -> AccountType:
        """Type of account (a plain int for values outside the enum)"""
        value = self._bits[ACCOUNT_TYPE_OFFSET, ACCOUNT_TYPE_MASK]
        try:
            return AccountType(value)
        except ValueError:
            return value

    @account_type.setter
    def account_type(self, value: AccountType):
        self._bits[ACCOUNT_TYPE_OFFSET, ACCOUNT_TYPE_MASK] = value

    @property
    def account_universe(self) -> Universe:
        """Universe this account belongs to (a plain int for values outside the enum)"""
        value = self._bits[ACCOUNT_UNIVERSE_OFFSET, ACCOUNT_UNIVERSE_MASK]
        try:
            return Universe(value)
        except ValueError:
            return value

    @account_universe.setter
    def account_universe(self, value: Universe):
        self._bits[ACCOUNT_UNIVERSE_OFFSET, ACCOUNT_UNIVERSE_MASK] = value

    @property
    def steam64(self) -> int:
        return self._bits.data

    def _reset(self) -> bool:
        self._bits.data = 0
        return False

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    @classmethod
    def from_parts(cls, account_id: int, instance: int, account_type: AccountType,
                   universe: Universe) -> 'SteamID':
        """Pack the four fields into a new SteamID."""
        steam_id = cls()
        steam_id.account_id = account_id
        steam_id.account_instance = instance
        steam_id.account_type = account_type
        steam_id.account_universe = universe
        return steam_id

    def set_from_steam2_string(self, text: str, universe: Universe = Universe.PUBLIC) -> bool:
        """
        Set SteamID from a Steam2 formatted string.

        The STEAM_ prefix is optional. Steam2 only knew desktop instances of
        individual accounts, so type and instance are always fixed. A
        universe digit of 2-4 is kept; 0 and 1 mean the given universe.

        Args:
            text: Steam2 string, e.g. 'STEAM_0:1:12345'
            universe: Universe to use when the string does not carry one

        Returns:
            True on success; on failure the SteamID is reset to zero

        Raises:
            ValueError: If universe is not a usable default
        """
        _check_default_universe(universe)

        if not text:
            return self._reset()

        match = STEAM2_PATTERN.fullmatch(text)
        if match is None:
            return self._reset()

        account_id = int(match['account_id'])
        if account_id > ACCOUNT_ID_MASK:
            return self._reset()

        if match['auth_server'] is not None:
            account_id = (account_id << 1) | int(match['auth_server'])
            if account_id > ACCOUNT_ID_MASK:
                return self._reset()

            legacy_universe = int(match['universe'])
            if legacy_universe > Universe.PUBLIC:
                universe = Universe(legacy_universe)

        self.account_id = account_id
        self.account_instance = UserInstance.DESKTOP
        self.account_type = AccountType.INDIVIDUAL
        self.account_universe = universe
        return True

    def set_from_string(self, text: str, universe: Universe = Universe.PUBLIC,
                        strict: bool = False) -> bool:
        """
        Set SteamID from a Steam3 formatted string or a Steam64 string.

        All but one section of the Steam3 format is optional, the account
        ID. Square brackets must come as a pair or not at all. In the loose
        grammar ':' or '-' separate the sections and a parenthesized
        instance may lack its closing paren.

        A bare number too large for an account ID is read as a raw Steam64
        value.

        Args:
            text: Steam3 or Steam64 string
            universe: Universe to use when the string does not carry one
            strict: Use the strict grammar

        Returns:
            True on success; on failure the SteamID is reset to zero

        Raises:
            ValueError: If universe is not a usable default
        """
        _check_default_universe(universe)

        if not text:
            return self._reset()

        if text[0] == '[' and text[-1] == ']':
            text = text[1:-1]
        elif text[0] == '[' or text[-1] == ']':
            return self._reset()

        grammar = STEAM3_STRICT_GRAMMAR if strict else STEAM3_LOOSE_GRAMMAR
        slots = _match_grammar(grammar, text)

        if slots is None or not self._set_from_slots(slots, universe):
            return self._reset()
        return True

    def _set_from_slots(self, slots: dict, default_universe: Universe) -> bool:
        if len(slots['account']) > MAX_ACCOUNT_DIGITS:
            return False

        account = int(slots['account'])
        if account > UINT64_MASK:
            return False

        universe = default_universe
        if slots['universe'] is not None:
            value = int(slots['universe'])
            if value >= Universe.MAX:
                return False

            universe = Universe(value)
            if universe == Universe.INVALID:
                universe = default_universe

        type_char = slots['type']
        account_type = AccountType.INDIVIDUAL
        if type_char is not None:
            if type_char not in CHAR_TO_ACCOUNT_TYPE:
                return False
            account_type = CHAR_TO_ACCOUNT_TYPE[type_char]

        instance = 1
        if slots['instance'] is not None:
            instance = int(slots['instance'])
            if instance > ACCOUNT_INSTANCE_MASK:
                return False

        no_markers = slots['universe'] is None and type_char is None and slots['instance'] is None
        if no_markers and account > ACCOUNT_ID_MASK:
            return self.set_from_uint64(account)
        elif account > ACCOUNT_ID_MASK:
            return False

        if account_type == AccountType.CLAN:
            instance = 0
        elif account_type in (AccountType.INDIVIDUAL, AccountType.INVALID):
            instance = 1
        elif account_type == AccountType.CHAT:
            if type_char == 'T':
                instance = 0
            elif type_char == 'L':
                instance = ChatInstanceFlag.LOBBY
            elif type_char == 'c':
                instance = ChatInstanceFlag.CLAN
        elif account_type == AccountType.ANON_GAME_SERVER:
            if account == 0:
                instance = 0

        self.account_id = account
        self.account_instance = instance
        self.account_type = account_type
        self.account_universe = universe
        return True

    def set_from_uint64(self, steam64: int) -> bool:
        """
        Set SteamID from a raw Steam64 value.

        Values that fit in the account ID alone are rejected.
        """
        if steam64 <= ACCOUNT_ID_MASK or steam64 > UINT64_MASK:
            return self._reset()

        self._bits.data = steam64
        return True

    @classmethod
    def from_steam2(cls, text: str, universe: Universe = Universe.PUBLIC) -> Optional['SteamID']:
        steam_id = cls()
        return steam_id if steam_id.set_from_steam2_string(text, universe) else None

    @classmethod
    def from_string(cls, text: str, universe: Universe = Universe.PUBLIC,
                    strict: bool = False) -> Optional['SteamID']:
        steam_id = cls()
        return steam_id if steam_id.set_from_string(text, universe, strict) else None

    @classmethod
    def from_uint64(cls, steam64: int) -> Optional['SteamID']:
        steam_id = cls()
        return steam_id if steam_id.set_from_uint64(steam64) else None

    # -------------------------------------------------------------------------
    # Validation and rendering
    # -------------------------------------------------------------------------

    def is_valid(self) -> bool:
        universe = self.account_universe
        if universe == Universe.INVALID or universe >= Universe.MAX:
            return False

        account_type = self.account_type
        if account_type == AccountType.INVALID:
            return False
        elif account_type == AccountType.INDIVIDUAL:
            return self.account_id != 0 and self.account_instance < UserInstance.WEB
        elif account_type == AccountType.CLAN:
            return self.account_id != 0 and self.account_instance == 0
        elif account_type == AccountType.GAME_SERVER:
            return self.account_id != 0
        elif account_type == AccountType.ANON_GAME_SERVER:
            return self.account_id != 0 or self.account_instance != 0

        return account_type < AccountType.MAX

    def _render_steam2(self) -> Optional[str]:
        if self.account_type not in (AccountType.INVALID, AccountType.INDIVIDUAL):
            return None

        universe = self.account_universe
        universe_digit = 0 if universe <= Universe.PUBLIC else int(universe)
        return f"STEAM_{universe_digit}:{self.account_id & 1}:{self.account_id >> 1}"

    def _render_steam3(self) -> str:
        account_type = self.account_type
        instance = self.account_instance
        type_char = ACCOUNT_TYPE_TO_CHAR.get(account_type, 'i')

        render_instance = False
        if account_type in (AccountType.ANON_GAME_SERVER, AccountType.MULTISEAT):
            render_instance = True
        elif account_type == AccountType.INDIVIDUAL:
            render_instance = instance != UserInstance.DESKTOP
        elif account_type == AccountType.CHAT:
            if instance & ChatInstanceFlag.CLAN:
                type_char = 'c'
            elif instance & ChatInstanceFlag.LOBBY:
                type_char = 'L'

        universe = int(self.account_universe)
        if render_instance:
            return f"[{type_char}:{universe}:{self.account_id}:{instance}]"
        return f"[{type_char}:{universe}:{self.account_id}]"

    def render(self, steam3: bool = True) -> Optional[str]:
        """
        Render as text.

        Args:
            steam3: Modern [T:U:A] form if True, legacy STEAM_X:Y:Z otherwise

        Returns:
            Rendered string; the legacy form is None for account types
            other than individual and invalid
        """
        if steam3:
            return self._render_steam3()
        return self._render_steam2()

    # -------------------------------------------------------------------------
    # Dunder
    # -------------------------------------------------------------------------

    def __int__(self):
        return self.steam64

    def __str__(self):
        return self._render_steam3()

    def __repr__(self):
        return f"<SteamID {self._render_steam3()} ({self.steam64})>"

    def __eq__(self, other):
        if isinstance(other, SteamID):
            return self.steam64 == other.steam64
        return NotImplemented

    def __hash__(self):
        return hash(self.steam64)
