"""
Tests for the SteamID codec
"""

import pytest

from source_query.utils.steamid import (
    AccountType,
    ChatInstanceFlag,
    SteamID,
    Universe,
    UserInstance,
)


def clean(text):
    """Steam3 text with '-' and '(' normalized to ':' and outer brackets removed."""
    return text.replace('-', ':').replace('(', ':').strip(')[]')


class TestSteam2:

    @pytest.mark.parametrize('text', ['STEAM_0:0:66138017', '0:0:66138017'])
    def test_parse(self, text):
        """Steam2 text renders back to itself"""
        steam_id = SteamID()
        assert steam_id.set_from_steam2_string(text)
        assert text in steam_id.render(steam3=False)

    @pytest.mark.parametrize('text', ['STEAM_0:0', 'STEAM_0:0:12345678901', '0:0', '0:0:12345678901'])
    def test_parse_failure(self, text):
        assert not SteamID().set_from_steam2_string(text)

    def test_fields(self):
        steam_id = SteamID.from_steam2('STEAM_0:1:12345')
        assert steam_id.account_id == 24691
        assert steam_id.account_instance == UserInstance.DESKTOP
        assert steam_id.account_type == AccountType.INDIVIDUAL
        assert steam_id.account_universe == Universe.PUBLIC
        assert steam_id.render() == '[U:1:24691]'

    def test_short_form(self):
        steam_id = SteamID.from_steam2('1:24691')
        assert steam_id.account_id == 24691
        assert steam_id.account_universe == Universe.PUBLIC

    def test_universe_digit_kept(self):
        steam_id = SteamID.from_steam2('STEAM_3:0:5')
        assert steam_id.account_universe == Universe.INTERNAL
        assert steam_id.render(steam3=False) == 'STEAM_3:0:5'

    def test_default_universe(self):
        steam_id = SteamID.from_steam2('STEAM_0:0:5', Universe.BETA)
        assert steam_id.account_universe == Universe.BETA

    def test_account_overflow(self):
        """Account ids that no longer fit 32 bits after folding the auth bit"""
        assert SteamID.from_steam2('STEAM_0:1:2147483648') is None

    def test_failure_resets_value(self):
        steam_id = SteamID.from_steam2('STEAM_0:0:5')
        assert not steam_id.set_from_steam2_string('STEAM_0:0')
        assert steam_id.steam64 == 0

    @pytest.mark.parametrize('universe', [Universe.INVALID, Universe.MAX, 9])
    def test_invalid_default_universe(self, universe):
        with pytest.raises(ValueError):
            SteamID().set_from_steam2_string('STEAM_0:0:5', universe)


class TestSteam3:

    @pytest.mark.parametrize('text', [
        '[U-1-0]', '[U:1:0]', 'U:1:0', 'U-1-0',
        '[A:1:0:0]', '[A:1:0(0)]', 'A:1:0:0', 'A:1:0(0)',
        '[A-1-0:0]', '[A-1-0(0)]', 'A-1-0:0', 'A-1-0(0)',
        'A-1-0:0)', 'A-1-0(0',
        '[1-0]', '[1:0]', '1-0', '1:0',
    ])
    def test_parse_loose(self, text):
        """Loose grammar accepts dash, colon and paren variants with or without brackets"""
        steam_id = SteamID()
        assert steam_id.set_from_string(text)
        assert clean(text) in steam_id.render()

    @pytest.mark.parametrize('text', [
        '[A-0-0-0]', '[A-0-0:(0)]', '[U-0-0-0]',
        'A-0-0-0', 'A-0-0:(0)', 'U-0-0-0',
        '[U:1:0', 'U:1:0]', '[U-1-0', 'U-1-0]',
    ])
    def test_parse_loose_failure(self, text):
        assert not SteamID().set_from_string(text)

    @pytest.mark.parametrize('text', [
        '[U-0-0]', '[U:0:0]', 'U:0:0', 'U-0-0',
        '[A:0:0(0)]', 'A:0:0(0)', '[A-0-0(0)]', 'A-0-0(0)',
        '[0-0]', '[0:0]', '0-0', '0:0', '0', '[0]',
    ])
    def test_parse_strict(self, text):
        assert SteamID().set_from_string(text, strict=True)

    @pytest.mark.parametrize('text', [
        '[A-0-0:(0)]', '[U-0-0-0]', '[U:0:0:0]', '[U-0-0:0]',
        '[U:0:0', 'U:0:0]', '[U-0-0', 'U-0-0]',
        'A-0-0(0', 'A-0-0:0)',
    ])
    def test_parse_strict_failure(self, text):
        assert not SteamID().set_from_string(text, strict=True)

    @pytest.mark.parametrize('strict', [False, True])
    def test_instance_mask(self, strict):
        """Explicit instances must fit the 20-bit instance field"""
        steam_id = SteamID()
        assert steam_id.set_from_string('[A:1:1:1048575]', strict=strict)
        assert steam_id.account_instance == 0xFFFFF
        assert not SteamID().set_from_string('[A:1:1:1048576]', strict=strict)
        assert SteamID.from_string('[A:1:1:1048576]', strict=strict) is None

    def test_universe_zero_uses_default(self):
        steam_id = SteamID.from_string('[U:0:5]', Universe.DEV)
        assert steam_id.account_universe == Universe.DEV

    def test_game_server_instance(self):
        steam_id = SteamID.from_string('[A:1:1234:7]')
        assert steam_id.account_type == AccountType.ANON_GAME_SERVER
        assert steam_id.account_instance == 7
        assert steam_id.render() == '[A:1:1234:7]'

    def test_clan_instance_forced_to_zero(self):
        steam_id = SteamID.from_string('[g:1:4]')
        assert steam_id.account_type == AccountType.CLAN
        assert steam_id.account_instance == 0
        assert steam_id.render() == '[g:1:4]'

    @pytest.mark.parametrize('text, flag', [
        ('[L:1:100]', ChatInstanceFlag.LOBBY),
        ('[c:1:100]', ChatInstanceFlag.CLAN),
    ])
    def test_chat_letters(self, text, flag):
        """Lobby and clan chat keep their letter through a round trip"""
        steam_id = SteamID.from_string(text)
        assert steam_id.account_type == AccountType.CHAT
        assert steam_id.account_instance & flag
        assert steam_id.render() == text

    def test_bare_steam64(self):
        """A bare number too large for an account id is a raw Steam64 value"""
        steam_id = SteamID.from_string('76561198092541762')
        assert steam_id.account_id == 132276034
        assert steam_id.account_type == AccountType.INDIVIDUAL
        assert steam_id.account_universe == Universe.PUBLIC

    def test_steam64_with_markers_fails(self):
        assert SteamID.from_string('[U:1:76561198092541762]') is None

    def test_too_many_digits(self):
        assert SteamID.from_string('1' * 21) is None

    def test_empty(self):
        assert SteamID.from_string('') is None

    def test_constructor_parses_text(self):
        assert SteamID('[U:1:24691]') == SteamID.from_steam2('STEAM_0:1:12345')

    def test_constructor_rejects_bad_text(self):
        with pytest.raises(ValueError):
            SteamID('not a steamid')


class TestSteam64:

    def test_from_uint64(self):
        steam_id = SteamID.from_uint64(76561198092541762)
        assert steam_id.render(steam3=False) == 'STEAM_0:0:66138017'
        assert int(steam_id) == 76561198092541762

    @pytest.mark.parametrize('value', [0, 0xFFFFFFFF, 1 << 64])
    def test_from_uint64_out_of_range(self, value):
        assert SteamID.from_uint64(value) is None


class TestRoundTrip:

    @pytest.mark.parametrize('account_type, instance', [
        (AccountType.INDIVIDUAL, UserInstance.DESKTOP),
        (AccountType.GAME_SERVER, 1),
        (AccountType.ANON_GAME_SERVER, 42),
        (AccountType.PENDING, 1),
        (AccountType.CONTENT_SERVER, 1),
        (AccountType.CLAN, 0),
        (AccountType.CHAT, 0),
        (AccountType.CHAT, ChatInstanceFlag.LOBBY),
        (AccountType.CHAT, ChatInstanceFlag.CLAN),
        (AccountType.ANON_USER, 1),
    ])
    @pytest.mark.parametrize('universe', [Universe.PUBLIC, Universe.BETA, Universe.DEV])
    def test_steam3(self, account_type, instance, universe):
        original = SteamID.from_parts(5678, instance, account_type, universe)
        assert SteamID.from_string(original.render()) == original
        assert SteamID.from_string(original.render(), strict=True) == original

    @pytest.mark.parametrize('universe', [Universe.PUBLIC, Universe.BETA, Universe.INTERNAL])
    def test_steam2(self, universe):
        original = SteamID.from_parts(5679, UserInstance.DESKTOP, AccountType.INDIVIDUAL, universe)
        assert SteamID.from_steam2(original.render(steam3=False)) == original

    def test_steam2_not_rendered_for_other_types(self):
        steam_id = SteamID.from_parts(1, 0, AccountType.CLAN, Universe.PUBLIC)
        assert steam_id.render(steam3=False) is None


class TestValidity:

    def test_individual(self):
        assert SteamID.from_steam2('STEAM_0:0:5').is_valid()
        assert not SteamID.from_parts(0, 1, AccountType.INDIVIDUAL, Universe.PUBLIC).is_valid()
        assert SteamID.from_parts(5, UserInstance.CONSOLE, AccountType.INDIVIDUAL, Universe.PUBLIC).is_valid()
        assert not SteamID.from_parts(5, UserInstance.WEB, AccountType.INDIVIDUAL, Universe.PUBLIC).is_valid()
        assert not SteamID.from_parts(5, 5, AccountType.INDIVIDUAL, Universe.PUBLIC).is_valid()

    def test_clan_needs_zero_instance(self):
        assert SteamID.from_parts(5, 0, AccountType.CLAN, Universe.PUBLIC).is_valid()
        assert not SteamID.from_parts(5, 1, AccountType.CLAN, Universe.PUBLIC).is_valid()

    def test_anon_game_server(self):
        assert SteamID.from_parts(0, 3, AccountType.ANON_GAME_SERVER, Universe.PUBLIC).is_valid()
        assert not SteamID.from_parts(0, 0, AccountType.ANON_GAME_SERVER, Universe.PUBLIC).is_valid()

    def test_invalid_universe_and_type(self):
        assert not SteamID.from_parts(5, 1, AccountType.INDIVIDUAL, Universe.INVALID).is_valid()
        assert not SteamID.from_parts(5, 1, AccountType.INVALID, Universe.PUBLIC).is_valid()
        assert not SteamID.from_parts(5, 0, 12, Universe.PUBLIC).is_valid()
