"""
Tests for the Steam Web API client against an in-process aiohttp app
"""

import asyncio
import json

from aiohttp import web
from aiohttp import test_utils

from source_query.servers.steam_api import SteamAPI
from source_query.utils.endpoint import Endpoint
from source_query.utils.steamid import AccountType, SteamID, Universe

API_KEY = 'TESTKEY'
BASE = '/IGameServersService'

SERVER_STEAM_ID = SteamID.from_parts(1234, 5, AccountType.ANON_GAME_SERVER, Universe.PUBLIC)


def build_app(received):
    async def steam_ids_by_ip(request):
        received.append(dict(request.query))
        server_ips = json.loads(request.query['input_json'])['server_ips']
        return web.json_response({'response': {'servers': [
            {'addr': addr, 'gameport': 27015, 'steamid': str(SERVER_STEAM_ID.steam64)}
            for addr in server_ips
        ]}})

    async def ips_by_steam_id(request):
        received.append(dict(request.query))
        steam_ids = json.loads(request.query['input_json'])['server_steamids']
        return web.json_response({'response': {'servers': [
            {'addr': '10.0.0.1:27015', 'steamid': steam_id} for steam_id in steam_ids
        ]}})

    async def account_public_info(request):
        received.append(dict(request.query))
        return web.json_response({'response': {'steamid': request.query['steamid'], 'appid': 440}})

    app = web.Application()
    app.router.add_get(f'{BASE}/GetServerSteamIDsByIP/v1/', steam_ids_by_ip)
    app.router.add_get(f'{BASE}/GetServerIPsBySteamID/v1/', ips_by_steam_id)
    app.router.add_get(f'{BASE}/GetAccountPublicInfo/v1/', account_public_info)
    return app


async def call_api(app, method, *args):
    async with test_utils.TestServer(app) as server:
        api = SteamAPI(API_KEY, base_url=f'http://{server.host}:{server.port}', timeout=2)
        return await getattr(api, method)(*args)


class TestSteamAPI:

    def test_steam_ids_by_ip(self):
        received = []
        servers = asyncio.run(call_api(
            build_app(received), 'get_server_steam_ids_by_ip', [Endpoint('1.2.3.4', 27015)]
        ))

        assert len(servers) == 1
        assert servers[0].address == Endpoint('1.2.3.4', 27015)
        assert servers[0].steam_id == SERVER_STEAM_ID
        assert received[0]['key'] == API_KEY
        assert json.loads(received[0]['input_json']) == {'server_ips': ['1.2.3.4:27015']}

    def test_single_address(self):
        servers = asyncio.run(call_api(build_app([]), 'get_server_steam_ids_by_ip', Endpoint('1.2.3.4', 27015)))
        assert [server.address for server in servers] == [Endpoint('1.2.3.4', 27015)]

    def test_ips_by_steam_id(self):
        """Steam IDs are sent in their 64-bit decimal form"""
        received = []
        servers = asyncio.run(call_api(build_app(received), 'get_server_ips_by_steam_id', SERVER_STEAM_ID))

        assert json.loads(received[0]['input_json']) == {'server_steamids': [str(SERVER_STEAM_ID.steam64)]}
        assert servers[0].address == Endpoint('10.0.0.1', 27015)
        assert servers[0].steam_id == SERVER_STEAM_ID

    def test_account_public_info(self):
        info = asyncio.run(call_api(build_app([]), 'get_account_public_info', SERVER_STEAM_ID))
        assert info.steam_id == SERVER_STEAM_ID
        assert info.app_id == 440

    def test_http_error(self):
        async def forbidden(request):
            return web.Response(status=403, text='Forbidden')

        app = web.Application()
        app.router.add_get(f'{BASE}/GetAccountPublicInfo/v1/', forbidden)
        assert asyncio.run(call_api(app, 'get_account_public_info', SERVER_STEAM_ID)) is None

    def test_invalid_json(self):
        async def html(request):
            return web.Response(text='<html></html>', content_type='text/html')

        app = web.Application()
        app.router.add_get(f'{BASE}/GetServerSteamIDsByIP/v1/', html)
        assert asyncio.run(call_api(app, 'get_server_steam_ids_by_ip', [])) is None

    def test_missing_response_object(self):
        async def empty(request):
            return web.json_response({})

        app = web.Application()
        app.router.add_get(f'{BASE}/GetServerIPsBySteamID/v1/', empty)
        assert asyncio.run(call_api(app, 'get_server_ips_by_steam_id', [])) is None

    def test_bad_server_entries_skipped(self):
        async def servers(request):
            return web.json_response({'response': {'servers': [
                {'addr': 'bogus'},
                {'addr': '1.2.3.4:27015', 'steamid': 'none'},
            ]}})

        app = web.Application()
        app.router.add_get(f'{BASE}/GetServerSteamIDsByIP/v1/', servers)
        result = asyncio.run(call_api(app, 'get_server_steam_ids_by_ip', []))
        assert len(result) == 1
        assert result[0].address == Endpoint('1.2.3.4', 27015)
        assert result[0].steam_id is None

    def test_unreachable(self):
        async def run():
            api = SteamAPI(API_KEY, base_url='http://127.0.0.1:9', timeout=1)
            return await api.get_account_public_info(SERVER_STEAM_ID)

        assert asyncio.run(run()) is None
