"""
Steam Web API client

Maps game server addresses to their Steam IDs and back through the
IGameServersService interface.

Endpoints:
- GET /IGameServersService/GetServerSteamIDsByIP/v1/
- GET /IGameServersService/GetServerIPsBySteamID/v1/
- GET /IGameServersService/GetAccountPublicInfo/v1/
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from aiohttp import ClientError, ClientSession, ClientTimeout

from source_query.config import config
from source_query.utils.endpoint import Endpoint, parse_endpoint
from source_query.utils.steamid import SteamID

logger = logging.getLogger(__name__)


SERVICE = 'IGameServersService'


@dataclass(frozen=True)
class ServerDetails:
    address: Endpoint
    steam_id: Optional[SteamID]


@dataclass(frozen=True)
class ServerPublicInfo:
    steam_id: SteamID
    app_id: int


class SteamAPI:
    """
    Client for the game server lookups of the Steam Web API.

    Each call opens its own HTTP session. Calls return None when the API
    cannot be reached or answers with something other than the expected
    JSON.
    """

    def __init__(self, api_key: str = None, base_url: str = None, timeout: float = None):
        self.api_key = config.STEAM_API_KEY if api_key is None else api_key
        self.base_url = (base_url or config.STEAM_API_URL).rstrip('/')
        self.timeout = ClientTimeout(total=timeout or config.STEAM_API_TIMEOUT)

    async def _get(self, method: str, params: dict) -> Optional[dict]:
        """
        Call a service method.

        Returns:
            The 'response' object of the reply, or None on failure
        """
        url = f"{self.base_url}/{SERVICE}/{method}/v1/"
        params = dict(params, key=self.api_key)

        try:
            async with ClientSession(timeout=self.timeout) as session:
                async with session.get(url, params=params) as resp:
                    if resp.status != 200:
                        error = await resp.text()
                        logger.warning(f"[API] {method} failed: {resp.status} - {error[:200]}")
                        return None
                    data = await resp.json(content_type=None)
        except (ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[API] {method} request failed: {e}")
            return None
        except ValueError as e:
            logger.warning(f"[API] {method} returned invalid JSON: {e}")
            return None

        if not isinstance(data, dict) or not isinstance(data.get('response'), dict):
            logger.warning(f"[API] {method} returned no response object")
            return None

        return data['response']

    @staticmethod
    def _parse_servers(response: dict) -> List[ServerDetails]:
        servers = []
        for entry in response.get('servers', []):
            try:
                address = parse_endpoint(entry['addr'])
            except (KeyError, ValueError) as e:
                logger.debug(f"[API] Skipping server entry {entry!r}: {e}")
                continue

            steam_id = None
            if str(entry.get('steamid', '')).isdigit():
                steam_id = SteamID.from_uint64(int(entry['steamid']))
            servers.append(ServerDetails(address, steam_id))
        return servers

    async def get_server_steam_ids_by_ip(
            self, addresses: Union[Endpoint, Iterable[Endpoint]]) -> Optional[List[ServerDetails]]:
        """Look up the Steam IDs of servers by address."""
        if isinstance(addresses, Endpoint):
            addresses = [addresses]

        input_json = json.dumps({'server_ips': [str(address) for address in addresses]})
        response = await self._get('GetServerSteamIDsByIP', {'input_json': input_json})
        if response is None:
            return None

        return self._parse_servers(response)

    async def get_server_ips_by_steam_id(
            self, steam_ids: Union[SteamID, Iterable[SteamID]]) -> Optional[List[ServerDetails]]:
        """Look up the addresses of servers by Steam ID."""
        if isinstance(steam_ids, SteamID):
            steam_ids = [steam_ids]

        input_json = json.dumps({'server_steamids': [str(int(steam_id)) for steam_id in steam_ids]})
        response = await self._get('GetServerIPsBySteamID', {'input_json': input_json})
        if response is None:
            return None

        return self._parse_servers(response)

    async def get_account_public_info(self, steam_id: SteamID) -> Optional[ServerPublicInfo]:
        """Look up the app a game server account is registered for."""
        response = await self._get('GetAccountPublicInfo', {'steamid': str(int(steam_id))})
        if response is None:
            return None

        try:
            return ServerPublicInfo(SteamID(int(response['steamid'])), int(response['appid']))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"[API] Bad account info {response!r}: {e}")
            return None
