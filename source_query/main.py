"""
Command line entry point for the Source query client

Commands:
- info HOST PORT: ping, info, rules and players of one game server
- list: server addresses from the master server
- steamid TEXT: parse a SteamID and show all of its forms
- lookup HOST:PORT: Steam ID of a game server through the Steam Web API
"""

import argparse
import asyncio
import logging
import sys

from source_query.config import config
from source_query.servers.master_server import MasterServer, Region
from source_query.servers.master_server_filter import MasterServerFilter
from source_query.servers.source_server import SourceServer
from source_query.servers.steam_api import SteamAPI
from source_query.utils.endpoint import make_endpoint, parse_endpoint
from source_query.utils.steamid import SteamID

logger = logging.getLogger(__name__)


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_region(text: str) -> int:
    """Region by name (EUROPE) or number (3, 0xFF)."""
    name = text.upper().replace('-', '_')
    if name in Region.__members__:
        return Region[name]
    try:
        return Region(int(text, 0))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Unknown region: {text}")


# =============================================================================
# Commands
# =============================================================================

async def cmd_info(args) -> int:
    try:
        endpoint = make_endpoint(args.host, args.port)
    except ValueError as e:
        print(f"❌ {e}")
        return 1

    async with SourceServer(endpoint) as server:
        latency = await server.ping()
        if latency is None:
            print(f"❌ {endpoint} did not answer")
            return 1

        info = await server.get_info()
        rules = await server.get_rules()
        players = await server.get_players()

    print("=" * 70)
    print(f"🎮 {endpoint}  ({latency * 1000:.0f} ms)")
    print("=" * 70)

    if info is None:
        print("   No server info")
        return 1

    print(f"   Name:     {info.hostname}")
    print(f"   Map:      {info.map}")
    print(f"   Game:     {info.game_description} ({info.game_directory}, app {info.app_id})")
    print(f"   Players:  {info.num_players}/{info.max_players} ({info.num_bots} bots)")
    print(f"   Version:  {info.game_version}")
    print(f"   VAC:      {'yes' if info.secure else 'no'}   Password: {'yes' if info.password else 'no'}")
    if info.steam_id is not None:
        print(f"   SteamID:  {info.steam_id}")
    if info.tags:
        print(f"   Tags:     {info.tags}")

    if players:
        print("\n👥 Players:")
        for player in players:
            print(f"   {player.name:<32} {player.kills:>5}  {player.time_connected / 60:.0f} min")

    if rules:
        print(f"\n📋 Rules ({len(rules)}):")
        for rule in rules:
            print(f"   {rule.name} = {rule.value}")

    return 0


async def cmd_list(args) -> int:
    server_filter = MasterServerFilter.parse(args.filter) if args.filter else None
    if args.filter and server_filter is None:
        print(f"❌ Invalid filter: {args.filter}")
        return 1

    masters = await MasterServer.get_list()
    if not masters:
        print(f"❌ Could not resolve {config.MASTER_SERVER_HOST}")
        return 1

    count = 0
    for master in masters:
        async with master:
            async for page in master.iter_pages(args.region, server_filter):
                for endpoint in page.servers:
                    print(endpoint)
                    count += 1
                    if args.limit and count >= args.limit:
                        return 0

        if count:
            return 0
        logger.info(f"[MASTER] No servers from {master.endpoint}, trying next address")

    return 0 if count else 1


async def cmd_steamid(args) -> int:
    steam_id = SteamID.from_string(args.text) or SteamID.from_steam2(args.text)
    if steam_id is None:
        print(f"❌ Unknown SteamID format: {args.text}")
        return 1

    print(f"   Steam3:   {steam_id.render()}")
    print(f"   Steam2:   {steam_id.render(steam3=False) or '-'}")
    print(f"   Steam64:  {steam_id.steam64}")
    print(f"   Type:     {steam_id.account_type!r}")
    print(f"   Valid:    {'yes' if steam_id.is_valid() else 'no'}")
    return 0


async def cmd_lookup(args) -> int:
    try:
        endpoint = parse_endpoint(args.address)
    except ValueError as e:
        print(f"❌ {e}")
        return 1

    if not config.STEAM_API_KEY:
        print("❌ STEAM_API_KEY is not set")
        return 1

    servers = await SteamAPI().get_server_steam_ids_by_ip(endpoint)
    if not servers:
        print(f"❌ No Steam ID for {endpoint}")
        return 1

    for server in servers:
        print(f"   {server.address}  {server.steam_id or '-'}")
    return 0


COMMANDS = {
    'info': cmd_info,
    'list': cmd_list,
    'steamid': cmd_steamid,
    'lookup': cmd_lookup,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='source-query', description='Source engine server query client')
    commands = parser.add_subparsers(dest='command', required=True)

    info = commands.add_parser('info', help='Query one game server')
    info.add_argument('host')
    info.add_argument('port', type=int)

    listing = commands.add_parser('list', help='List servers from the master server')
    listing.add_argument('--region', type=parse_region, default=config.MASTER_REGION)
    listing.add_argument('--filter', default=config.MASTER_FILTER)
    listing.add_argument('--limit', type=int, default=0)

    steamid = commands.add_parser('steamid', help='Convert a SteamID')
    steamid.add_argument('text')

    lookup = commands.add_parser('lookup', help='Find the Steam ID of a game server')
    lookup.add_argument('address', help='HOST:PORT')

    return parser


async def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    return await COMMANDS[args.command](args)


def run():
    setup_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n\nGoodbye! 👋")


if __name__ == '__main__':
    run()
