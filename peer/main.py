"""Entry point for a UDP sync peer.
Loads persisted profiles, binds the UDP transport and runs until interrupted.
"""

import argparse
import asyncio
import signal
import sys

from common.logging_config import get_logger, setup_logging
from peer.config import DATABASE_PATH, PREFIX, UDP_HOST, UDP_PEERS, UDP_PORT, PeerConfig, parse_peers
from peer.node import PeerNode
from peer.schemas import is_valid_battle_tag
from peer.scheduler import AsyncioScheduler
from peer.transport import UdpTransport


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a profile sync peer over UDP")
    parser.add_argument("--battle-tag", help="Our BattleTag (e.g. Name#1234)")
    parser.add_argument("--character", help="Current character name")
    parser.add_argument("--realm", default=None, help="Current character realm")
    parser.add_argument("--host", default=UDP_HOST)
    parser.add_argument("--port", type=int, default=UDP_PORT)
    parser.add_argument("--peers", default=UDP_PEERS, help="Comma-separated host:port seed peers")
    parser.add_argument("--db", default=DATABASE_PATH, help="SQLite database path")
    parser.add_argument("--config", default=None, help="JSON config path")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


async def serve(node: PeerNode, transport: UdpTransport) -> None:
    """
    Start the transport and node, then wait for a shutdown signal.

    Args:
        node: Configured PeerNode
        transport: Its UDP transport
    """
    logger = get_logger('peer')
    await transport.start()
    node.login()

    stop_event = asyncio.Event()

    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        node.logout()
        await transport.stop()
        logger.info("Peer stopped")


def main(argv=None) -> None:
    """Bootstrap a peer."""
    args = parse_args(argv)
    logger = setup_logging('peer', log_level='DEBUG' if args.debug else None)

    config = PeerConfig(args.config) if args.config else PeerConfig()
    battle_tag, character, realm = config.get_identity()
    battle_tag = args.battle_tag or battle_tag
    character = args.character or character
    realm = args.realm if args.realm is not None else realm

    if not battle_tag or not character:
        logger.error("A BattleTag and character name are required (--battle-tag/--character or config)")
        sys.exit(2)
    if not is_valid_battle_tag(battle_tag):
        logger.error(f"Malformed BattleTag '{battle_tag}', expected Name#1234")
        sys.exit(2)

    transport = UdpTransport(character, args.host, args.port, peers=parse_peers(args.peers),
                             size_limit=config.get('size_limit'))
    node = PeerNode(
        battle_tag=battle_tag,
        character=character,
        realm=realm,
        transport=transport,
        scheduler=AsyncioScheduler(),
        timing=config.get_timing(),
        db_path=args.db,
        prefix=PREFIX,
        size_limit=config.get('size_limit'),
    )

    logger.info(f"Starting peer [battle_tag={battle_tag}, character={character}, port={args.port}]")
    try:
        asyncio.run(serve(node, transport))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Peer error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
