"""CLI entry point: runs a UDP peer with an interactive REPL."""

import asyncio
import sys

from common.logging_config import set_verbose, setup_logging
from cli.commands import set_node
from cli.repl import repl_loop
from peer.config import PREFIX, PeerConfig, parse_peers
from peer.main import parse_args
from peer.node import PeerNode
from peer.schemas import is_valid_battle_tag
from peer.scheduler import AsyncioScheduler
from peer.transport import UdpTransport


async def run(node: PeerNode, transport: UdpTransport) -> None:
    """
    Start the peer, hand the terminal to the REPL, then shut down cleanly.

    Args:
        node: Configured PeerNode
        transport: Its UDP transport
    """
    await transport.start()
    node.login()
    set_node(node)
    try:
        await repl_loop(node)
    finally:
        node.logout()
        await transport.stop()


def main() -> None:
    """Entry point for CLI."""
    args = parse_args(sys.argv[1:])
    log_level = 'DEBUG' if args.debug else None

    logger = setup_logging('cli', log_level=log_level)
    if args.debug:
        logger.info("Debug logging enabled")

    config = PeerConfig(args.config) if args.config else PeerConfig()
    if config.is_verbose() and not args.debug:
        set_verbose(True)

    battle_tag, character, realm = config.get_identity()
    battle_tag = args.battle_tag or battle_tag
    character = args.character or character
    realm = args.realm if args.realm is not None else realm
    if not battle_tag or not character:
        print("A BattleTag and character name are required (--battle-tag/--character or config).")
        sys.exit(2)
    if not is_valid_battle_tag(battle_tag):
        print(f"Malformed BattleTag '{battle_tag}', expected Name#1234.")
        sys.exit(2)
    if (battle_tag, character, realm) != config.get_identity():
        config.set_identity(battle_tag, character, realm)

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

    logger.info("CLI starting...")
    try:
        asyncio.run(run(node, transport))
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        logger.info("CLI exiting")


if __name__ == "__main__":
    main()
