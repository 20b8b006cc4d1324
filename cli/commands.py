"""Command handler functions for CLI operations."""

from datetime import datetime
from typing import Optional

from common.logging_config import get_logger, is_verbose, set_verbose
from cli.constants import DATE_FORMAT, ERROR, INFO, SYNC_HELP_TEXT
from cli.models import (
    AliasCommand,
    CharAddCommand,
    ProfilesCommand,
    RosterCommand,
    SyncCommand,
    WhoisCommand,
)
from peer.node import PeerNode

logger = get_logger(__name__)


_node: Optional[PeerNode] = None


def set_node(node: PeerNode) -> None:
    """
    Register the PeerNode the handlers act on.

    Args:
        node: Running PeerNode instance
    """
    global _node
    _node = node


def get_node() -> PeerNode:
    """
    Get the registered PeerNode.

    Returns:
        PeerNode instance

    Raises:
        RuntimeError: If no node was registered
    """
    if _node is None:
        raise RuntimeError("No peer node registered")
    return _node


def _format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp).strftime(DATE_FORMAT)


def handle_alias(cmd: AliasCommand, node: Optional[PeerNode] = None) -> str:
    """
    Handle 'alias' command.

    Args:
        cmd: AliasCommand, with alias None to show the current one
        node: Optional PeerNode for dependency injection (testing)

    Returns:
        Success or error message
    """
    if node is None:
        node = get_node()

    profile = node.store.get_my_profile()
    if profile is None:
        return f"{ERROR} No profile found. Make sure you're logged in."

    if cmd.alias is None:
        return f"{INFO} Your current alias is: {profile.alias}"

    if node.set_alias(cmd.alias) or profile.alias == cmd.alias:
        return f"{INFO} Alias set to: {cmd.alias}"
    return f"{ERROR} Failed to set alias."


def handle_char_add(cmd: CharAddCommand, node: Optional[PeerNode] = None) -> str:
    if node is None:
        node = get_node()

    if node.add_character(cmd.name, cmd.realm):
        realm = f" ({cmd.realm})" if cmd.realm else ""
        return f"{INFO} New character registered: {cmd.name}{realm}"
    return f"{ERROR} Character {cmd.name} is already registered."


def handle_whois(cmd: WhoisCommand, node: Optional[PeerNode] = None) -> str:
    if node is None:
        node = get_node()

    battle_tag = node.cache.find_battle_tag(cmd.name)
    if battle_tag is None:
        return f"{ERROR} Unknown character: {cmd.name}"

    profile = node.store.get_profile(battle_tag) or node.store.get_my_profile()
    alias = profile.alias if profile and profile.battle_tag == battle_tag else battle_tag
    return f"{INFO} {cmd.name} belongs to {battle_tag} ({alias})"


def handle_profiles(cmd: ProfilesCommand, node: Optional[PeerNode] = None) -> str:
    if node is None:
        node = get_node()

    profiles = node.store.get_all_profiles()
    lines = [f"{INFO} === Cached Profiles: {len(profiles)} ==="]
    for battle_tag in sorted(profiles):
        profile = profiles[battle_tag]
        lines.append(f"  {battle_tag} ({profile.alias}) - {profile.character_count()} chars")
    return "\n".join(lines)


def handle_roster(cmd: RosterCommand, node: Optional[PeerNode] = None) -> str:
    if node is None:
        node = get_node()

    roster = getattr(node.transport, "roster", None)
    members = roster() if callable(roster) else None
    node.on_roster_update(members)
    count = "unknown" if members is None else len(members)
    return f"{INFO} Roster update processed (members: {count})"


def handle_sync(cmd: SyncCommand, node: Optional[PeerNode] = None) -> str:
    """
    Handle 'sync <action>' command.

    Args:
        cmd: SyncCommand with the subcommand to run
        node: Optional PeerNode for dependency injection (testing)

    Returns:
        Output text for the REPL
    """
    if node is None:
        node = get_node()

    if cmd.action == "broadcast":
        if node.broadcast():
            return f"{INFO} Manually triggered MANIFEST broadcast"
        return f"{ERROR} MANIFEST broadcast was not sent (not in a guild or transport unavailable)"
    elif cmd.action == "status":
        return _sync_status(node)
    elif cmd.action == "purge":
        count = node.purge()
        return f"{INFO} Purged {count} synced profile(s). Your profile was preserved."
    elif cmd.action == "verbose":
        enabled = not is_verbose()
        set_verbose(enabled)
        logger.info(f"Verbose debug {'enabled' if enabled else 'disabled'}")
        return f"{INFO} Verbose debug mode {'enabled' if enabled else 'disabled'}"
    elif cmd.action == "gossip":
        return _sync_gossip(node)
    return f"{INFO} {SYNC_HELP_TEXT}"


def _sync_status(node: PeerNode) -> str:
    lines = []
    profile = node.store.get_my_profile()
    if profile is not None:
        lines.append(f"{INFO} === My Profile ===")
        lines.append(f"  BattleTag: {profile.battle_tag}")
        lines.append(f"  Alias: {profile.alias}")
        lines.append(f"  Alias Updated: {_format_time(profile.alias_updated_at)}")
        lines.append(f"  Chars Updated: {_format_time(profile.chars_updated_at)}")
        lines.append(f"  Characters: {profile.character_count()}")
    else:
        lines.append(f"{ERROR} No profile found")

    profiles = node.store.get_all_profiles()
    lines.append(f"{INFO} === Cached Profiles: {len(profiles)} ===")
    for battle_tag in sorted(profiles):
        cached = profiles[battle_tag]
        lines.append(f"  {battle_tag} ({cached.alias}) - {cached.character_count()} chars")

    stats = node.coordinator.get_sync_stats()
    if stats["time_since_last_manifest"] is not None:
        lines.append(f"  Last manifest: {stats['time_since_last_manifest']:.0f}s ago")
    lines.append(f"  Next heartbeat in: {stats['next_heartbeat_in']:.0f}s")
    return "\n".join(lines)


def _sync_gossip(node: PeerNode) -> str:
    stats = node.gossip.get_stats()
    tracked = stats["tracked_profiles_by_player"]
    lines = [f"{INFO} === Gossip Statistics ==="]
    lines.append(f"  Total players gossiped to: {len(tracked)}")
    lines.append(f"  Total corrections sent: {stats['total_corrections']}")
    if tracked:
        lines.append("  Profiles tracked by player:")
        for battle_tag in sorted(tracked):
            lines.append(f"    {battle_tag}: {tracked[battle_tag]} profile(s)")
    return "\n".join(lines)
