"""Command parser for CLI input."""

import shlex
from typing import get_args

from cli.models import (
    AliasCommand,
    CharAddCommand,
    CommandRequest,
    ProfilesCommand,
    RosterCommand,
    SyncAction,
    SyncCommand,
    WhoisCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


SYNC_ACTIONS = get_args(SyncAction)


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object (one of Alias/CharAdd/Sync/Whois/Profiles/Roster)

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0].lower()

    if command_name == "alias":
        return _parse_alias(tokens[1:])
    elif command_name == "char":
        return _parse_char(tokens[1:])
    elif command_name == "sync":
        return _parse_sync(tokens[1:])
    elif command_name == "whois":
        return _parse_whois(tokens[1:])
    elif command_name == "profiles":
        return ProfilesCommand()
    elif command_name == "roster":
        return RosterCommand()
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_alias(args: list[str]) -> AliasCommand:
    """Parse 'alias [new alias]'. The alias may contain spaces."""
    if not args:
        return AliasCommand()
    alias = " ".join(args).strip()
    if not alias:
        raise ParseError("alias cannot be blank")
    return AliasCommand(alias=alias)


def _parse_char(args: list[str]) -> CharAddCommand:
    """Parse 'char add <name> [realm]'."""
    if not args or args[0] != "add":
        raise ParseError("usage: char add <name> [realm]")
    if len(args) < 2:
        raise ParseError("char add requires a character name")
    if len(args) > 3:
        raise ParseError("char add takes a name and an optional realm")
    realm = args[2] if len(args) == 3 else ""
    return CharAddCommand(name=args[1], realm=realm)


def _parse_sync(args: list[str]) -> SyncCommand:
    """Parse 'sync <action>'. Unknown or missing actions show sync help."""
    if not args:
        return SyncCommand(action="help")
    action = args[0].lower()
    if action not in SYNC_ACTIONS:
        return SyncCommand(action="help")
    return SyncCommand(action=action)


def _parse_whois(args: list[str]) -> WhoisCommand:
    """Parse 'whois <name[-realm]>'."""
    if len(args) != 1:
        raise ParseError("whois requires exactly one character name")
    return WhoisCommand(name=args[0])
