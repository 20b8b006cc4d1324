"""Command request data types for the CLI."""

from dataclasses import dataclass
from typing import Literal, Optional


SyncAction = Literal["broadcast", "status", "purge", "verbose", "gossip", "help"]


@dataclass(frozen=True)
class AliasCommand:
    """Show the alias, or set it when one is given."""

    alias: Optional[str] = None
    command: Literal["alias"] = "alias"


@dataclass(frozen=True)
class CharAddCommand:
    """Register another character on our profile."""

    name: str
    realm: str = ""
    command: Literal["char"] = "char"


@dataclass(frozen=True)
class SyncCommand:
    """Sync maintenance subcommands."""

    action: SyncAction
    command: Literal["sync"] = "sync"


@dataclass(frozen=True)
class WhoisCommand:
    """Resolve a character name to its BattleTag."""

    name: str
    command: Literal["whois"] = "whois"


@dataclass(frozen=True)
class ProfilesCommand:
    """List cached profiles."""

    command: Literal["profiles"] = "profiles"


@dataclass(frozen=True)
class RosterCommand:
    """Treat the currently known peers as a roster update."""

    command: Literal["roster"] = "roster"


CommandRequest = (
    AliasCommand
    | CharAddCommand
    | SyncCommand
    | WhoisCommand
    | ProfilesCommand
    | RosterCommand
)
