"""REPL with prompt_toolkit for operating a local peer."""

import os
import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from cli.commands import (
    handle_alias,
    handle_char_add,
    handle_profiles,
    handle_roster,
    handle_sync,
    handle_whois,
)
from cli.completer import GuildSyncCompleter
from cli.constants import (
    HELP_TEXT,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
from cli.models import (
    AliasCommand,
    CharAddCommand,
    ProfilesCommand,
    RosterCommand,
    SyncCommand,
    WhoisCommand,
)
from cli.parser import ParseError, parse_command
from peer.node import PeerNode


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    if sys.platform == "win32":
        os.system("cls")
    else:
        os.system("clear")


def show_welcome() -> None:
    print(WELCOME_TITLE)
    print(WELCOME_HELP)


def dispatch_command(cmd_obj, node: PeerNode) -> str:
    """Dispatch parsed command to appropriate handler."""
    if isinstance(cmd_obj, AliasCommand):
        return handle_alias(cmd_obj, node)
    elif isinstance(cmd_obj, CharAddCommand):
        return handle_char_add(cmd_obj, node)
    elif isinstance(cmd_obj, SyncCommand):
        return handle_sync(cmd_obj, node)
    elif isinstance(cmd_obj, WhoisCommand):
        return handle_whois(cmd_obj, node)
    elif isinstance(cmd_obj, ProfilesCommand):
        return handle_profiles(cmd_obj, node)
    elif isinstance(cmd_obj, RosterCommand):
        return handle_roster(cmd_obj, node)
    else:
        return f"Unknown command type: {type(cmd_obj)}"


async def repl_loop(node: PeerNode) -> None:
    """
    Run the interactive REPL on the current event loop.

    The prompt is awaited so inbound messages and timers keep being
    processed while the user types.

    Args:
        node: Logged-in PeerNode the commands act on
    """
    completer = GuildSyncCompleter(node.cache.known_names)
    history = InMemoryHistory()
    session: PromptSession = PromptSession(
        completer=completer, history=history, style=STYLE
    )

    clear_screen()
    show_welcome()

    with patch_stdout():
        while True:
            try:
                user_input = await session.prompt_async([("class:prompt", PROMPT_TEXT)])

                if not user_input.strip():
                    continue

                if user_input.strip() == "exit":
                    print("Goodbye!")
                    break

                if user_input.strip() == "help":
                    print(HELP_TEXT)
                    continue

                if user_input.strip() == "clear":
                    clear_screen()
                    show_welcome()
                    continue

                cmd_obj = parse_command(user_input)
                result = dispatch_command(cmd_obj, node)
                print(result)

            except ParseError as e:
                print(f"Error: {e}")
            except KeyboardInterrupt:
                continue
            except EOFError:
                print("\nGoodbye!")
                break
