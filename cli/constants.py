"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = ["alias", "char", "sync", "whois", "profiles", "roster", "clear", "exit", "help"]

SYNC_SUBCOMMANDS = ["broadcast", "status", "purge", "verbose", "gossip", "help"]

STYLE = Style.from_dict(
    {
        "prompt": "#3FA7D6 bold",
        "command": "#0088ff bold",
    }
)

INFO = "\033[38;2;63;167;214m[guildsync]\033[0m"
ERROR = "\033[38;2;244;89;53m[guildsync]\033[0m"

WELCOME_TITLE = "guildsync - gossip profile sync for your guild"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "guildsync> "

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SYNC_HELP_TEXT = """Sync commands:
  sync broadcast                      Force MANIFEST broadcast
  sync status                         Show profile status
  sync purge                          Clear all synced profiles
  sync verbose                        Toggle verbose debug output
  sync gossip                         Show gossip statistics"""

HELP_TEXT = f"""Available commands:
  alias [new alias]                   Show or set your alias
  char add <name> [realm]             Register another character on your profile
  whois <name[-realm]>                Look up the BattleTag owning a character
  profiles                            List cached profiles
  roster                              Treat currently known peers as a roster update
{SYNC_HELP_TEXT.split(chr(10), 1)[1]}
  clear                               Clear screen and redisplay welcome message
  help                                Show this help
  exit                                Save and exit

Examples:
  alias Stormy
  char add Thrall "Argent Dawn"
  whois Thrall-ArgentDawn
  sync status"""
