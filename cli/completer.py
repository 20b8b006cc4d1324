"""Custom completer for the guildsync CLI."""

from typing import Callable, Iterable, List, Optional

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import COMMANDS, SYNC_SUBCOMMANDS


class GuildSyncCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Subcommand completion for 'sync' and 'char'
    - Known character names for 'whois'
    """

    def __init__(self, names_provider: Optional[Callable[[], List[str]]] = None):
        self.names_provider = names_provider

    def get_completions(
        self, document: Document, complete_event
    ) -> Iterable[Completion]:
        text = document.text_before_cursor
        tokens = text.split()

        is_typing_new_token = text.endswith(" ") or not tokens

        if not tokens or (len(tokens) == 1 and not is_typing_new_token):
            yield from self._complete_words(COMMANDS, tokens[0] if tokens else "")
            return

        command = tokens[0].lower()
        current_word = "" if is_typing_new_token else tokens[-1]
        arg_index = len(tokens) - 1 if not is_typing_new_token else len(tokens)

        if arg_index != 1:
            return

        if command == "sync":
            yield from self._complete_words(SYNC_SUBCOMMANDS, current_word)
        elif command == "char":
            yield from self._complete_words(["add"], current_word)
        elif command == "whois" and self.names_provider is not None:
            yield from self._complete_words(sorted(self.names_provider()), current_word)

    def _complete_words(self, words: Iterable[str], partial: str) -> Iterable[Completion]:
        """Complete words matching the partial input (case-insensitive)."""
        partial_lower = partial.lower()
        for word in words:
            if word.lower().startswith(partial_lower):
                yield Completion(word, start_position=-len(partial))
