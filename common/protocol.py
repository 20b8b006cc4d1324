"""Shared wire vocabulary: message type tags and short/verbose key mapping."""

from enum import Enum
from typing import Any, Dict


class MessageType(str, Enum):
    """Type tag carried in the ``t`` field of every payload."""

    MANIFEST = "M"
    REQUEST_CHARS = "R"
    ALIAS_UPDATE = "A"
    CHARS_UPDATE = "C"
    GOSSIP_DIGEST = "G"
    GOSSIP_REQUEST = "GR"

    @classmethod
    def from_tag(cls, tag: Any) -> "MessageType | None":
        """Look up a type by tag, returning None for unknown tags."""
        try:
            return cls(tag)
        except ValueError:
            return None


# Short (bandwidth-optimized) key -> canonical verbose key
SHORT_KEYS: Dict[str, str] = {
    "t": "type",
    "b": "battleTag",
    "a": "alias",
    "cu": "charsUpdatedAt",
    "au": "aliasUpdatedAt",
    "af": "afterTimestamp",
    "c": "characters",
    "cc": "charsCount",
    "n": "name",
    "r": "realm",
    "d": "addedAt",
    "e": "entries",
}

VERBOSE_KEYS: Dict[str, str] = {v: k for k, v in SHORT_KEYS.items()}


def _remap(value: Any, mapping: Dict[str, str]) -> Any:
    if isinstance(value, dict):
        return {
            mapping.get(key, key) if isinstance(key, str) else key: _remap(item, mapping)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_remap(item, mapping) for item in value]
    return value


def normalize_keys(value: Any) -> Any:
    """
    Rewrite short wire keys to their verbose names.

    Recurses into nested mappings and lists. Verbose keys and unknown keys
    are left as they are, so payloads from newer peers still load.

    Args:
        value: Decoded payload (usually a dict)

    Returns:
        A new structure with verbose keys
    """
    return _remap(value, SHORT_KEYS)


def shorten_keys(value: Any) -> Any:
    """Inverse of normalize_keys, used when building outbound payloads."""
    return _remap(value, VERBOSE_KEYS)
