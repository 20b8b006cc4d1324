"""Pydantic schemas for sync message payloads."""

from peer.schemas.messages import (
    AliasUpdate,
    CharacterRecord,
    CharsUpdate,
    DigestEntry,
    GossipDigest,
    GossipRequest,
    Manifest,
    MESSAGE_MODELS,
    RequestChars,
    WireModel,
    is_valid_battle_tag,
)

__all__ = [
    "AliasUpdate",
    "CharacterRecord",
    "CharsUpdate",
    "DigestEntry",
    "GossipDigest",
    "GossipRequest",
    "Manifest",
    "MESSAGE_MODELS",
    "RequestChars",
    "WireModel",
    "is_valid_battle_tag",
]
