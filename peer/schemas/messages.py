"""
Pydantic schemas for sync message payloads.

BattleTags must look like ``Name#1234``. Timestamps are range-checked only
when validation runs with a ``timestamp_range`` context, which the inbound
boundary supplies; models built locally from the store skip that check.
"""

import re
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from common.protocol import MessageType, shorten_keys
from common.types import Character

BATTLE_TAG_PATTERN = re.compile(r".+#\d+")


def is_valid_battle_tag(value: Any) -> bool:
    """Check the ``Name#1234`` shape; names may contain spaces."""
    return isinstance(value, str) and BATTLE_TAG_PATTERN.search(value) is not None


def _check_timestamp(value: int, info: ValidationInfo, allow_zero: bool = False) -> int:
    bounds = (info.context or {}).get("timestamp_range")
    if bounds is None or (allow_zero and value == 0):
        return value
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f"timestamp {value} outside accepted range [{low}, {high}]")
    return value


class WireModel(BaseModel):
    """Base for payload models. Field aliases are the verbose wire keys."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    MESSAGE_TYPE: ClassVar[Optional[MessageType]] = None

    def to_wire(self) -> Dict[str, Any]:
        """Short-key payload including the type tag, ready for the codec."""
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if self.MESSAGE_TYPE is not None:
            payload["type"] = self.MESSAGE_TYPE.value
        return shorten_keys(payload)


class ProfilePayload(WireModel):
    """Payload about one profile, identified by BattleTag."""
    battle_tag: str = Field(alias="battleTag", min_length=1)

    @field_validator("battle_tag")
    @classmethod
    def _check_battle_tag(cls, value: str) -> str:
        if not is_valid_battle_tag(value):
            raise ValueError(f"malformed BattleTag {value!r}")
        return value


def _keep_valid(model: Type[BaseModel], value: Any, info: ValidationInfo) -> Any:
    """Drop list items that fail validation instead of rejecting the whole list."""
    if not isinstance(value, list):
        return value
    valid = []
    for item in value:
        try:
            valid.append(model.model_validate(item, context=info.context))
        except ValidationError:
            continue
    return valid


class CharacterRecord(WireModel):
    """One character as carried in CHARS_UPDATE."""
    name: str = Field(min_length=1)
    realm: str = ""
    added_at: int = Field(alias="addedAt", ge=0)

    @field_validator("realm", mode="before")
    @classmethod
    def _realm_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("added_at")
    @classmethod
    def _added_at_in_range(cls, value: int, info: ValidationInfo) -> int:
        return _check_timestamp(value, info)

    @classmethod
    def from_character(cls, char: Character) -> "CharacterRecord":
        return cls(name=char.name, realm=char.realm, added_at=char.added_at)

    def to_character(self) -> Character:
        return Character(name=self.name, realm=self.realm, added_at=self.added_at)


class Manifest(ProfilePayload):
    """Broadcast summary of the sender's own profile."""
    MESSAGE_TYPE: ClassVar[Optional[MessageType]] = MessageType.MANIFEST

    alias: str = Field(min_length=1)
    alias_updated_at: int = Field(alias="aliasUpdatedAt", ge=0)
    chars_updated_at: int = Field(alias="charsUpdatedAt", ge=0)

    @field_validator("alias_updated_at", "chars_updated_at")
    @classmethod
    def _timestamps_in_range(cls, value: int, info: ValidationInfo) -> int:
        return _check_timestamp(value, info)


class RequestChars(ProfilePayload):
    """Request for the recipient's own characters added after a cutoff."""
    MESSAGE_TYPE: ClassVar[Optional[MessageType]] = MessageType.REQUEST_CHARS

    after_timestamp: int = Field(0, alias="afterTimestamp", ge=0)

    @field_validator("after_timestamp")
    @classmethod
    def _cutoff_in_range(cls, value: int, info: ValidationInfo) -> int:
        return _check_timestamp(value, info, allow_zero=True)


class AliasUpdate(ProfilePayload):
    MESSAGE_TYPE: ClassVar[Optional[MessageType]] = MessageType.ALIAS_UPDATE

    alias: str = Field(min_length=1)
    alias_updated_at: int = Field(alias="aliasUpdatedAt", ge=0)

    @field_validator("alias_updated_at")
    @classmethod
    def _alias_updated_at_in_range(cls, value: int, info: ValidationInfo) -> int:
        return _check_timestamp(value, info)


class CharsUpdate(ProfilePayload):
    """
    A chunk of one profile's characters.

    Invalid character records are dropped one by one; the rest still apply.
    """
    MESSAGE_TYPE: ClassVar[Optional[MessageType]] = MessageType.CHARS_UPDATE

    characters: List[CharacterRecord] = Field(default_factory=list)
    chars_updated_at: int = Field(0, alias="charsUpdatedAt", ge=0)

    @field_validator("characters", mode="before")
    @classmethod
    def _drop_invalid_characters(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return []
        return _keep_valid(CharacterRecord, value, info)

    @field_validator("chars_updated_at")
    @classmethod
    def _chars_updated_at_in_range(cls, value: int, info: ValidationInfo) -> int:
        return _check_timestamp(value, info, allow_zero=True)


class DigestEntry(ProfilePayload):
    """Summary of one third-party profile inside a digest."""
    alias_updated_at: int = Field(0, alias="aliasUpdatedAt", ge=0)
    chars_updated_at: int = Field(0, alias="charsUpdatedAt", ge=0)
    chars_count: int = Field(0, alias="charsCount", ge=0)

    @field_validator("alias_updated_at", "chars_updated_at")
    @classmethod
    def _timestamps_in_range(cls, value: int, info: ValidationInfo) -> int:
        # Profiles known only by alias or only by characters carry a zero
        return _check_timestamp(value, info, allow_zero=True)


class GossipDigest(WireModel):
    MESSAGE_TYPE: ClassVar[Optional[MessageType]] = MessageType.GOSSIP_DIGEST

    battle_tag: Optional[str] = Field(None, alias="battleTag")
    entries: List[DigestEntry] = Field(default_factory=list)

    @field_validator("battle_tag")
    @classmethod
    def _check_sender_battle_tag(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_battle_tag(value):
            raise ValueError(f"malformed BattleTag {value!r}")
        return value

    @field_validator("entries", mode="before")
    @classmethod
    def _drop_invalid_entries(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return []
        return _keep_valid(DigestEntry, value, info)


class GossipRequest(ProfilePayload):
    """Request for a third-party profile, optionally delta after a cutoff."""
    MESSAGE_TYPE: ClassVar[Optional[MessageType]] = MessageType.GOSSIP_REQUEST

    after_timestamp: int = Field(0, alias="afterTimestamp", ge=0)

    @field_validator("after_timestamp")
    @classmethod
    def _cutoff_in_range(cls, value: int, info: ValidationInfo) -> int:
        return _check_timestamp(value, info, allow_zero=True)


MESSAGE_MODELS: Dict[MessageType, Type[WireModel]] = {
    MessageType.MANIFEST: Manifest,
    MessageType.REQUEST_CHARS: RequestChars,
    MessageType.ALIAS_UPDATE: AliasUpdate,
    MessageType.CHARS_UPDATE: CharsUpdate,
    MessageType.GOSSIP_DIGEST: GossipDigest,
    MessageType.GOSSIP_REQUEST: GossipRequest,
}
