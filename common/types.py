"""Shared data type definitions (Character, Profile, TrackingEntry)."""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

CharacterKey = Tuple[str, str]


@dataclass(frozen=True)
class Character:
    """
    A single character owned by a profile. Unique by (name, realm).
    """
    name: str
    realm: str = ""
    added_at: int = 0

    @property
    def key(self) -> CharacterKey:
        return (self.name, self.realm)

    def to_dict(self) -> dict:
        return {"name": self.name, "realm": self.realm, "addedAt": self.added_at}


@dataclass
class Profile:
    """
    Replicated identity record for one BattleTag.

    Alias and character set carry independent timestamps; characters are
    append-only and keyed by (name, realm).
    """
    battle_tag: str
    alias: str
    alias_updated_at: int = 0
    characters: Dict[CharacterKey, Character] = field(default_factory=dict)
    chars_updated_at: int = 0

    def character_count(self) -> int:
        return len(self.characters)

    def characters_added_after(self, after: int) -> List[Character]:
        """
        Characters whose added_at is strictly greater than ``after``.

        Args:
            after: Cutoff timestamp, 0 for every character

        Returns:
            Characters ordered by (added_at, name, realm)
        """
        chars = [c for c in self.characters.values() if after == 0 or c.added_at > after]
        return sorted(chars, key=lambda c: (c.added_at, c.name, c.realm))

    def summary(self) -> "TrackingEntry":
        return TrackingEntry(
            au=self.alias_updated_at,
            cu=self.chars_updated_at,
            cc=self.character_count(),
        )

    def to_dict(self) -> dict:
        return {
            "battleTag": self.battle_tag,
            "alias": self.alias,
            "aliasUpdatedAt": self.alias_updated_at,
            "charsUpdatedAt": self.chars_updated_at,
            "characters": [c.to_dict() for c in self.characters_added_after(0)],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        characters = {}
        for raw in data.get("characters", []):
            char = Character(raw["name"], raw.get("realm", ""), int(raw.get("addedAt", 0)))
            characters[char.key] = char
        return cls(
            battle_tag=data["battleTag"],
            alias=data.get("alias", data["battleTag"]),
            alias_updated_at=int(data.get("aliasUpdatedAt", 0)),
            characters=characters,
            chars_updated_at=int(data.get("charsUpdatedAt", 0)),
        )


@dataclass(frozen=True)
class TrackingEntry:
    """
    What this peer last communicated to a target about one profile.
    """
    au: int
    cu: int
    cc: int

    def is_older_than(self, other: "TrackingEntry") -> bool:
        """True if either timestamp in self is older than in other."""
        return self.au < other.au or self.cu < other.cu
