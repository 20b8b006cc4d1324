"""Reverse index from character names to the BattleTag that owns them."""

from typing import Dict, List, Optional, Set

from common.logging_config import get_logger
from common.types import Character, Profile
from peer.store import ProfileStore

logger = get_logger(__name__)


def realm_key(name: str, realm: str) -> str:
    """Realm-qualified lookup key, e.g. ``Thrall-ArgentDawn``."""
    return f"{name}-{realm.replace(' ', '')}"


class CharacterCache:
    """
    Lazily rebuilt map of sender tokens to BattleTags.

    The cache is a pure function of the ProfileStore. It is marked stale
    either fully or for a set of BattleTags, and rebuilt on the next lookup.
    """

    def __init__(self, store: ProfileStore):
        self.store = store
        self._index: Dict[str, str] = {}
        self._realm_bound: Set[str] = set()
        self._full_stale = True
        self._stale_tags: Set[str] = set()
        store.subscribe(self.invalidate)

    def _add_profile(self, profile: Profile) -> None:
        for char in profile.characters.values():
            self._add_character(char, profile.battle_tag)

    def _add_character(self, char: Character, battle_tag: str) -> None:
        self._index[char.name] = battle_tag
        if char.realm:
            self._realm_bound.add(char.name)
            self._index[realm_key(char.name, char.realm)] = battle_tag

    def _rebuild(self) -> None:
        if self._full_stale:
            self._index = {}
            self._realm_bound = set()
            for profile in self.store.get_all_profiles().values():
                self._add_profile(profile)
            my_profile = self.store.get_my_profile()
            if my_profile is not None:
                self._add_profile(my_profile)
            logger.debug(f"Character cache rebuilt [entries={len(self._index)}]")
        elif self._stale_tags:
            for battle_tag in sorted(self._stale_tags):
                if self.store.is_me(battle_tag):
                    profile = self.store.get_my_profile()
                else:
                    profile = self.store.get_profile(battle_tag)
                if profile is not None:
                    self._add_profile(profile)
        self._full_stale = False
        self._stale_tags = set()

    def is_stale(self) -> bool:
        return self._full_stale or bool(self._stale_tags)

    def find_battle_tag(self, sender: Optional[str]) -> Optional[str]:
        """
        Resolve a transport sender token to a BattleTag.

        Tries the token as given, then with any ``-Realm`` suffix removed.
        The bare-name fallback only applies to names known without a realm;
        a name indexed under some other realm is a different character.

        Args:
            sender: Character name, optionally realm-qualified

        Returns:
            The owning BattleTag, or None if unknown
        """
        if not sender:
            return None
        if self.is_stale():
            self._rebuild()

        battle_tag = self._index.get(sender)
        if battle_tag is None and "-" in sender:
            name = sender.split("-", 1)[0]
            if name not in self._realm_bound:
                battle_tag = self._index.get(name)
        return battle_tag

    def known_names(self) -> List[str]:
        """All indexed sender tokens, bare and realm-qualified."""
        if self.is_stale():
            self._rebuild()
        return sorted(self._index)

    def invalidate(self, battle_tag: Optional[str] = None) -> None:
        """
        Mark the cache stale.

        Args:
            battle_tag: Only this profile is stale; None marks everything stale
        """
        if battle_tag is None:
            self._full_stale = True
            self._stale_tags = set()
            return
        if self._full_stale:
            return
        self._stale_tags.add(battle_tag)

    def get_stats(self) -> dict:
        stale: bool | List[str] = self._full_stale or sorted(self._stale_tags)
        return {
            "character_count": len(self._index),
            "is_stale": stale,
        }
