"""Profile store: own profile, cached third-party profiles and the gossip-tracking ledger."""

import time
from typing import Callable, Dict, Iterable, List, Optional

from common.logging_config import get_logger
from common.types import Character, Profile, TrackingEntry

logger = get_logger(__name__)

ChangeListener = Callable[[Optional[str]], None]


class ProfileStore:
    """
    Holds the replicated state of one peer.

    Every mutation coming from the network is a merge: aliases are
    timestamp-gated, character sets only grow, and the local peer's own
    profile is never touched by replication. Listeners are told which
    BattleTag changed (None for bulk changes).
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._my_profile: Optional[Profile] = None
        self._profiles: Dict[str, Profile] = {}
        self._tracking: Dict[str, Dict[str, TrackingEntry]] = {}
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, battle_tag: Optional[str]) -> None:
        for listener in self._listeners:
            listener(battle_tag)

    def _now(self) -> int:
        return int(self.clock())

    # Own profile

    def ensure_my_profile(self, battle_tag: str, alias: Optional[str] = None) -> Profile:
        """
        Create the local authoritative profile if it does not exist yet.

        Args:
            battle_tag: Our BattleTag
            alias: Initial alias, defaults to the BattleTag

        Returns:
            The local profile
        """
        if self._my_profile is None:
            self._my_profile = Profile(
                battle_tag=battle_tag,
                alias=alias or battle_tag,
                alias_updated_at=self._now(),
            )
            # A remote copy of ourselves is never kept next to the real one
            self._profiles.pop(battle_tag, None)
            self._forget_tracking_about(battle_tag)
            logger.info(f"Initialized own profile [battle_tag={battle_tag}]")
            self._notify(None)
        return self._my_profile

    def set_my_profile(self, profile: Profile) -> None:
        """Install a previously persisted own profile."""
        self._my_profile = profile
        self._profiles.pop(profile.battle_tag, None)
        self._forget_tracking_about(profile.battle_tag)
        self._notify(None)

    def get_my_profile(self) -> Optional[Profile]:
        return self._my_profile

    def get_my_battle_tag(self) -> Optional[str]:
        return self._my_profile.battle_tag if self._my_profile else None

    def is_me(self, battle_tag: Optional[str]) -> bool:
        return battle_tag is not None and battle_tag == self.get_my_battle_tag()

    def register_character(self, name: str, realm: str = "") -> bool:
        """
        Add a character to our own profile.

        The new added_at is kept strictly above the previous charsUpdatedAt
        so delta requests cut at that value still see it.

        Returns:
            True if the character was new
        """
        profile = self._my_profile
        if profile is None or not name:
            return False
        if (name, realm) in profile.characters:
            return False

        added_at = max(self._now(), profile.chars_updated_at + 1)
        char = Character(name=name, realm=realm, added_at=added_at)
        profile.characters[char.key] = char
        profile.chars_updated_at = added_at
        logger.info(f"Registered character [name={name}, realm={realm}]")
        self._notify(profile.battle_tag)
        return True

    def set_alias(self, alias: str) -> bool:
        profile = self._my_profile
        if profile is None or not alias:
            return False
        if alias == profile.alias:
            return False
        profile.alias = alias
        profile.alias_updated_at = max(self._now(), profile.alias_updated_at + 1)
        logger.info(f"Alias set [alias={alias}, updated_at={profile.alias_updated_at}]")
        return True

    def get_manifest(self) -> Optional[dict]:
        profile = self._my_profile
        if profile is None:
            return None
        return {
            "battleTag": profile.battle_tag,
            "alias": profile.alias,
            "aliasUpdatedAt": profile.alias_updated_at,
            "charsUpdatedAt": profile.chars_updated_at,
        }

    def get_characters_added_after(self, after: int) -> List[Character]:
        if self._my_profile is None:
            return []
        return self._my_profile.characters_added_after(after)

    # Cached profiles

    def get_profile(self, battle_tag: str) -> Optional[Profile]:
        return self._profiles.get(battle_tag)

    def get_all_profiles(self) -> Dict[str, Profile]:
        return dict(self._profiles)

    def get_profile_characters_added_after(self, battle_tag: str, after: int) -> List[Character]:
        profile = self._profiles.get(battle_tag)
        if profile is None:
            return []
        return profile.characters_added_after(after)

    def update_profile_alias(self, battle_tag: str, alias: str, alias_updated_at: int) -> bool:
        """
        Merge an alias into a cached profile.

        A newer timestamp always wins. On equal timestamps the
        lexicographically greater alias wins, so every peer settles on
        the same value regardless of arrival order.

        Args:
            battle_tag: Profile to update (created if unknown)
            alias: Incoming alias
            alias_updated_at: Incoming timestamp

        Returns:
            True if the stored alias changed or the profile was created
        """
        if self.is_me(battle_tag):
            return False

        profile = self._profiles.get(battle_tag)
        if profile is None:
            self._profiles[battle_tag] = Profile(
                battle_tag=battle_tag,
                alias=alias,
                alias_updated_at=alias_updated_at,
            )
            self._notify(battle_tag)
            return True

        newer = alias_updated_at > profile.alias_updated_at
        tie_wins = alias_updated_at == profile.alias_updated_at and alias > profile.alias
        if not (newer or tie_wins):
            return False

        profile.alias = alias
        profile.alias_updated_at = alias_updated_at
        self._notify(battle_tag)
        return True

    def add_characters_to_profile(self, battle_tag: str, characters: Iterable[Character]) -> bool:
        """
        Union characters into a cached profile.

        charsUpdatedAt follows the newest addedAt actually stored, never the
        sender's claim, so a partially delivered chunk set keeps the gap
        visible to later digests.

        Returns:
            True if the character set changed or the profile was created
        """
        if self.is_me(battle_tag):
            return False

        changed = False
        profile = self._profiles.get(battle_tag)
        if profile is None:
            profile = Profile(battle_tag=battle_tag, alias=battle_tag)
            self._profiles[battle_tag] = profile
            changed = True

        for char in characters:
            existing = profile.characters.get(char.key)
            if existing is None or char.added_at > existing.added_at:
                profile.characters[char.key] = char
                changed = True
            if char.added_at > profile.chars_updated_at:
                profile.chars_updated_at = char.added_at

        if changed:
            self._notify(battle_tag)
        return changed

    def purge_synced_profiles(self) -> int:
        """Drop every cached profile, keeping our own. Returns the count removed."""
        count = len(self._profiles)
        self._profiles.clear()
        logger.info(f"Purged synced profiles [count={count}]")
        self._notify(None)
        return count

    # Gossip-tracking ledger

    def get_gossip_tracking(self, target: str) -> Dict[str, TrackingEntry]:
        return dict(self._tracking.get(target, {}))

    def get_tracking_entry(self, target: str, battle_tag: str) -> Optional[TrackingEntry]:
        return self._tracking.get(target, {}).get(battle_tag)

    def get_all_tracking(self) -> Dict[str, Dict[str, TrackingEntry]]:
        return {target: dict(entries) for target, entries in self._tracking.items()}

    def update_gossip_tracking(self, target: str, battle_tag: str, au: int, cu: int, cc: int) -> None:
        """Record what we just sent to ``target`` about ``battle_tag``."""
        self._tracking.setdefault(target, {})[battle_tag] = TrackingEntry(au=au, cu=cu, cc=cc)

    def record_peer_knowledge(self, target: str, battle_tag: str, au: int, cu: int, cc: int) -> bool:
        """
        Record what ``target`` told us it knows about ``battle_tag``.

        Skipped when either timestamp is older than what is already recorded.

        Returns:
            True if the ledger entry was written
        """
        incoming = TrackingEntry(au=au, cu=cu, cc=cc)
        existing = self.get_tracking_entry(target, battle_tag)
        if existing is not None and incoming.is_older_than(existing):
            return False
        self._tracking.setdefault(target, {})[battle_tag] = incoming
        return True

    def _forget_tracking_about(self, battle_tag: str) -> None:
        # Peers learn our own profile from manifests, never from the ledger
        self._tracking.pop(battle_tag, None)
        for target in list(self._tracking):
            self._tracking[target].pop(battle_tag, None)
            if not self._tracking[target]:
                del self._tracking[target]

    def prune_gossip_tracking(self, active_targets: Iterable[str]) -> int:
        """
        Drop ledger entries for targets no longer on the roster.

        Returns:
            Number of targets removed
        """
        active = set(active_targets)
        stale = [target for target in self._tracking if target not in active]
        for target in stale:
            del self._tracking[target]
        if stale:
            logger.debug(f"Pruned gossip tracking [targets={len(stale)}]")
        return len(stale)
