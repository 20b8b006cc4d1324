"""
Digest-based gossip between peers.

Flow:
1. A MANIFEST arrives from peer T.
2. We build a digest of third-party profiles T has not heard about from us
   (per the gossip-tracking ledger) and whisper it to T.
3. T compares each entry with its own copy, requests what it is missing and
   pushes corrections where ours is stale.

The ledger (store tracking) persists what each target already knows.
Corrections are additionally limited to one per (target, profile) per
session, independent of the ledger.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from common.constants import MAX_DIGEST_ENTRIES, MESSAGE_SIZE_LIMIT
from common.logging_config import get_logger
from peer.character_cache import CharacterCache
from peer.schemas.messages import AliasUpdate, DigestEntry, GossipDigest, GossipRequest
from peer.store import ProfileStore
from peer.sync.coordinator import Coordinator
from peer.sync.messenger import Messenger
from peer.transport import Channel

logger = get_logger(__name__)


@dataclass
class DigestBuild:
    """Result of building a digest for one target."""
    entries: List[DigestEntry] = field(default_factory=list)
    message: Optional[bytes] = None
    candidate_count: int = 0


@dataclass
class ReconcileResult:
    """Messages issued while reconciling one digest, keyed by profile BattleTag."""
    requests: Dict[str, int] = field(default_factory=dict)
    alias_corrections: List[str] = field(default_factory=list)
    chars_corrections: Dict[str, int] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


class Gossip:
    """Builds, sends and reconciles gossip digests."""

    def __init__(
        self,
        store: ProfileStore,
        cache: CharacterCache,
        messenger: Messenger,
        coordinator: Coordinator,
        max_digest_entries: int = MAX_DIGEST_ENTRIES,
        size_limit: int = MESSAGE_SIZE_LIMIT,
    ):
        self.store = store
        self.cache = cache
        self.messenger = messenger
        self.coordinator = coordinator
        self.max_digest_entries = max_digest_entries
        self.size_limit = size_limit
        self._corrections_sent: Dict[str, Set[str]] = {}

    def mark_correction_sent(self, target: str, battle_tag: str) -> None:
        self._corrections_sent.setdefault(target, set()).add(battle_tag)

    def has_sent_correction(self, target: str, battle_tag: str) -> bool:
        return battle_tag in self._corrections_sent.get(target, set())

    def reset_session(self) -> None:
        self._corrections_sent = {}

    def build_digest(self, target: str) -> DigestBuild:
        """
        Build the digest to offer ``target``.

        A cached profile qualifies when the ledger has no entry for it, when
        either local timestamp is newer than the ledger, or when the
        character counts differ. Candidates go most recently updated first;
        entries are dropped from the tail until the encoded message fits.

        Args:
            target: BattleTag of the peer the digest is for

        Returns:
            DigestBuild with the entries kept and the encoded message, or an
            empty build when nothing qualifies or nothing fits
        """
        my_battle_tag = self.store.get_my_battle_tag()
        tracking = self.store.get_gossip_tracking(target)

        candidates = []
        for battle_tag, profile in self.store.get_all_profiles().items():
            if battle_tag == my_battle_tag or battle_tag == target:
                continue
            local = profile.summary()
            tracked = tracking.get(battle_tag)
            if (tracked is None
                    or local.au > tracked.au
                    or local.cu > tracked.cu
                    or local.cc != tracked.cc):
                candidates.append((max(local.au, local.cu), battle_tag, local))

        candidates.sort(key=lambda c: (-c[0], c[1]))
        build = DigestBuild(candidate_count=len(candidates))

        entries = [
            DigestEntry(battle_tag=bt, alias_updated_at=s.au, chars_updated_at=s.cu, chars_count=s.cc)
            for _, bt, s in candidates[:self.max_digest_entries]
        ]

        while entries:
            digest = GossipDigest(battle_tag=my_battle_tag, entries=entries)
            message = self.messenger.build_message(digest, warn_oversize=False)
            if message is not None and len(message) <= self.size_limit:
                logger.debug(
                    f"Built digest [entries={len(entries)}, bytes={len(message)}, "
                    f"candidates={len(candidates)}]"
                )
                build.entries = entries
                build.message = message
                return build
            entries = entries[:-1]
            logger.debug(f"Digest trimmed [entries={len(entries)}, limit={self.size_limit}]")

        return build

    def send_digest(self, target: str, target_sender: str) -> bool:
        """
        Whisper a digest to a peer and record what it now knows.

        Args:
            target: BattleTag of the recipient
            target_sender: Sender token to whisper to

        Returns:
            True if a digest was sent
        """
        build = self.build_digest(target)
        if not build.entries or build.message is None:
            logger.debug(f"No new gossip for {target}, skipping digest")
            return False

        if not self.messenger.send_message(build.message, Channel.WHISPER, target_sender):
            return False

        for entry in build.entries:
            self.store.update_gossip_tracking(
                target, entry.battle_tag,
                entry.alias_updated_at, entry.chars_updated_at, entry.chars_count,
            )
        logger.debug(f"Sent GOSSIP_DIGEST [entries={len(build.entries)}, target={target}]")
        return True

    def send_profile(self, target_sender: str, battle_tag: str, after: int = 0) -> bool:
        """
        Send one cached profile (alias plus characters) to a peer.

        Args:
            target_sender: Sender token to whisper to
            battle_tag: Profile to send
            after: Only characters added after this timestamp (0 for all)

        Returns:
            True if the alias and every character chunk were sent
        """
        profile = self.store.get_profile(battle_tag)
        if profile is None:
            logger.debug(f"send_profile: profile not found [battle_tag={battle_tag}]")
            return False

        alias_update = AliasUpdate(
            battle_tag=battle_tag,
            alias=profile.alias,
            alias_updated_at=profile.alias_updated_at,
        )
        sent = self.messenger.send(alias_update, Channel.WHISPER, target_sender)

        characters = profile.characters_added_after(after)
        if characters:
            sent = self.coordinator.send_chars_update(
                battle_tag, characters, profile.chars_updated_at, Channel.WHISPER, target_sender
            ) and sent

        logger.debug(
            f"send_profile: {battle_tag} with {len(characters)} chars (after={after}) to {target_sender}"
        )
        return sent

    def correct_stale_alias(self, target_sender: str, battle_tag: str, alias: str, alias_updated_at: int) -> bool:
        update = AliasUpdate(battle_tag=battle_tag, alias=alias, alias_updated_at=alias_updated_at)
        sent = self.messenger.send(update, Channel.WHISPER, target_sender)
        if sent:
            logger.debug(f"Sent updated alias for {battle_tag} back to {target_sender}")
        return sent

    def correct_stale_chars(self, target_sender: str, battle_tag: str, correct_timestamp: int,
                            sender_timestamp: int) -> bool:
        """
        Push characters the sender is missing.

        Args:
            target_sender: Sender token to whisper to
            battle_tag: Profile being corrected
            correct_timestamp: Our charsUpdatedAt for the profile
            sender_timestamp: The sender's stale charsUpdatedAt (0 sends all)

        Returns:
            True if at least one character was sent and every chunk succeeded
        """
        newer = self.store.get_profile_characters_added_after(battle_tag, sender_timestamp)
        if not newer:
            return False
        sent = self.coordinator.send_chars_update(
            battle_tag, newer, correct_timestamp, Channel.WHISPER, target_sender
        )
        if sent:
            logger.debug(f"Sent {len(newer)} character(s) for {battle_tag} back to {target_sender}")
        return sent

    def _request(self, target_sender: str, battle_tag: str, after: int) -> bool:
        request = GossipRequest(battle_tag=battle_tag, after_timestamp=after)
        return self.messenger.send(request, Channel.WHISPER, target_sender)

    def reconcile_digest(self, sender: str, sender_battle_tag: str,
                         entries: List[DigestEntry]) -> ReconcileResult:
        """
        Compare a peer's digest with local knowledge and act on differences.

        For each entry at most one request is issued (missing profile, newer
        characters, newer alias, or more characters at the same timestamp),
        followed by corrections where our copy is newer, sent at most once
        per session. The ledger then records what the sender knows.

        Args:
            sender: Sender token of the digest
            sender_battle_tag: BattleTag the digest came from
            entries: Validated digest entries

        Returns:
            ReconcileResult describing what was sent
        """
        result = ReconcileResult()
        my_battle_tag = self.store.get_my_battle_tag()

        for entry in entries:
            battle_tag = entry.battle_tag
            if battle_tag == my_battle_tag:
                result.skipped.append(battle_tag)
                continue

            local = self.store.get_profile(battle_tag)
            if local is None:
                if self._request(sender, battle_tag, 0):
                    result.requests[battle_tag] = 0
                self.store.record_peer_knowledge(
                    sender_battle_tag, battle_tag,
                    entry.alias_updated_at, entry.chars_updated_at, entry.chars_count,
                )
                continue

            mine = local.summary()
            after: Optional[int] = None
            if entry.chars_updated_at > mine.cu:
                after = mine.cu
            elif entry.alias_updated_at > mine.au:
                after = 0
            elif entry.chars_updated_at == mine.cu and entry.chars_count > mine.cc:
                after = 0
            if after is not None and self._request(sender, battle_tag, after):
                result.requests[battle_tag] = after

            self.store.record_peer_knowledge(
                sender_battle_tag, battle_tag,
                entry.alias_updated_at, entry.chars_updated_at, entry.chars_count,
            )

            if self.has_sent_correction(sender_battle_tag, battle_tag):
                continue

            alias_sent = False
            if mine.au > entry.alias_updated_at:
                alias_sent = self.correct_stale_alias(sender, battle_tag, local.alias, mine.au)
                if alias_sent:
                    result.alias_corrections.append(battle_tag)

            chars_after: Optional[int] = None
            if mine.cu > entry.chars_updated_at:
                chars_after = entry.chars_updated_at
            elif mine.cu == entry.chars_updated_at and mine.cc > entry.chars_count:
                chars_after = 0
            chars_sent = False
            if chars_after is not None:
                chars_sent = self.correct_stale_chars(sender, battle_tag, mine.cu, chars_after)
                if chars_sent:
                    result.chars_corrections[battle_tag] = chars_after

            if alias_sent or chars_sent:
                self.mark_correction_sent(sender_battle_tag, battle_tag)
                self.store.update_gossip_tracking(
                    sender_battle_tag, battle_tag,
                    max(mine.au, entry.alias_updated_at) if alias_sent else entry.alias_updated_at,
                    max(mine.cu, entry.chars_updated_at) if chars_sent else entry.chars_updated_at,
                    mine.cc if chars_sent else entry.chars_count,
                )

        return result

    def get_stats(self) -> dict:
        corrections_by_player = {
            target: len(profiles) for target, profiles in self._corrections_sent.items() if profiles
        }
        tracking_by_player = {
            target: len(entries) for target, entries in self.store.get_all_tracking().items()
        }
        return {
            "total_corrections": sum(corrections_by_player.values()),
            "corrections_by_player": corrections_by_player,
            "tracked_profiles_by_player": tracking_by_player,
        }
