"""
Sync coordinator: when manifests go out and how character lists are chunked.

Timing strategy:
- A heartbeat check runs every minute and sends a manifest when none went
  out during the heartbeat interval.
- Login and local edits use a short debounce so bursts collapse into one
  manifest.
- Roster changes are sampled (at most one roster-triggered manifest per
  interval), debounced, then delayed by a random jitter so guild members
  do not all answer at once.
"""

import random
from typing import Iterable, List, Optional

from common.constants import (
    CHARS_PER_MESSAGE,
    GUILD_ROSTER_DEBOUNCE_SECONDS,
    GUILD_ROSTER_MIN_INTERVAL_SECONDS,
    HEARTBEAT_CHECK_INTERVAL_SECONDS,
    MANIFEST_DEBOUNCE_SECONDS,
    MANIFEST_HEARTBEAT_INTERVAL_SECONDS,
    MESSAGE_SIZE_LIMIT,
    ROSTER_JITTER_MAX_SECONDS,
    ROSTER_JITTER_MIN_SECONDS,
)
from common.logging_config import get_logger
from common.types import Character
from peer.character_cache import CharacterCache
from peer.scheduler import Debouncer, ScheduledTask, TaskScheduler
from peer.schemas.messages import CharacterRecord, CharsUpdate, Manifest
from peer.store import ProfileStore
from peer.sync.messenger import Messenger
from peer.transport import Channel

logger = get_logger(__name__)

MANIFEST_KEY = "manifest"
ROSTER_DEBOUNCE_KEY = "roster_debounce"
ROSTER_MANIFEST_KEY = "roster_manifest"


class Coordinator:
    """Schedules manifest broadcasts and sends chunked character lists."""

    def __init__(
        self,
        store: ProfileStore,
        messenger: Messenger,
        scheduler: TaskScheduler,
        cache: Optional[CharacterCache] = None,
        rng: Optional[random.Random] = None,
        heartbeat_check_interval: float = HEARTBEAT_CHECK_INTERVAL_SECONDS,
        heartbeat_interval: float = MANIFEST_HEARTBEAT_INTERVAL_SECONDS,
        manifest_debounce: float = MANIFEST_DEBOUNCE_SECONDS,
        roster_min_interval: float = GUILD_ROSTER_MIN_INTERVAL_SECONDS,
        roster_debounce: float = GUILD_ROSTER_DEBOUNCE_SECONDS,
        jitter_min: int = ROSTER_JITTER_MIN_SECONDS,
        jitter_max: int = ROSTER_JITTER_MAX_SECONDS,
        chars_per_message: int = CHARS_PER_MESSAGE,
        size_limit: int = MESSAGE_SIZE_LIMIT,
    ):
        self.store = store
        self.messenger = messenger
        self.scheduler = scheduler
        self.cache = cache
        self.rng = rng or random.Random()
        self.heartbeat_check_interval = heartbeat_check_interval
        self.heartbeat_interval = heartbeat_interval
        self.manifest_debounce = manifest_debounce
        self.roster_min_interval = roster_min_interval
        self.roster_debounce = roster_debounce
        self.jitter_min = jitter_min
        self.jitter_max = jitter_max
        self.chars_per_message = chars_per_message
        self.size_limit = size_limit

        self.debouncer = Debouncer(scheduler)
        self.last_manifest_time: Optional[float] = None
        self.last_roster_manifest_time: Optional[float] = None
        self._heartbeat: Optional[ScheduledTask] = None
        self.running = False

    def start(self) -> None:
        """Start the heartbeat ticker."""
        if self._heartbeat is not None:
            return
        self._heartbeat = self.scheduler.call_every(self.heartbeat_check_interval, self._heartbeat_tick)
        self.running = True
        logger.info("Sync coordinator started")

    def stop(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None
        self.debouncer.cancel_all()
        self.running = False
        logger.info("Sync coordinator stopped")

    def _heartbeat_tick(self) -> None:
        now = self.scheduler.now()
        if self.last_manifest_time is None or now - self.last_manifest_time >= self.heartbeat_interval:
            logger.debug("Heartbeat: no recent manifest, sending one")
            self.send_manifest()

    def send_manifest(self) -> bool:
        """
        Broadcast our manifest to the guild.

        Returns:
            True if the transport accepted it
        """
        manifest = self.store.get_manifest()
        if manifest is None:
            return False
        if not self.messenger.transport.is_in_guild():
            logger.debug("Not in a guild, skipping manifest")
            return False

        if not self.messenger.send(Manifest.model_validate(manifest), Channel.GUILD):
            return False

        self.last_manifest_time = self.scheduler.now()
        logger.debug("Broadcast MANIFEST to guild")
        return True

    def send_manifest_debounced(self) -> None:
        """Send a manifest after a short quiet period, replacing any pending one."""
        self.debouncer.schedule(MANIFEST_KEY, self.manifest_debounce, self.send_manifest)

    def on_guild_roster_update(self, members: Optional[Iterable[str]] = None) -> None:
        """
        React to a roster change.

        Args:
            members: Sender tokens currently online, used to prune the
                gossip-tracking ledger; None skips pruning
        """
        if members is not None:
            self._prune_tracking(members)

        now = self.scheduler.now()
        if (self.last_roster_manifest_time is not None
                and now - self.last_roster_manifest_time < self.roster_min_interval):
            logger.debug(
                f"Roster event ignored [since_last={now - self.last_roster_manifest_time:.0f}s]"
            )
            return

        self.debouncer.cancel(ROSTER_MANIFEST_KEY)
        self.debouncer.schedule(ROSTER_DEBOUNCE_KEY, self.roster_debounce, self._schedule_roster_manifest)

    def _schedule_roster_manifest(self) -> None:
        delay = self.rng.randint(self.jitter_min, self.jitter_max)
        self.debouncer.schedule(ROSTER_MANIFEST_KEY, delay, self._send_roster_manifest)

    def _send_roster_manifest(self) -> None:
        self.send_manifest()
        self.last_roster_manifest_time = self.scheduler.now()

    def _prune_tracking(self, members: Iterable[str]) -> None:
        if self.cache is None:
            return
        active = set()
        for member in members:
            battle_tag = self.cache.find_battle_tag(member)
            if battle_tag is not None:
                active.add(battle_tag)
        self.store.prune_gossip_tracking(active)

    def send_chars_update(
        self,
        battle_tag: str,
        characters: List[Character],
        chars_updated_at: int,
        channel: Channel,
        target: Optional[str] = None,
    ) -> bool:
        """
        Send a character list in CHARS_UPDATE chunks.

        Chunks hold up to chars_per_message characters and are halved
        while the encoded message would exceed the size limit.

        Args:
            battle_tag: Profile the characters belong to
            characters: Characters to send
            chars_updated_at: Profile charsUpdatedAt carried in every chunk
            channel: Channel to send on
            target: Recipient for whispers

        Returns:
            True if every chunk was sent; stops at the first failure
        """
        total = len(characters)
        if total == 0:
            return True

        index = 0
        chunk_num = 0
        while index < total:
            size = min(self.chars_per_message, total - index)
            update = self._chunk(battle_tag, characters[index:index + size], chars_updated_at)
            while size > 1 and (self.messenger.estimate_size(update) or 0) > self.size_limit:
                size //= 2
                update = self._chunk(battle_tag, characters[index:index + size], chars_updated_at)

            chunk_num += 1
            logger.debug(f"Sending CHARS_UPDATE chunk {chunk_num} [chars={size}, battle_tag={battle_tag}]")
            if not self.messenger.send(update, channel, target):
                return False
            index += size

        return True

    @staticmethod
    def _chunk(battle_tag: str, chars: List[Character], chars_updated_at: int) -> CharsUpdate:
        return CharsUpdate(
            battle_tag=battle_tag,
            characters=[CharacterRecord.from_character(c) for c in chars],
            chars_updated_at=chars_updated_at,
        )

    def get_sync_stats(self) -> dict:
        now = self.scheduler.now()
        since_manifest = None if self.last_manifest_time is None else now - self.last_manifest_time
        since_roster = (None if self.last_roster_manifest_time is None
                        else now - self.last_roster_manifest_time)
        return {
            "last_manifest_time": self.last_manifest_time,
            "time_since_last_manifest": since_manifest,
            "last_roster_manifest_time": self.last_roster_manifest_time,
            "time_since_last_roster_manifest": since_roster,
            "roster_min_interval": self.roster_min_interval,
            "heartbeat_interval": self.heartbeat_interval,
            "next_heartbeat_in": _remaining(self.heartbeat_interval, since_manifest),
            "next_roster_window_in": _remaining(self.roster_min_interval, since_roster),
        }


def _remaining(interval: float, elapsed: Optional[float]) -> float:
    if elapsed is None:
        return 0.0
    return max(0.0, interval - elapsed)
