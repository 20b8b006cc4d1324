"""Peer node: wires store, cache, transport, protocol, gossip and coordinator together."""

import random
from typing import Iterable, Optional, Tuple

from common.codec import MessageCodec
from common.constants import ADDON_PREFIX, MAX_TIMESTAMP, MESSAGE_SIZE_LIMIT, MIN_TIMESTAMP
from common.logging_config import get_logger
from peer import database
from peer.character_cache import CharacterCache
from peer.scheduler import TaskScheduler
from peer.store import ProfileStore
from peer.sync.coordinator import Coordinator
from peer.sync.gossip import Gossip
from peer.sync.messenger import Messenger
from peer.sync.protocol import Protocol
from peer.transport import Transport

logger = get_logger(__name__)


class PeerNode:
    """
    One participant in profile sync.

    Owns a ProfileStore and every component acting on it. All callbacks
    run on the scheduler's thread; nothing here blocks.
    """

    def __init__(
        self,
        battle_tag: str,
        character: str,
        transport: Transport,
        scheduler: TaskScheduler,
        realm: str = "",
        store: Optional[ProfileStore] = None,
        codec: Optional[MessageCodec] = None,
        rng: Optional[random.Random] = None,
        timing: Optional[dict] = None,
        db_path: Optional[str] = None,
        prefix: str = ADDON_PREFIX,
        size_limit: int = MESSAGE_SIZE_LIMIT,
        timestamp_range: Optional[Tuple[int, int]] = (MIN_TIMESTAMP, MAX_TIMESTAMP),
    ):
        self.battle_tag = battle_tag
        self.character = character
        self.realm = realm
        self.transport = transport
        self.scheduler = scheduler
        self.db_path = db_path
        self.logged_in = False

        self.store = store or ProfileStore(clock=scheduler.now)
        self.cache = CharacterCache(self.store)
        self.messenger = Messenger(transport, codec=codec, prefix=prefix, size_limit=size_limit)
        self.coordinator = Coordinator(
            self.store, self.messenger, scheduler,
            cache=self.cache, rng=rng, size_limit=size_limit, **(timing or {}),
        )
        self.gossip = Gossip(self.store, self.cache, self.messenger, self.coordinator, size_limit=size_limit)
        self.protocol = Protocol(
            self.store, self.cache, self.messenger, self.gossip, self.coordinator,
            prefix=prefix, timestamp_range=timestamp_range,
        )
        transport.set_handler(self.protocol.on_message)

    def login(self) -> None:
        """
        Load persisted state, register the current character and announce ourselves.
        """
        if self.db_path:
            database.load_store(self.store, self.db_path)

        self.store.ensure_my_profile(self.battle_tag)
        self.store.register_character(self.character, self.realm)
        self.coordinator.start()
        self.coordinator.send_manifest_debounced()
        self.logged_in = True
        logger.info(f"Logged in [battle_tag={self.battle_tag}, character={self.character}]")

    def logout(self) -> None:
        self.coordinator.stop()
        self.gossip.reset_session()
        if self.db_path:
            database.save_store(self.store, self.db_path)
        self.logged_in = False
        logger.info(f"Logged out [battle_tag={self.battle_tag}]")

    def save(self) -> None:
        if self.db_path:
            database.save_store(self.store, self.db_path)

    def set_alias(self, alias: str) -> bool:
        """Change our alias and announce it."""
        changed = self.store.set_alias(alias)
        if changed:
            self.coordinator.send_manifest_debounced()
        return changed

    def add_character(self, name: str, realm: str = "") -> bool:
        """Register another character on our profile and announce it."""
        added = self.store.register_character(name, realm)
        if added:
            self.coordinator.send_manifest_debounced()
        return added

    def on_roster_update(self, members: Optional[Iterable[str]] = None) -> None:
        self.coordinator.on_guild_roster_update(members)

    def broadcast(self) -> bool:
        """Send a manifest now, bypassing debounce."""
        return self.coordinator.send_manifest()

    def purge(self) -> int:
        return self.store.purge_synced_profiles()

    def get_status(self) -> dict:
        my_profile = self.store.get_my_profile()
        return {
            "battle_tag": self.battle_tag,
            "alias": my_profile.alias if my_profile else None,
            "characters": my_profile.character_count() if my_profile else 0,
            "profiles": len(self.store.get_all_profiles()),
            "sync": self.coordinator.get_sync_stats(),
            "gossip": self.gossip.get_stats(),
            "cache": self.cache.get_stats(),
            "protocol": self.protocol.get_stats(),
            "messages_sent": self.messenger.sent_count,
            "messages_refused": self.messenger.refused_count,
        }
