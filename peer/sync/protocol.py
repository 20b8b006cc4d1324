"""
Inbound message handling.

Every message goes through the same boundary: prefix check, codec decode,
key normalization, type lookup and schema validation. Anything that fails
there is dropped and logged at debug level; under a lossy, mixed-version
channel that is expected noise. Valid messages are routed to one handler
per message type.

Timestamps must fall inside ``timestamp_range`` (2020 to 2040 unless
configured otherwise; None turns the range check off).
"""

from collections import Counter
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from common.codec import MessageCodec
from common.constants import ADDON_PREFIX, MAX_TIMESTAMP, MIN_TIMESTAMP
from common.exceptions import CodecError
from common.logging_config import get_logger
from common.protocol import MessageType, normalize_keys
from peer.character_cache import CharacterCache
from peer.schemas.messages import (
    AliasUpdate,
    CharsUpdate,
    GossipDigest,
    GossipRequest,
    Manifest,
    MESSAGE_MODELS,
    RequestChars,
    WireModel,
)
from peer.store import ProfileStore
from peer.sync.coordinator import Coordinator
from peer.sync.gossip import Gossip
from peer.sync.messenger import Messenger
from peer.transport import Channel

logger = get_logger(__name__)


class Protocol:
    """Decodes, validates and routes inbound sync messages."""

    def __init__(
        self,
        store: ProfileStore,
        cache: CharacterCache,
        messenger: Messenger,
        gossip: Gossip,
        coordinator: Coordinator,
        codec: Optional[MessageCodec] = None,
        prefix: str = ADDON_PREFIX,
        timestamp_range: Optional[Tuple[int, int]] = (MIN_TIMESTAMP, MAX_TIMESTAMP),
    ):
        self.store = store
        self.cache = cache
        self.messenger = messenger
        self.gossip = gossip
        self.coordinator = coordinator
        self.codec = codec or messenger.codec
        self.prefix = prefix
        self.timestamp_range = timestamp_range
        self.received: Counter = Counter()
        self.dropped: Counter = Counter()
        self._handlers: Dict[MessageType, Callable[[str, Any], None]] = {
            MessageType.MANIFEST: self.handle_manifest,
            MessageType.REQUEST_CHARS: self.handle_request_chars,
            MessageType.ALIAS_UPDATE: self.handle_alias_update,
            MessageType.CHARS_UPDATE: self.handle_chars_update,
            MessageType.GOSSIP_DIGEST: self.handle_gossip_digest,
            MessageType.GOSSIP_REQUEST: self.handle_gossip_request,
        }

    def parse_message(self, message: Optional[bytes]) -> Optional[WireModel]:
        """
        Decode and validate one wire message.

        Args:
            message: Encoded message as received

        Returns:
            The validated payload model, or None if the message is dropped
        """
        if not message:
            self.dropped["empty"] += 1
            return None

        try:
            data = self.codec.decode(message)
        except CodecError as e:
            logger.debug(f"Failed to decode message: {e}")
            self.dropped["decode"] += 1
            return None

        if not isinstance(data, dict):
            logger.debug("Decoded message is not a mapping")
            self.dropped["shape"] += 1
            return None

        data = normalize_keys(data)
        message_type = MessageType.from_tag(data.get("type"))
        if message_type is None:
            logger.debug(f"Message missing or unknown type [type={data.get('type')!r}]")
            self.dropped["type"] += 1
            return None

        try:
            return MESSAGE_MODELS[message_type].model_validate(
                data, context={"timestamp_range": self.timestamp_range}
            )
        except ValidationError as e:
            logger.debug(f"Invalid {message_type.name} payload: {e.error_count()} error(s)")
            self.dropped["invalid"] += 1
            return None

    def on_message(self, prefix: str, message: bytes, channel: Channel, sender: str) -> None:
        """
        Transport entry point for every inbound message.

        Args:
            prefix: Transport prefix; anything but ours is ignored before decoding
            message: Encoded message
            channel: Channel the message arrived on
            sender: Sender token (character name)
        """
        if prefix != self.prefix:
            self.dropped["prefix"] += 1
            return

        model = self.parse_message(message)
        if model is None:
            return

        message_type = model.MESSAGE_TYPE
        self.received[message_type.name] += 1
        logger.debug(f"Received {message_type.name} from {sender} [channel={channel.value}]")
        self._handlers[message_type](sender, model)

    def handle_manifest(self, sender: str, manifest: Manifest) -> None:
        battle_tag = manifest.battle_tag
        if self.store.is_me(battle_tag):
            return

        cached = self.store.get_profile(battle_tag)
        after: Optional[int] = None
        if cached is None:
            after = 0
        elif manifest.chars_updated_at > cached.chars_updated_at:
            after = cached.chars_updated_at

        self.store.update_profile_alias(battle_tag, manifest.alias, manifest.alias_updated_at)

        if after is not None:
            logger.debug(f"Sending REQUEST_CHARS to {sender} [battle_tag={battle_tag}, after={after}]")
            self.messenger.send(
                RequestChars(battle_tag=battle_tag, after_timestamp=after),
                Channel.WHISPER, sender,
            )

        self.gossip.send_digest(battle_tag, sender)

    def handle_request_chars(self, sender: str, request: RequestChars) -> None:
        if not self.store.is_me(request.battle_tag):
            logger.debug(f"REQUEST_CHARS not for us [requested={request.battle_tag}]")
            return
        self._send_own_characters(sender, request.after_timestamp)

    def _send_own_characters(self, sender: str, after: int) -> bool:
        my_profile = self.store.get_my_profile()
        characters = self.store.get_characters_added_after(after)
        if my_profile is None or not characters:
            logger.debug(f"No characters to send [after={after}]")
            return False
        logger.debug(f"Sending CHARS_UPDATE ({len(characters)} chars) to {sender}")
        return self.coordinator.send_chars_update(
            my_profile.battle_tag, characters, my_profile.chars_updated_at, Channel.WHISPER, sender
        )

    def handle_alias_update(self, sender: str, update: AliasUpdate) -> None:
        battle_tag = update.battle_tag
        if self.store.is_me(battle_tag):
            return

        existing = self.store.get_profile(battle_tag)
        if existing is not None and existing.alias_updated_at > update.alias_updated_at:
            logger.debug(
                f"Sender has stale alias for {battle_tag} "
                f"[theirs={update.alias_updated_at}, ours={existing.alias_updated_at}]"
            )
            sender_battle_tag = self.cache.find_battle_tag(sender)
            if sender_battle_tag and not self.gossip.has_sent_correction(sender_battle_tag, battle_tag):
                if self.gossip.correct_stale_alias(sender, battle_tag, existing.alias, existing.alias_updated_at):
                    self.gossip.mark_correction_sent(sender_battle_tag, battle_tag)
            return

        if self.store.update_profile_alias(battle_tag, update.alias, update.alias_updated_at):
            logger.debug(f"Updated alias for {battle_tag} to '{update.alias}'")

    def handle_chars_update(self, sender: str, update: CharsUpdate) -> None:
        battle_tag = update.battle_tag
        if self.store.is_me(battle_tag):
            return

        existing = self.store.get_profile(battle_tag)
        if existing is not None and existing.chars_updated_at > update.chars_updated_at:
            logger.debug(
                f"Sender has stale characters for {battle_tag} "
                f"[theirs={update.chars_updated_at}, ours={existing.chars_updated_at}]"
            )
            sender_battle_tag = self.cache.find_battle_tag(sender)
            if sender_battle_tag and not self.gossip.has_sent_correction(sender_battle_tag, battle_tag):
                if self.gossip.correct_stale_chars(
                    sender, battle_tag, existing.chars_updated_at, update.chars_updated_at
                ):
                    self.gossip.mark_correction_sent(sender_battle_tag, battle_tag)

        characters = [record.to_character() for record in update.characters]
        if not characters:
            return
        if self.store.add_characters_to_profile(battle_tag, characters):
            self.cache.invalidate(battle_tag)
            logger.debug(f"Updated {len(characters)} character(s) for {battle_tag}")

    def handle_gossip_digest(self, sender: str, digest: GossipDigest) -> None:
        sender_battle_tag = digest.battle_tag or self.cache.find_battle_tag(sender)
        if not sender_battle_tag:
            logger.debug(f"Ignoring digest from unattributable sender {sender}")
            return
        if not digest.entries:
            logger.debug(f"Ignoring empty digest from {sender}")
            return

        result = self.gossip.reconcile_digest(sender, sender_battle_tag, digest.entries)
        logger.debug(
            f"Reconciled digest from {sender_battle_tag} [entries={len(digest.entries)}, "
            f"requests={len(result.requests)}, alias_corrections={len(result.alias_corrections)}, "
            f"chars_corrections={len(result.chars_corrections)}]"
        )

    def handle_gossip_request(self, sender: str, request: GossipRequest) -> None:
        battle_tag = request.battle_tag
        after = request.after_timestamp

        if self.store.is_me(battle_tag):
            my_profile = self.store.get_my_profile()
            self.messenger.send(
                AliasUpdate(
                    battle_tag=my_profile.battle_tag,
                    alias=my_profile.alias,
                    alias_updated_at=my_profile.alias_updated_at,
                ),
                Channel.WHISPER, sender,
            )
            self._send_own_characters(sender, after)
            return

        profile = self.store.get_profile(battle_tag)
        if profile is None:
            logger.debug(f"GOSSIP_REQUEST for unknown profile {battle_tag}")
            return

        if not self.gossip.send_profile(sender, battle_tag, after):
            return

        sender_battle_tag = self.cache.find_battle_tag(sender)
        if sender_battle_tag:
            summary = profile.summary()
            self.store.update_gossip_tracking(sender_battle_tag, battle_tag, summary.au, summary.cu, summary.cc)

    def get_stats(self) -> dict:
        return {
            "received": dict(self.received),
            "dropped": dict(self.dropped),
        }
