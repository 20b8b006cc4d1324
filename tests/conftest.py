"""Shared pytest fixtures for all tests."""

import random

import pytest

from common.codec import decode
from common.constants import MAX_TIMESTAMP
from common.exceptions import CodecError
from common.protocol import normalize_keys
from common.types import Character
from peer.character_cache import CharacterCache
from peer.config import PeerConfig
from peer.node import PeerNode
from peer.scheduler import ManualScheduler
from peer.store import ProfileStore
from peer.transport import LoopbackNetwork

START_TIME = 1000.0

# The virtual clock starts long before the real-world window peers accept
VIRTUAL_TIMESTAMP_RANGE = (0, MAX_TIMESTAMP)


@pytest.fixture
def scheduler():
    """
    Virtual clock starting at START_TIME.

    Returns:
        ManualScheduler instance
    """
    return ManualScheduler(start=START_TIME)


@pytest.fixture
def store(scheduler):
    """
    Empty profile store using the virtual clock.

    Returns:
        ProfileStore instance
    """
    return ProfileStore(clock=scheduler.now)


@pytest.fixture
def cache(store):
    return CharacterCache(store)


@pytest.fixture
def network():
    """
    Lossless loopback network.

    Returns:
        LoopbackNetwork instance
    """
    return LoopbackNetwork()


@pytest.fixture
def make_node(network, scheduler):
    """
    Factory creating logged-out peer nodes on the shared network and clock.

    Returns:
        Callable (battle_tag, character, realm="") -> PeerNode
    """
    def _make(battle_tag, character, realm="", in_guild=True, seed=0):
        transport = network.attach(character, in_guild=in_guild)
        return PeerNode(
            battle_tag=battle_tag,
            character=character,
            realm=realm,
            transport=transport,
            scheduler=scheduler,
            rng=random.Random(seed),
            timestamp_range=VIRTUAL_TIMESTAMP_RANGE,
        )
    return _make


@pytest.fixture
def temp_config(tmp_path):
    """
    Peer config backed by a temporary file.

    Returns:
        PeerConfig instance
    """
    return PeerConfig(tmp_path / '.guildsync' / 'config.json')


def decoded(record):
    """Decode a SentRecord's message into a verbose-key dict."""
    return normalize_keys(decode(record.message))


def sent_of_type(network, type_tag, sender=None, target=None):
    """
    Decoded payloads of one message type from the network log.

    Records that do not decode to a mapping (malformed test input) are skipped.
    """
    results = []
    for record in network.sent:
        if sender is not None and record.sender != sender:
            continue
        if target is not None and record.target != target:
            continue
        try:
            payload = decoded(record)
        except CodecError:
            continue
        if not isinstance(payload, dict) or payload.get("type") != type_tag:
            continue
        results.append(payload)
    return results


def seed_profile(store, battle_tag, alias, alias_updated_at, characters):
    """
    Put a third-party profile into a store.

    Args:
        characters: Iterable of (name, realm, added_at)
    """
    store.update_profile_alias(battle_tag, alias, alias_updated_at)
    store.add_characters_to_profile(
        battle_tag, [Character(name, realm, added_at) for name, realm, added_at in characters]
    )
    return store.get_profile(battle_tag)
