"""Tests for inbound message handling."""

import pytest

from common.codec import encode
from common.constants import ADDON_PREFIX, MAX_TIMESTAMP, MIN_TIMESTAMP
from common.types import TrackingEntry
from conftest import START_TIME, sent_of_type, seed_profile
from peer.schemas import (
    AliasUpdate,
    CharacterRecord,
    CharsUpdate,
    DigestEntry,
    GossipDigest,
    GossipRequest,
    Manifest,
    RequestChars,
)
from peer.sync.messenger import Messenger
from peer.transport import Channel

PEER_TAG = "Peer#2222"


@pytest.fixture
def node(make_node):
    node = make_node("Me#1111", "Main")
    node.store.ensure_my_profile("Me#1111", alias="Me")
    node.store.register_character("Main")
    return node


@pytest.fixture
def peer(network):
    return network.attach("Peer")


@pytest.fixture
def inject(peer, network):
    """Send a model from the peer to the node and deliver everything."""
    messenger = Messenger(peer)

    def _inject(model, channel=Channel.WHISPER):
        target = "Main" if channel == Channel.WHISPER else None
        assert messenger.send(model, channel, target)
        network.flush()
    return _inject


@pytest.fixture
def known_peer(node):
    """Make the peer's sender token resolvable on the node."""
    return seed_profile(node.store, PEER_TAG, "Peer", 10, [("Peer", "", 10)])


def _replies(network, type_tag):
    return sent_of_type(network, type_tag, sender="Main", target="Peer")


class TestBoundary:
    """Test the decode and validation boundary."""

    def test_foreign_prefix_ignored(self, node, peer, network):
        peer.send("SomeoneElse", encode({"t": "M"}), Channel.WHISPER, target="Main")
        network.flush()

        assert node.protocol.dropped["prefix"] == 1
        assert node.protocol.dropped["decode"] == 0

    @pytest.mark.parametrize("message, reason", [
        (b"garbage", "decode"),
        (encode([1, 2, 3]), "shape"),
        (encode({"t": "ZZ"}), "type"),
        (encode({"b": "A#1"}), "type"),
        (encode({"t": "M", "b": "A#1"}), "invalid"),
    ])
    def test_bad_messages_dropped(self, node, peer, network, message, reason):
        peer.send(ADDON_PREFIX, message, Channel.WHISPER, target="Main")
        network.flush()

        assert node.protocol.dropped[reason] == 1
        assert node.protocol.received == {}
        assert _replies(network, "R") == []

    def test_empty_message(self, node):
        node.protocol.on_message(ADDON_PREFIX, b"", Channel.GUILD, "Peer")

        assert node.protocol.dropped["empty"] == 1

    def test_unknown_keys_tolerated(self, node, peer, network):
        payload = {"t": "A", "b": "Y#9", "a": "Yaz", "au": 5, "future": [1, 2]}
        peer.send(ADDON_PREFIX, encode(payload), Channel.WHISPER, target="Main")
        network.flush()

        assert node.store.get_profile("Y#9").alias == "Yaz"

    def test_verbose_keys_accepted(self, node, peer, network):
        payload = {"type": "A", "battleTag": "Y#9", "alias": "Yaz", "aliasUpdatedAt": 5}
        peer.send(ADDON_PREFIX, encode(payload), Channel.WHISPER, target="Main")
        network.flush()

        assert node.store.get_profile("Y#9").alias == "Yaz"

    def test_stats(self, node, inject):
        inject(AliasUpdate(battle_tag="Y#9", alias="Yaz", alias_updated_at=5))

        assert node.protocol.get_stats()["received"] == {"ALIAS_UPDATE": 1}


class TestIdentityAndTimestampChecks:
    """Test junk identities and timestamps are dropped with the default window."""

    NOW = 1_700_000_000

    @pytest.fixture
    def strict_node(self, node):
        node.protocol.timestamp_range = (MIN_TIMESTAMP, MAX_TIMESTAMP)
        return node

    def _send(self, peer, network, payload):
        peer.send(ADDON_PREFIX, encode(payload), Channel.WHISPER, target="Main")
        network.flush()

    def test_malformed_battle_tag_not_stored(self, strict_node, peer, network):
        self._send(peer, network, {"t": "M", "b": "not-a-battletag", "a": "x", "au": self.NOW, "cu": self.NOW})

        assert strict_node.protocol.dropped["invalid"] == 1
        assert strict_node.store.get_all_profiles() == {}
        assert _replies(network, "R") == []

    @pytest.mark.parametrize("payload", [
        {"t": "M", "b": "Y#9", "a": "x", "au": 5, "cu": 5},
        {"t": "A", "b": "Y#9", "a": "x", "au": 5},
        {"t": "R", "b": "Me#1111", "af": 5},
        {"t": "GR", "b": "Me#1111", "af": 5},
    ])
    def test_out_of_range_timestamps_dropped(self, strict_node, peer, network, payload):
        self._send(peer, network, payload)

        assert strict_node.protocol.dropped["invalid"] == 1
        assert strict_node.protocol.received == {}
        assert strict_node.store.get_profile("Y#9") is None

    def test_in_range_manifest_accepted(self, strict_node, peer, network):
        self._send(peer, network, {"t": "M", "b": "Y#9", "a": "Yaz", "au": self.NOW, "cu": self.NOW})

        assert strict_node.store.get_profile("Y#9").alias == "Yaz"
        assert _replies(network, "R") == [{"type": "R", "battleTag": "Y#9", "afterTimestamp": 0}]

    def test_old_characters_dropped_individually(self, strict_node, peer, network):
        self._send(peer, network, {
            "t": "C", "b": "Y#9", "cu": self.NOW,
            "c": [{"n": "Old", "d": 5}, {"n": "New", "d": self.NOW}],
        })

        profile = strict_node.store.get_profile("Y#9")
        assert [c.name for c in profile.characters.values()] == ["New"]


class TestManifest:
    """Test MANIFEST handling."""

    def test_unknown_sender_adopted_and_asked(self, node, inject, network):
        inject(Manifest(battle_tag="Foo#1", alias="Foo", alias_updated_at=100, chars_updated_at=100),
               Channel.GUILD)

        assert node.store.get_profile("Foo#1").alias == "Foo"
        [request] = _replies(network, "R")
        assert request["battleTag"] == "Foo#1"
        assert request["afterTimestamp"] == 0

    def test_newer_characters_requested_as_delta(self, node, inject, network):
        seed_profile(node.store, "Foo#1", "Foo", 100, [("Foo", "", 100)])

        inject(Manifest(battle_tag="Foo#1", alias="Foo", alias_updated_at=100, chars_updated_at=250),
               Channel.GUILD)

        [request] = _replies(network, "R")
        assert request["afterTimestamp"] == 100

    def test_up_to_date_manifest_sends_no_request(self, node, inject, network):
        seed_profile(node.store, "Foo#1", "Foo", 100, [("Foo", "", 100)])

        inject(Manifest(battle_tag="Foo#1", alias="Renamed", alias_updated_at=200, chars_updated_at=100),
               Channel.GUILD)

        assert _replies(network, "R") == []
        assert node.store.get_profile("Foo#1").alias == "Renamed"

    def test_own_manifest_ignored(self, node, inject, network):
        inject(Manifest(battle_tag="Me#1111", alias="Fake", alias_updated_at=10**9, chars_updated_at=10**9),
               Channel.GUILD)

        assert node.store.get_my_profile().alias == "Me"
        assert network.sent[1:] == []

    def test_manifest_triggers_digest(self, node, inject, network):
        seed_profile(node.store, "Y#9", "Yaz", 50, [("Yc", "", 60)])

        inject(Manifest(battle_tag=PEER_TAG, alias="Peer", alias_updated_at=10, chars_updated_at=0),
               Channel.GUILD)

        [digest] = _replies(network, "G")
        assert [e["battleTag"] for e in digest["entries"]] == ["Y#9"]


class TestRequestChars:
    """Test REQUEST_CHARS handling."""

    def test_answers_for_own_identity(self, node, inject, network):
        inject(RequestChars(battle_tag="Me#1111", after_timestamp=0))

        [chars] = _replies(network, "C")
        assert chars["battleTag"] == "Me#1111"
        assert chars["characters"] == [{"name": "Main", "realm": "", "addedAt": int(START_TIME)}]

    def test_delta_cutoff(self, node, inject, network):
        node.store.register_character("Second")

        inject(RequestChars(battle_tag="Me#1111", after_timestamp=int(START_TIME)))

        [chars] = _replies(network, "C")
        assert [c["name"] for c in chars["characters"]] == ["Second"]

    def test_ignores_other_identities(self, node, inject, network):
        seed_profile(node.store, "Y#9", "Yaz", 50, [("Yc", "", 60)])

        inject(RequestChars(battle_tag="Y#9"))

        assert _replies(network, "C") == []


class TestAliasUpdate:
    """Test ALIAS_UPDATE merging."""

    def test_newer_then_older(self, node, inject):
        inject(AliasUpdate(battle_tag="Y#9", alias="New", alias_updated_at=200))
        inject(AliasUpdate(battle_tag="Y#9", alias="Old", alias_updated_at=100))

        assert node.store.get_profile("Y#9").alias == "New"

    def test_older_then_newer(self, node, inject):
        inject(AliasUpdate(battle_tag="Y#9", alias="Old", alias_updated_at=100))
        inject(AliasUpdate(battle_tag="Y#9", alias="New", alias_updated_at=200))

        assert node.store.get_profile("Y#9").alias == "New"

    def test_stale_sender_corrected_once(self, node, inject, network, known_peer):
        seed_profile(node.store, "Y#9", "Current", 300, [])

        inject(AliasUpdate(battle_tag="Y#9", alias="Stale", alias_updated_at=100))
        inject(AliasUpdate(battle_tag="Y#9", alias="Stale", alias_updated_at=100))

        [correction] = _replies(network, "A")
        assert correction["alias"] == "Current"
        assert correction["aliasUpdatedAt"] == 300
        assert node.store.get_profile("Y#9").alias == "Current"

    def test_stale_unknown_sender_not_corrected(self, node, inject, network):
        seed_profile(node.store, "Y#9", "Current", 300, [])

        inject(AliasUpdate(battle_tag="Y#9", alias="Stale", alias_updated_at=100))

        assert _replies(network, "A") == []

    def test_own_alias_untouched(self, node, inject):
        inject(AliasUpdate(battle_tag="Me#1111", alias="Hijack", alias_updated_at=10**9))

        assert node.store.get_my_profile().alias == "Me"


class TestCharsUpdate:
    """Test CHARS_UPDATE merging."""

    def _update(self, *chars, cu=None):
        records = [CharacterRecord(name=n, realm=r, added_at=d) for n, r, d in chars]
        return CharsUpdate(
            battle_tag="Y#9",
            characters=records,
            chars_updated_at=cu if cu is not None else max(d for _, _, d in chars),
        )

    def test_applied_and_indexed(self, node, inject):
        inject(self._update(("Yc", "Realm", 100), ("Yd", "", 150)))

        profile = node.store.get_profile("Y#9")
        assert profile.character_count() == 2
        assert profile.chars_updated_at == 150
        assert node.cache.find_battle_tag("Yc-Realm") == "Y#9"

    def test_idempotent(self, node, inject):
        update = self._update(("Yc", "", 100))
        inject(update)
        before = node.store.get_profile("Y#9").to_dict()
        inject(update)

        assert node.store.get_profile("Y#9").to_dict() == before

    def test_claimed_timestamp_not_trusted(self, node, inject):
        inject(self._update(("Yc", "", 100), cu=500))

        assert node.store.get_profile("Y#9").chars_updated_at == 100

    def test_stale_sender_corrected_and_still_merged(self, node, inject, network, known_peer):
        seed_profile(node.store, "Y#9", "Yaz", 10, [("A", "", 100), ("B", "", 300)])

        inject(self._update(("Z", "", 100), cu=100))

        [correction] = _replies(network, "C")
        assert [c["name"] for c in correction["characters"]] == ["B"]
        assert node.store.get_profile("Y#9").character_count() == 3

    def test_own_profile_untouched(self, node, inject):
        inject(CharsUpdate(
            battle_tag="Me#1111",
            characters=[CharacterRecord(name="Fake", added_at=1)],
            chars_updated_at=1,
        ))

        assert node.store.get_my_profile().character_count() == 1


class TestGossipMessages:
    """Test GOSSIP_DIGEST and GOSSIP_REQUEST handling."""

    def test_digest_triggers_request(self, node, inject, network):
        inject(GossipDigest(battle_tag=PEER_TAG, entries=[
            DigestEntry(battle_tag="Y#9", alias_updated_at=10, chars_updated_at=20, chars_count=1),
        ]))

        [request] = _replies(network, "GR")
        assert request == {"type": "GR", "battleTag": "Y#9", "afterTimestamp": 0}

    def test_digest_attributed_through_cache(self, node, inject, network, known_peer):
        inject(GossipDigest(entries=[
            DigestEntry(battle_tag="Y#9", alias_updated_at=10, chars_updated_at=20, chars_count=1),
        ]))

        assert len(_replies(network, "GR")) == 1
        assert node.store.get_tracking_entry(PEER_TAG, "Y#9") == TrackingEntry(10, 20, 1)

    def test_unattributable_digest_ignored(self, node, inject, network):
        inject(GossipDigest(entries=[
            DigestEntry(battle_tag="Y#9", alias_updated_at=10, chars_updated_at=20, chars_count=1),
        ]))

        assert _replies(network, "GR") == []

    def test_empty_digest_ignored(self, node, inject, network):
        inject(GossipDigest(battle_tag=PEER_TAG, entries=[]))

        assert network.sent[1:] == []

    def test_request_for_own_identity(self, node, inject, network):
        inject(GossipRequest(battle_tag="Me#1111"))

        [alias] = _replies(network, "A")
        [chars] = _replies(network, "C")
        assert alias["alias"] == "Me"
        assert chars["characters"][0]["name"] == "Main"

    def test_request_for_cached_profile(self, node, inject, network, known_peer):
        seed_profile(node.store, "Y#9", "Yaz", 50, [("A", "", 100), ("B", "", 200)])

        inject(GossipRequest(battle_tag="Y#9", after_timestamp=100))

        [alias] = _replies(network, "A")
        [chars] = _replies(network, "C")
        assert alias["alias"] == "Yaz"
        assert [c["name"] for c in chars["characters"]] == ["B"]
        assert node.store.get_tracking_entry(PEER_TAG, "Y#9") == TrackingEntry(50, 200, 2)

    def test_request_for_unknown_profile(self, node, inject, network):
        inject(GossipRequest(battle_tag="Missing#0"))

        assert network.sent[1:] == []
