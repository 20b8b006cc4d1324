"""Tests for manifest scheduling and character chunking."""

import random

import pytest

from common.codec import MessageCodec
from common.types import Character
from conftest import START_TIME, decoded, sent_of_type
from peer.store import ProfileStore
from peer.sync.coordinator import Coordinator
from peer.sync.messenger import Messenger
from peer.transport import Channel


@pytest.fixture
def transport(network):
    network.attach("Listener")
    return network.attach("Main")


@pytest.fixture
def coordinator(store, cache, transport, scheduler):
    store.ensure_my_profile("Me#1111")
    store.register_character("Main")
    messenger = Messenger(transport)
    return Coordinator(store, messenger, scheduler, cache=cache, rng=random.Random(0))


def _characters(count, name_length=8):
    return [
        Character(f"{i:02d}".ljust(name_length, "abcdefghijklmnopqrstuvwxyz"[i % 26]), "", 1000 + i)
        for i in range(count)
    ]


class TestSendManifest:
    """Test immediate manifest broadcast."""

    def test_send_manifest(self, coordinator, network):
        assert coordinator.send_manifest() is True

        [manifest] = sent_of_type(network, "M")
        assert manifest["battleTag"] == "Me#1111"
        assert manifest["charsUpdatedAt"] == int(START_TIME)
        assert network.sent[0].channel == Channel.GUILD
        assert coordinator.last_manifest_time == START_TIME

    def test_requires_own_profile(self, transport, scheduler):
        coordinator = Coordinator(ProfileStore(), Messenger(transport), scheduler)

        assert coordinator.send_manifest() is False

    def test_not_in_guild(self, coordinator, transport, network):
        transport.in_guild = False

        assert coordinator.send_manifest() is False
        assert network.sent == []
        assert coordinator.last_manifest_time is None

    def test_failed_send_keeps_last_time(self, coordinator, transport):
        transport.lockdown = True

        assert coordinator.send_manifest() is False
        assert coordinator.last_manifest_time is None


class TestHeartbeat:
    """Test the periodic heartbeat check."""

    def test_first_tick_sends(self, coordinator, scheduler, network):
        coordinator.start()
        scheduler.advance(60)

        assert len(sent_of_type(network, "M")) == 1

    def test_recent_manifest_suppresses_tick(self, coordinator, scheduler, network):
        coordinator.start()
        coordinator.send_manifest()

        scheduler.advance(240)
        assert len(sent_of_type(network, "M")) == 1

        scheduler.advance(60)
        assert len(sent_of_type(network, "M")) == 2

    def test_stop_cancels_everything(self, coordinator, scheduler, network):
        coordinator.start()
        coordinator.send_manifest_debounced()
        coordinator.stop()

        scheduler.advance(600)

        assert network.sent == []
        assert coordinator.running is False

    def test_start_is_idempotent(self, coordinator, scheduler):
        coordinator.start()
        coordinator.start()

        assert scheduler.pending() == 1


class TestDebounce:
    """Test debounced and roster-triggered manifests."""

    def test_burst_collapses(self, coordinator, scheduler, network):
        for _ in range(3):
            coordinator.send_manifest_debounced()
            scheduler.advance(1)

        assert sent_of_type(network, "M") == []
        scheduler.advance(1)
        assert len(sent_of_type(network, "M")) == 1

    def test_roster_update_is_debounced_then_jittered(self, coordinator, scheduler, network):
        coordinator.on_guild_roster_update()
        coordinator.on_guild_roster_update()

        scheduler.advance(5)
        assert sent_of_type(network, "M") == []
        assert coordinator.debouncer.is_pending("roster_manifest")

        scheduler.advance(10)
        assert len(sent_of_type(network, "M")) == 1
        assert coordinator.last_roster_manifest_time is not None

    def test_roster_sampling(self, coordinator, scheduler, network):
        coordinator.on_guild_roster_update()
        scheduler.advance(15)

        coordinator.on_guild_roster_update()
        scheduler.advance(15)
        assert len(sent_of_type(network, "M")) == 1

        scheduler.advance(60)
        coordinator.on_guild_roster_update()
        scheduler.advance(15)
        assert len(sent_of_type(network, "M")) == 2

    def test_jitter_range(self, coordinator, scheduler):
        coordinator.rng = random.Random(3)
        coordinator.on_guild_roster_update()
        scheduler.advance(5)

        task = coordinator.debouncer._pending["roster_manifest"]
        assert 2 <= task.when - scheduler.now() <= 10

    def test_roster_update_prunes_tracking(self, coordinator, store):
        store.add_characters_to_profile("Friend#2", [Character("Friend", "", 5)])
        store.update_gossip_tracking("Friend#2", "X#9", 1, 1, 1)
        store.update_gossip_tracking("Gone#3", "X#9", 1, 1, 1)

        coordinator.on_guild_roster_update(["Friend", "Stranger"])

        assert list(store.get_all_tracking()) == ["Friend#2"]


class TestSendCharsUpdate:
    """Test chunked character lists."""

    def test_chunks_of_four(self, coordinator, network):
        chars = _characters(10)

        assert coordinator.send_chars_update("Me#1111", chars, 1009, Channel.WHISPER, "Listener") is True

        chunks = sent_of_type(network, "C", target="Listener")
        assert [len(c["characters"]) for c in chunks] == [4, 4, 2]
        assert all(c["charsUpdatedAt"] == 1009 for c in chunks)
        names = [ch["name"] for c in chunks for ch in c["characters"]]
        assert names == [c.name for c in chars]

    def test_empty_list(self, coordinator, network):
        assert coordinator.send_chars_update("Me#1111", [], 0, Channel.WHISPER, "Listener") is True
        assert network.sent == []

    def test_chunks_shrink_to_fit(self, store, transport, scheduler, network):
        codec = MessageCodec(compression_threshold=10**6)
        coordinator = Coordinator(store, Messenger(transport, codec=codec), scheduler, size_limit=150)
        chars = _characters(5, name_length=30)

        assert coordinator.send_chars_update("Me#1111", chars, 1004, Channel.WHISPER, "Listener") is True

        assert all(len(r.message) <= 150 for r in network.sent)
        sizes = [len(decoded(r)["characters"]) for r in network.sent]
        assert sum(sizes) == 5
        assert max(sizes) < 4

    def test_stops_at_first_failure(self, coordinator, network):
        assert coordinator.send_chars_update("Me#1111", _characters(10), 1009, Channel.WHISPER, "Ghost") is False

        assert len(network.sent) == 1


class TestSyncStats:
    def test_initial(self, coordinator):
        stats = coordinator.get_sync_stats()

        assert stats["last_manifest_time"] is None
        assert stats["next_heartbeat_in"] == 0.0
        assert stats["next_roster_window_in"] == 0.0

    def test_after_manifest(self, coordinator, scheduler):
        coordinator.send_manifest()
        scheduler.advance(100)

        stats = coordinator.get_sync_stats()
        assert stats["time_since_last_manifest"] == 100
        assert stats["next_heartbeat_in"] == 200
