"""Tests for PeerNode wiring and lifecycle."""

from conftest import START_TIME, VIRTUAL_TIMESTAMP_RANGE, seed_profile, sent_of_type
from peer.node import PeerNode
from peer.scheduler import ManualScheduler
from peer.transport import LoopbackNetwork


class TestLifecycle:
    """Test login, logout and persistence."""

    def test_login_registers_and_announces(self, make_node, scheduler, network):
        node = make_node("Me#1111", "Main", realm="Realm")

        node.login()

        profile = node.store.get_my_profile()
        assert profile.battle_tag == "Me#1111"
        assert ("Main", "Realm") in profile.characters
        assert node.logged_in is True
        assert sent_of_type(network, "M") == []

        scheduler.advance(2)
        [manifest] = sent_of_type(network, "M")
        assert manifest["charsUpdatedAt"] == int(START_TIME)

    def test_relogin_keeps_character_timestamps(self, make_node, scheduler):
        node = make_node("Me#1111", "Main")
        node.login()
        node.logout()
        scheduler.advance(100)

        node.login()

        assert node.store.get_my_profile().chars_updated_at == int(START_TIME)
        assert node.store.get_my_profile().character_count() == 1

    def test_logout_stops_timers(self, make_node, scheduler, network):
        node = make_node("Me#1111", "Main")
        node.login()
        node.logout()

        scheduler.advance(1000)

        assert network.sent == []
        assert node.logged_in is False

    def test_logout_resets_correction_session(self, make_node):
        node = make_node("Me#1111", "Main")
        node.login()
        node.gossip.mark_correction_sent("Peer#2", "Y#9")

        node.logout()

        assert node.gossip.has_sent_correction("Peer#2", "Y#9") is False

    def test_state_survives_restart(self, tmp_path):
        db_path = str(tmp_path / "profiles.db")

        def build():
            scheduler = ManualScheduler(start=START_TIME)
            transport = LoopbackNetwork().attach("Main")
            return PeerNode("Me#1111", "Main", transport, scheduler, db_path=db_path,
                            timestamp_range=VIRTUAL_TIMESTAMP_RANGE)

        first = build()
        first.login()
        first.set_alias("Boss")
        seed_profile(first.store, "Y#9", "Yaz", 50, [("Yc", "", 100)])
        first.store.update_gossip_tracking("Peer#2", "Y#9", 50, 100, 1)
        first.logout()

        second = build()
        second.login()

        assert second.store.get_my_profile().alias == "Boss"
        assert second.store.get_profile("Y#9").alias == "Yaz"
        assert second.store.get_tracking_entry("Peer#2", "Y#9") is not None
        assert second.cache.find_battle_tag("Yc") == "Y#9"


class TestOperations:
    """Test the user-facing node operations."""

    def test_set_alias_debounces_manifest(self, make_node, scheduler, network):
        node = make_node("Me#1111", "Main")
        node.login()

        node.set_alias("One")
        scheduler.advance(1)
        node.set_alias("Two")
        scheduler.advance(2)

        manifests = sent_of_type(network, "M")
        assert [m["alias"] for m in manifests] == ["Two"]

    def test_add_character(self, make_node):
        node = make_node("Me#1111", "Main")
        node.login()

        assert node.add_character("Alt", "Realm") is True
        assert node.add_character("Alt", "Realm") is False
        assert node.cache.find_battle_tag("Alt-Realm") == "Me#1111"

    def test_broadcast_and_purge(self, make_node, network):
        node = make_node("Me#1111", "Main")
        node.login()
        seed_profile(node.store, "Y#9", "Yaz", 50, [])

        assert node.broadcast() is True
        assert node.purge() == 1
        assert len(sent_of_type(network, "M")) == 1

    def test_roster_update_prunes_ledger(self, make_node, scheduler):
        node = make_node("Me#1111", "Main")
        node.login()
        seed_profile(node.store, "Peer#2", "Peer", 10, [("Peer", "", 10)])
        node.store.update_gossip_tracking("Peer#2", "Y#9", 1, 1, 1)
        node.store.update_gossip_tracking("Gone#3", "Y#9", 1, 1, 1)

        node.on_roster_update(["Peer"])

        assert list(node.store.get_all_tracking()) == ["Peer#2"]

    def test_status(self, make_node):
        node = make_node("Me#1111", "Main")
        node.login()
        node.broadcast()

        status = node.get_status()

        assert status["battle_tag"] == "Me#1111"
        assert status["characters"] == 1
        assert status["profiles"] == 0
        assert status["messages_sent"] == 1
        assert status["sync"]["last_manifest_time"] == START_TIME
        assert set(status) >= {"gossip", "cache", "protocol"}
