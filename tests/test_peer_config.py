"""Tests for peer configuration module."""

import json

from common.constants import MESSAGE_SIZE_LIMIT
from peer.config import PeerConfig, parse_peers


def test_config_creates_default_file(tmp_path):
    """Test that config file is created with defaults if missing."""
    config_path = tmp_path / '.guildsync' / 'config.json'
    config = PeerConfig(config_path)

    assert config_path.exists()

    assert config.data['verbose'] is False
    assert config.data['manifest_debounce'] == 2
    assert config.data['heartbeat_interval'] == 300
    assert config.data['size_limit'] == MESSAGE_SIZE_LIMIT


def test_config_loads_existing_file(tmp_path):
    """Test loading existing config file merges with defaults."""
    config_path = tmp_path / '.guildsync' / 'config.json'
    config_path.parent.mkdir(parents=True)

    existing_data = {
        'battle_tag': 'Me#1111',
        'character': 'Main',
        'heartbeat_interval': 120,
    }
    with open(config_path, 'w') as f:
        json.dump(existing_data, f)

    config = PeerConfig(config_path)

    assert config.get_identity() == ('Me#1111', 'Main', '')
    assert config.data['heartbeat_interval'] == 120
    assert config.data['roster_min_interval'] == 60


def test_config_set_identity(temp_config):
    """Test saving and retrieving identity."""
    temp_config.set_identity('Me#1111', 'Main', 'Argent Dawn')

    assert temp_config.get_identity() == ('Me#1111', 'Main', 'Argent Dawn')

    with open(temp_config.config_path, 'r') as f:
        data = json.load(f)
    assert data['battle_tag'] == 'Me#1111'
    assert data['realm'] == 'Argent Dawn'


def test_config_verbose_persists(temp_config):
    """Test verbose flag round-trips through the file."""
    assert temp_config.is_verbose() is False

    temp_config.set_verbose(True)

    assert PeerConfig(temp_config.config_path).is_verbose() is True


def test_config_timing_matches_coordinator_kwargs(temp_config):
    """Test get_timing returns only coordinator timing keys."""
    timing = temp_config.get_timing()

    assert set(timing) == {
        'manifest_debounce', 'heartbeat_check_interval', 'heartbeat_interval',
        'roster_min_interval', 'roster_debounce', 'jitter_min', 'jitter_max',
    }
    assert timing['jitter_min'] == 2
    assert timing['jitter_max'] == 10


def test_config_handles_corrupt_file(tmp_path):
    """Test that corrupt config file is backed up and defaults are used."""
    config_path = tmp_path / '.guildsync' / 'config.json'
    config_path.parent.mkdir(parents=True)

    with open(config_path, 'w') as f:
        f.write('{invalid json content')

    config = PeerConfig(config_path)

    assert config.data['heartbeat_interval'] == 300
    assert config_path.with_suffix('.json.bak').exists()


def test_config_get_falls_back_to_defaults(temp_config):
    """Test get() returns defaults for keys missing from the file."""
    del temp_config.data['size_limit']

    assert temp_config.get('size_limit') == MESSAGE_SIZE_LIMIT
    assert temp_config.get('unknown', 'fallback') == 'fallback'


def test_parse_peers():
    """Test peer list parsing skips malformed items."""
    peers = parse_peers('127.0.0.1:47101, localhost:47102,,bad,host:port,:5')

    assert peers == [('127.0.0.1', 47101), ('localhost', 47102)]


def test_parse_peers_empty():
    assert parse_peers('') == []
