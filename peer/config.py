"""Configuration settings for a sync peer."""

import json
import os
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from common.constants import (
    ADDON_PREFIX,
    GUILD_ROSTER_DEBOUNCE_SECONDS,
    GUILD_ROSTER_MIN_INTERVAL_SECONDS,
    HEARTBEAT_CHECK_INTERVAL_SECONDS,
    MANIFEST_DEBOUNCE_SECONDS,
    MANIFEST_HEARTBEAT_INTERVAL_SECONDS,
    MESSAGE_SIZE_LIMIT,
    ROSTER_JITTER_MAX_SECONDS,
    ROSTER_JITTER_MIN_SECONDS,
    UDP_DEFAULT_PORT,
)
from common.logging_config import get_logger

logger = get_logger(__name__)


DATABASE_PATH = os.environ.get("GUILDSYNC_DATABASE_PATH", str(Path.home() / ".guildsync" / "profiles.db"))

CONFIG_PATH = os.environ.get("GUILDSYNC_CONFIG_PATH", str(Path.home() / ".guildsync" / "config.json"))

UDP_HOST = os.environ.get("GUILDSYNC_UDP_HOST", "127.0.0.1")

UDP_PORT = int(os.environ.get("GUILDSYNC_UDP_PORT", str(UDP_DEFAULT_PORT)))

UDP_PEERS = os.environ.get("GUILDSYNC_PEERS", "")

PREFIX = os.environ.get("GUILDSYNC_PREFIX", ADDON_PREFIX)


def parse_peers(value: str) -> List[Tuple[str, int]]:
    """
    Parse a comma-separated ``host:port`` list.

    Args:
        value: e.g. "127.0.0.1:47101,127.0.0.1:47102"

    Returns:
        List of (host, port) tuples; malformed items are skipped
    """
    peers = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        host, sep, port = item.rpartition(":")
        if not sep or not host or not port.isdigit():
            logger.warning(f"Ignoring malformed peer address [value={item}]")
            continue
        peers.append((host, int(port)))
    return peers


class PeerConfig:
    """Manages peer configuration stored in a JSON file."""

    DEFAULT_CONFIG = {
        "battle_tag": os.environ.get("GUILDSYNC_BATTLE_TAG", ""),
        "character": os.environ.get("GUILDSYNC_CHARACTER", ""),
        "realm": os.environ.get("GUILDSYNC_REALM", ""),
        "verbose": False,
        "manifest_debounce": MANIFEST_DEBOUNCE_SECONDS,
        "heartbeat_check_interval": HEARTBEAT_CHECK_INTERVAL_SECONDS,
        "heartbeat_interval": MANIFEST_HEARTBEAT_INTERVAL_SECONDS,
        "roster_min_interval": GUILD_ROSTER_MIN_INTERVAL_SECONDS,
        "roster_debounce": GUILD_ROSTER_DEBOUNCE_SECONDS,
        "jitter_min": ROSTER_JITTER_MIN_SECONDS,
        "jitter_max": ROSTER_JITTER_MAX_SECONDS,
        "size_limit": MESSAGE_SIZE_LIMIT,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.guildsync/config.json)
        """
        self.config_path = Path(config_path or CONFIG_PATH)
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        A corrupt file is copied to ``config.json.bak`` and defaults are used.

        Returns:
            Configuration dictionary
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if not self.config_path.exists():
            config = self.DEFAULT_CONFIG.copy()
            self._write(config)
            return config

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Config file unreadable, using defaults [path={self.config_path}]: {e}")
            backup_path = self.config_path.with_suffix('.json.bak')
            try:
                shutil.copy(self.config_path, backup_path)
            except OSError as copy_error:
                logger.warning(f"Could not back up config: {copy_error}")
            return self.DEFAULT_CONFIG.copy()

        config = self.DEFAULT_CONFIG.copy()
        if isinstance(data, dict):
            config.update(data)
        return config

    def _write(self, data: dict) -> None:
        try:
            with open(self.config_path, 'w') as f:
                json.dump(data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save config [path={self.config_path}]: {e}")

    def save(self) -> None:
        """Save current configuration to file."""
        self._write(self.data)

    def get(self, key: str, default=None):
        return self.data.get(key, self.DEFAULT_CONFIG.get(key, default))

    def set(self, key: str, value) -> None:
        self.data[key] = value
        self.save()

    def get_identity(self) -> Tuple[str, str, str]:
        """
        Get configured identity.

        Returns:
            (battle_tag, character, realm)
        """
        return self.get('battle_tag', ''), self.get('character', ''), self.get('realm', '')

    def set_identity(self, battle_tag: str, character: str, realm: str = "") -> None:
        self.data['battle_tag'] = battle_tag
        self.data['character'] = character
        self.data['realm'] = realm
        self.save()

    def get_timing(self) -> dict:
        """
        Get coordinator timing settings.

        Returns:
            Keyword arguments accepted by Coordinator
        """
        keys = (
            'manifest_debounce', 'heartbeat_check_interval', 'heartbeat_interval',
            'roster_min_interval', 'roster_debounce', 'jitter_min', 'jitter_max',
        )
        return {key: self.get(key) for key in keys}

    def is_verbose(self) -> bool:
        return bool(self.get('verbose', False))

    def set_verbose(self, enabled: bool) -> None:
        self.set('verbose', enabled)
