"""Project-wide constants (wire format, limits, sync timings)."""

ADDON_PREFIX: str = "Ndvrng"

PROTOCOL_VERSION: int = 1
COMPRESSION_THRESHOLD: int = 100  # bytes of serialized payload
FLAG_COMPRESSED: int = 0x01

MESSAGE_SIZE_LIMIT: int = 255  # hard per-message ceiling in bytes
MESSAGE_SIZE_WARNING_RATIO: float = 0.9

MAX_DIGEST_ENTRIES: int = 8
CHARS_PER_MESSAGE: int = 4

MANIFEST_DEBOUNCE_SECONDS: float = 2.0
HEARTBEAT_CHECK_INTERVAL_SECONDS: float = 60.0
MANIFEST_HEARTBEAT_INTERVAL_SECONDS: float = 300.0
GUILD_ROSTER_MIN_INTERVAL_SECONDS: float = 60.0
GUILD_ROSTER_DEBOUNCE_SECONDS: float = 5.0
ROSTER_JITTER_MIN_SECONDS: int = 2
ROSTER_JITTER_MAX_SECONDS: int = 10

UDP_DEFAULT_PORT: int = 47100

# Accepted range for timestamps received from peers (2020-01-01 .. 2040-01-01)
MIN_TIMESTAMP: int = 1577836800
MAX_TIMESTAMP: int = 2209032000
