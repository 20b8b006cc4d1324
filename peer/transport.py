"""Message transports: an in-process loopback network and a UDP datagram transport."""

import asyncio
import random
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from common.constants import MESSAGE_SIZE_LIMIT
from common.exceptions import (
    MessageTooLargeError,
    NotInGuildError,
    TargetOfflineError,
    TargetRequiredError,
    TransportUnavailableError,
)
from common.logging_config import get_logger

logger = get_logger(__name__)


class Channel(str, Enum):
    GUILD = "GUILD"
    WHISPER = "WHISPER"
    PARTY = "PARTY"


MessageHandler = Callable[[str, bytes, Channel, str], None]
Address = Tuple[str, int]


class Transport(ABC):
    """
    Send/receive interface used by the sync layer.

    ``name`` is the sender token other peers see (a character name).
    """

    def __init__(self, name: str, size_limit: int = MESSAGE_SIZE_LIMIT):
        self.name = name
        self.size_limit = size_limit
        self.lockdown = False
        self.in_guild = True
        self._handler: Optional[MessageHandler] = None

    def set_handler(self, handler: MessageHandler) -> None:
        self._handler = handler

    def in_lockdown(self) -> bool:
        return self.lockdown

    def is_in_guild(self) -> bool:
        return self.in_guild

    def _check_send(self, message: bytes, channel: Channel, target: Optional[str]) -> None:
        if self.lockdown:
            raise TransportUnavailableError("Messaging lockdown active")
        if len(message) > self.size_limit:
            raise MessageTooLargeError(
                f"Message size ({len(message)} bytes) exceeds limit ({self.size_limit} bytes)"
            )
        if channel == Channel.WHISPER and not target:
            raise TargetRequiredError("Whisper requires a target")
        if channel == Channel.GUILD and not self.in_guild:
            raise NotInGuildError("Not in a guild")

    def _dispatch(self, prefix: str, message: bytes, channel: Channel, sender: str) -> None:
        if self._handler is None:
            return
        try:
            self._handler(prefix, message, channel, sender)
        except Exception as e:
            logger.error(f"Message handler failed [sender={sender}]: {e}", exc_info=True)

    @abstractmethod
    def send(self, prefix: str, message: bytes, channel: Channel, target: Optional[str] = None) -> None:
        """
        Send one message.

        Raises:
            TransportError: The transport refused the message
        """


@dataclass(frozen=True)
class SentRecord:
    sender: str
    prefix: str
    message: bytes
    channel: Channel
    target: Optional[str]


class LoopbackNetwork:
    """
    In-process network joining LoopbackTransports.

    Deliveries are queued FIFO and run by flush(), so a test controls
    exactly when replies happen. A seeded drop rate simulates loss.
    """

    def __init__(self, drop_rate: float = 0.0, seed: Optional[int] = None):
        self.drop_rate = drop_rate
        self.rng = random.Random(seed)
        self.members: Dict[str, "LoopbackTransport"] = {}
        self.sent: List[SentRecord] = []
        self.dropped = 0
        self._queue: Deque[Tuple[str, SentRecord]] = deque()

    def attach(self, name: str, in_guild: bool = True,
               size_limit: int = MESSAGE_SIZE_LIMIT) -> "LoopbackTransport":
        transport = LoopbackTransport(self, name, size_limit=size_limit)
        transport.in_guild = in_guild
        self.members[name] = transport
        return transport

    def detach(self, name: str) -> None:
        self.members.pop(name, None)

    def online(self) -> List[str]:
        return sorted(self.members)

    def guild_members(self) -> List[str]:
        return sorted(name for name, t in self.members.items() if t.in_guild)

    def submit(self, record: SentRecord) -> None:
        self.sent.append(record)
        if record.channel == Channel.WHISPER:
            if record.target not in self.members:
                raise TargetOfflineError(f"Target offline: {record.target}")
            recipients: Iterable[str] = [record.target]
        elif record.channel == Channel.GUILD:
            recipients = [n for n in self.guild_members() if n != record.sender]
        else:
            recipients = [n for n in self.online() if n != record.sender]

        for recipient in recipients:
            if self.drop_rate and self.rng.random() < self.drop_rate:
                self.dropped += 1
                continue
            self._queue.append((recipient, record))

    def flush(self, max_deliveries: int = 100000) -> int:
        """
        Deliver queued messages, including those queued by handlers, until idle.

        Returns:
            Number of messages delivered
        """
        delivered = 0
        while self._queue and delivered < max_deliveries:
            recipient, record = self._queue.popleft()
            transport = self.members.get(recipient)
            if transport is None:
                continue
            transport._dispatch(record.prefix, record.message, record.channel, record.sender)
            delivered += 1
        return delivered

    def pending(self) -> int:
        return len(self._queue)

    def clear_log(self) -> None:
        self.sent = []


class LoopbackTransport(Transport):
    def __init__(self, network: LoopbackNetwork, name: str, size_limit: int = MESSAGE_SIZE_LIMIT):
        super().__init__(name, size_limit)
        self.network = network

    def send(self, prefix: str, message: bytes, channel: Channel, target: Optional[str] = None) -> None:
        self._check_send(message, channel, target)
        self.network.submit(SentRecord(self.name, prefix, message, channel, target))


FRAME_SEPARATOR = b"\x1f"


def build_frame(prefix: str, channel: Channel, sender: str, message: bytes) -> bytes:
    return FRAME_SEPARATOR.join([
        prefix.encode("utf-8"),
        channel.value.encode("ascii"),
        sender.encode("utf-8"),
        message,
    ])


def parse_frame(data: bytes) -> Tuple[str, Channel, str, bytes]:
    """
    Split a datagram into (prefix, channel, sender, message).

    Raises:
        ValueError: If the frame is malformed
    """
    parts = data.split(FRAME_SEPARATOR, 3)
    if len(parts) != 4:
        raise ValueError("Malformed frame")
    prefix, channel, sender, message = parts
    return prefix.decode("utf-8"), Channel(channel.decode("ascii")), sender.decode("utf-8"), message


class _DatagramProtocol(asyncio.DatagramProtocol):
    def __init__(self, owner: "UdpTransport"):
        self.owner = owner

    def datagram_received(self, data: bytes, addr: Address) -> None:
        self.owner._on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"UDP error: {exc}")


class UdpTransport(Transport):
    """
    Datagram transport for peers on a LAN or localhost.

    Guild and party messages go to every seed peer and every address
    learned from inbound traffic. Whispers go to the address last seen
    for the target sender token.
    """

    def __init__(self, name: str, host: str, port: int,
                 peers: Optional[Iterable[Address]] = None,
                 size_limit: int = MESSAGE_SIZE_LIMIT):
        super().__init__(name, size_limit)
        self.host = host
        self.port = port
        self.peers: Set[Address] = set(peers or [])
        self.address_book: Dict[str, Address] = {}
        self._endpoint: Optional[asyncio.DatagramTransport] = None
        self.running = False

    async def start(self) -> None:
        """Bind the UDP endpoint on the running loop."""
        loop = asyncio.get_running_loop()
        self._endpoint, _ = await loop.create_datagram_endpoint(
            lambda: _DatagramProtocol(self),
            local_addr=(self.host, self.port),
        )
        sockname = self._endpoint.get_extra_info("sockname")
        if sockname:
            self.port = sockname[1]
        self.running = True
        logger.info(f"UDP transport listening [name={self.name}, addr={self.host}:{self.port}]")

    async def stop(self) -> None:
        self.running = False
        if self._endpoint is not None:
            self._endpoint.close()
            self._endpoint = None
        logger.info(f"UDP transport stopped [name={self.name}]")

    def roster(self) -> List[str]:
        return sorted(self.address_book)

    def _on_datagram(self, data: bytes, addr: Address) -> None:
        try:
            prefix, channel, sender, message = parse_frame(data)
        except (ValueError, UnicodeDecodeError) as e:
            logger.debug(f"Dropped malformed datagram [addr={addr}]: {e}")
            return
        if sender == self.name:
            return
        self.address_book[sender] = addr
        self.peers.add(addr)
        self._dispatch(prefix, message, channel, sender)

    def send(self, prefix: str, message: bytes, channel: Channel, target: Optional[str] = None) -> None:
        if self._endpoint is None:
            raise TransportUnavailableError("UDP transport not started")
        self._check_send(message, channel, target)

        frame = build_frame(prefix, channel, self.name, message)
        if channel == Channel.WHISPER:
            addr = self.address_book.get(target)
            if addr is None:
                raise TargetOfflineError(f"No address for {target}")
            self._endpoint.sendto(frame, addr)
            return

        for addr in sorted(self.peers):
            self._endpoint.sendto(frame, addr)
