"""Low-level message building and sending with pre-flight checks."""

from typing import Optional

from common.codec import MessageCodec
from common.constants import ADDON_PREFIX, MESSAGE_SIZE_LIMIT, MESSAGE_SIZE_WARNING_RATIO
from common.exceptions import CodecError, MessageTooLargeError, TransportError
from common.logging_config import get_logger
from peer.schemas.messages import WireModel
from peer.transport import Channel, Transport

logger = get_logger(__name__)


class Messenger:
    """
    Encodes payload models and hands them to the transport.

    Refusals (lockdown, oversize, throttling, missing target) are normal
    and reported as False so callers can retry on the next round.
    """

    def __init__(
        self,
        transport: Transport,
        codec: Optional[MessageCodec] = None,
        prefix: str = ADDON_PREFIX,
        size_limit: int = MESSAGE_SIZE_LIMIT,
    ):
        self.transport = transport
        self.codec = codec or MessageCodec()
        self.prefix = prefix
        self.size_limit = size_limit
        self.sent_count = 0
        self.refused_count = 0

    def build_message(self, model: WireModel, warn_oversize: bool = True) -> Optional[bytes]:
        """
        Encode a payload model into a wire message.

        Args:
            model: Payload to encode; its type tag is added automatically
            warn_oversize: Log an oversize result at WARNING; callers that
                shrink and retry pass False to log it at DEBUG

        Returns:
            Encoded message, or None if encoding failed
        """
        try:
            encoded = self.codec.encode(model.to_wire())
        except CodecError as e:
            logger.warning(f"Failed to encode message [type={model.MESSAGE_TYPE}]: {e}")
            return None

        size = len(encoded)
        if size > self.size_limit:
            log = logger.warning if warn_oversize else logger.debug
            log(f"Built message exceeds size limit [size={size}, limit={self.size_limit}]")
        elif size > self.size_limit * MESSAGE_SIZE_WARNING_RATIO:
            logger.debug(f"Built message close to size limit [size={size}, limit={self.size_limit}]")
        return encoded

    def estimate_size(self, model: WireModel) -> Optional[int]:
        return self.codec.estimate_size(model.to_wire())

    def send_message(self, message: bytes, channel: Channel, target: Optional[str] = None) -> bool:
        """
        Send an already encoded message.

        Args:
            message: Encoded message
            channel: Channel to send on
            target: Sender token of the recipient for whispers

        Returns:
            True if the transport accepted the message
        """
        if self.transport.in_lockdown():
            logger.debug("Skipping send, messaging lockdown active")
            self.refused_count += 1
            return False

        if len(message) > self.size_limit:
            logger.warning(
                f"Message NOT sent, size exceeds limit [size={len(message)}, limit={self.size_limit}]"
            )
            self.refused_count += 1
            return False

        try:
            self.transport.send(self.prefix, message, channel, target)
        except MessageTooLargeError as e:
            logger.warning(f"Transport rejected message: {e}")
            self.refused_count += 1
            return False
        except TransportError as e:
            logger.debug(f"Transport refused message [channel={channel.value}, target={target}]: {e}")
            self.refused_count += 1
            return False

        self.sent_count += 1
        return True

    def send(self, model: WireModel, channel: Channel, target: Optional[str] = None) -> bool:
        """Build and send a payload model in one step."""
        message = self.build_message(model)
        if message is None:
            return False
        return self.send_message(message, channel, target)
