"""
Wire codec for sync messages.

Wire format:
    [version: 1 byte][flags: 1 byte][payload: base64(msgpack, optionally deflated)]

Serialization preserves scalar types. Payloads whose serialized size exceeds
COMPRESSION_THRESHOLD are deflated, and the compressed form is kept only when
it is smaller. The base64 stage is always applied so the payload survives
transports that mangle arbitrary bytes.
"""

import base64
import binascii
import zlib
from typing import Any, Callable, Optional

import msgpack

from common.constants import COMPRESSION_THRESHOLD, FLAG_COMPRESSED, PROTOCOL_VERSION
from common.exceptions import (
    CodecError,
    CompressionError,
    DecompressionError,
    DeserializationError,
    EmptyMessageError,
    SafeDecodingError,
    SafeEncodingError,
    SerializationError,
    SerializerUnavailableError,
    TruncatedMessageError,
    UnsupportedVersionError,
)

HEADER_SIZE = 2


def _pack(value: Any) -> bytes:
    return msgpack.packb(value, use_bin_type=True)


def _unpack(data: bytes) -> Any:
    return msgpack.unpackb(data, raw=False, strict_map_key=False)


class MessageCodec:
    """
    Encodes structured values into transport-safe envelopes and back.

    Each stage is a plain callable so a backend can be swapped or removed;
    a missing serializer or compressor is reported as a typed failure
    instead of raising AttributeError deep inside the pipeline.
    """

    def __init__(
        self,
        packer: Optional[Callable[[Any], bytes]] = _pack,
        unpacker: Optional[Callable[[bytes], Any]] = _unpack,
        compressor: Optional[Callable[[bytes], bytes]] = zlib.compress,
        decompressor: Optional[Callable[[bytes], bytes]] = zlib.decompress,
        version: int = PROTOCOL_VERSION,
        compression_threshold: int = COMPRESSION_THRESHOLD,
    ):
        self.packer = packer
        self.unpacker = unpacker
        self.compressor = compressor
        self.decompressor = decompressor
        self.version = version
        self.compression_threshold = compression_threshold

    def encode(self, value: Any) -> bytes:
        """
        Encode a value into a wire envelope.

        Args:
            value: Any msgpack-representable value (dict, list, str, int, ...)

        Returns:
            Envelope bytes: version byte, flags byte, base64 payload

        Raises:
            CodecError: One of its subclasses, naming the failing stage
        """
        if self.packer is None:
            raise SerializerUnavailableError("Serializer not available")

        try:
            serialized = self.packer(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise SerializationError(f"Serialization failed: {e}") from e
        if not serialized:
            raise SerializationError("Serialization produced no data")

        flags = 0
        payload = serialized

        if len(serialized) > self.compression_threshold:
            if self.compressor is None:
                raise SerializerUnavailableError("Compressor not available")
            try:
                compressed = self.compressor(serialized)
            except zlib.error as e:
                raise CompressionError(f"Compression failed: {e}") from e
            if not compressed:
                raise CompressionError("Compression produced no data")
            if len(compressed) < len(serialized):
                payload = compressed
                flags |= FLAG_COMPRESSED

        safe = base64.b64encode(payload)
        if not safe:
            raise SafeEncodingError("Safe encoding produced no data")

        return bytes([self.version, flags]) + safe

    def decode(self, wire: Optional[bytes]) -> Any:
        """
        Decode a wire envelope back into a value.

        Args:
            wire: Envelope bytes as produced by encode()

        Returns:
            The decoded value

        Raises:
            CodecError: One of its subclasses, naming the failing stage
        """
        if self.unpacker is None:
            raise SerializerUnavailableError("Deserializer not available")
        if not wire:
            raise EmptyMessageError("Empty message")
        if len(wire) < HEADER_SIZE:
            raise TruncatedMessageError(
                f"Message too short ({len(wire)} bytes, minimum {HEADER_SIZE})"
            )

        version = wire[0]
        flags = wire[1]
        if version != self.version:
            raise UnsupportedVersionError(
                f"Unsupported protocol version {version} (expected {self.version})"
            )

        try:
            payload = base64.b64decode(wire[HEADER_SIZE:], validate=True)
        except (binascii.Error, ValueError) as e:
            raise SafeDecodingError(f"Safe decoding failed: {e}") from e
        if not payload:
            raise SafeDecodingError("Safe decoding produced no data")

        serialized = payload
        if flags & FLAG_COMPRESSED:
            if self.decompressor is None:
                raise SerializerUnavailableError("Decompressor not available")
            try:
                serialized = self.decompressor(payload)
            except zlib.error as e:
                raise DecompressionError(f"Decompression failed: {e}") from e
            if not serialized:
                raise DecompressionError("Decompression produced no data")

        try:
            return self.unpacker(serialized)
        except (msgpack.exceptions.UnpackException, msgpack.exceptions.ExtraData,
                ValueError, TypeError) as e:
            raise DeserializationError(f"Deserialization failed: {e}") from e

    def estimate_size(self, value: Any) -> Optional[int]:
        """
        Encode a value and return the envelope length.

        Returns:
            Size in bytes, or None if the value cannot be encoded
        """
        try:
            return len(self.encode(value))
        except CodecError:
            return None

    def get_stats(self) -> dict:
        return {
            "protocol_version": self.version,
            "compression_threshold": self.compression_threshold,
            "features": {
                "serializer": self.packer is not None and self.unpacker is not None,
                "compression": self.compressor is not None and self.decompressor is not None,
            },
        }


_default_codec = MessageCodec()


def encode(value: Any) -> bytes:
    """Encode with the default codec."""
    return _default_codec.encode(value)


def decode(wire: Optional[bytes]) -> Any:
    """Decode with the default codec."""
    return _default_codec.decode(wire)


def estimate_size(value: Any) -> Optional[int]:
    """Envelope size of a value under the default codec, or None."""
    return _default_codec.estimate_size(value)


def get_stats() -> dict:
    return _default_codec.get_stats()
