"""Custom exception classes for profile synchronization."""


class SyncError(Exception):
    """
    Base exception class for all synchronization errors.
    """
    pass


class CodecError(SyncError):
    """
    Base class for wire codec failures. Always recoverable.
    """
    pass


class SerializerUnavailableError(CodecError):
    """
    Raised when no serialization or compression backend is configured.
    """
    pass


class SerializationError(CodecError):
    """
    Raised when structured serialization fails or produces no bytes.
    """
    pass


class CompressionError(CodecError):
    """
    Raised when compression fails or produces an empty result.
    """
    pass


class SafeEncodingError(CodecError):
    """
    Raised when the transport-safe encoding step fails or is empty.
    """
    pass


class EmptyMessageError(CodecError):
    """
    Raised when decode is called with empty or missing input.
    """
    pass


class TruncatedMessageError(CodecError):
    """
    Raised when a wire message is shorter than the envelope header.
    """
    pass


class UnsupportedVersionError(CodecError):
    """
    Raised when the envelope version byte does not match ours.
    """
    pass


class SafeDecodingError(CodecError):
    """
    Raised when the transport-safe payload cannot be decoded.
    """
    pass


class DecompressionError(CodecError):
    """
    Raised when a payload flagged as compressed fails to decompress.
    """
    pass


class DeserializationError(CodecError):
    """
    Raised when the serialized payload cannot be turned back into a value.
    """
    pass


class TransportError(SyncError):
    """
    Base class for transport refusals. The caller may retry later.
    """
    pass


class TransportUnavailableError(TransportError):
    """
    Raised when the transport is closed or messaging is in lockdown.
    """
    pass


class MessageTooLargeError(TransportError):
    """
    Raised when a message exceeds the per-message size ceiling.
    """
    pass


class TargetRequiredError(TransportError):
    """
    Raised when a directed send has no target.
    """
    pass


class TargetOfflineError(TransportError):
    """
    Raised when the whisper target cannot be reached.
    """
    pass


class NotInGuildError(TransportError):
    """
    Raised when a guild broadcast is attempted outside a guild.
    """
    pass
