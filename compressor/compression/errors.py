"""Typed encoder failures."""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories shared by every encoder."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    INVALID_SOURCE = "invalid_source"
    ENCODE_FAILED = "encode_failed"


class EncodeError(Exception):
    """Base class for encoder failures.

    Attributes:
        format_name: Format of the encoder that failed
        kind: Failure category
    """

    kind: ErrorKind = ErrorKind.ENCODE_FAILED

    def __init__(self, format_name: str, message: str = ""):
        self.format_name = format_name
        super().__init__(message or f"{format_name}: {self.kind.value}")


class UnsupportedFormatError(EncodeError):
    """The runtime has no encoder for this format."""

    kind = ErrorKind.UNSUPPORTED_FORMAT


class InvalidSourceError(EncodeError):
    """The source image has no readable pixel data."""

    kind = ErrorKind.INVALID_SOURCE


class EncodeFailedError(EncodeError):
    """The encoder accepted the input but produced no valid output."""

    kind = ErrorKind.ENCODE_FAILED
