"""Domain-specific errors for nfcbridge."""

from __future__ import annotations

from enum import Enum


class NfcBridgeError(Exception):
    """Base error for nfcbridge."""


class ConfigValidationError(NfcBridgeError):
    """Raised when a settings file does not conform to schema or semantics."""


class ConfigLoadError(NfcBridgeError):
    """Raised when reading a settings file fails."""


class FramingError(NfcBridgeError):
    """Base error for a broken native-messaging stream."""


class IncompleteHeaderError(FramingError):
    """Raised when the stream ends inside a 4-byte length header."""


class InvalidLengthError(FramingError):
    """Raised when a frame declares a length outside the accepted range."""


class UnexpectedEndError(FramingError):
    """Raised when the stream ends before the declared payload length."""


class CommandParseError(NfcBridgeError):
    """Raised when an inbound command is malformed."""


class PayloadDecodeError(CommandParseError):
    """Raised when a complete frame does not hold valid UTF-8."""


class ReaderSelectionError(NfcBridgeError):
    """Raised when a reader index cannot be resolved to a connected reader."""


class ReadFailure(str, Enum):
    NOT_READY = "not-ready"
    STATUS = "status"
    NO_DATA = "no-data"
    CONNECT = "connect"
    NO_SERVICE = "no-service"
    NO_READER = "no-reader"
    UNAVAILABLE = "unavailable"


class ReaderError(NfcBridgeError):
    """Base reader error, tagged with the failure code reported by the reader layer."""

    code: ReadFailure = ReadFailure.STATUS

    def __init__(self, message: str, *, code: ReadFailure | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def transient(self) -> bool:
        return self.code is ReadFailure.NOT_READY


class ReaderNotReadyError(ReaderError):
    """Raised when the card was moved or not seated during a transaction."""

    code = ReadFailure.NOT_READY


class CardReadError(ReaderError):
    """Raised when a card answers with an error status or no UID."""


class ReaderConnectError(ReaderError):
    """Raised on PC/SC connect or reader lookup failures."""

    code = ReadFailure.CONNECT


class ReaderUnavailableError(ReaderError):
    """Raised when the PC/SC stack itself cannot be used."""

    code = ReadFailure.UNAVAILABLE
