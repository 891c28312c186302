"""Stable public API for embedding nfcbridge.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, BinaryIO

from nfcbridge.core.config_loader import load_settings
from nfcbridge.core.dispatcher import CommandDispatcher, MessageSink
from nfcbridge.core.errors import (
    CardReadError,
    CommandParseError,
    ConfigLoadError,
    ConfigValidationError,
    FramingError,
    IncompleteHeaderError,
    InvalidLengthError,
    NfcBridgeError,
    PayloadDecodeError,
    ReaderConnectError,
    ReaderError,
    ReaderNotReadyError,
    ReaderSelectionError,
    ReaderUnavailableError,
    ReadFailure,
    UnexpectedEndError,
)
from nfcbridge.core.framing import FrameWriter, encode_frame, read_frame
from nfcbridge.core.host import BridgeHost
from nfcbridge.core.model import CardDetectedEvent, ErrorEvent, Reader, WatchSettings
from nfcbridge.core.uid import uid_type
from nfcbridge.readers.base import ReaderAccess

__all__ = [
    "NfcBridgeError",
    "ConfigLoadError",
    "ConfigValidationError",
    "FramingError",
    "IncompleteHeaderError",
    "InvalidLengthError",
    "UnexpectedEndError",
    "CommandParseError",
    "PayloadDecodeError",
    "ReaderSelectionError",
    "ReaderError",
    "ReaderNotReadyError",
    "CardReadError",
    "ReaderConnectError",
    "ReaderUnavailableError",
    "ReadFailure",
    "CardDetectedEvent",
    "ErrorEvent",
    "Reader",
    "ReaderAccess",
    "WatchSettings",
    "FrameWriter",
    "encode_frame",
    "read_frame",
    "uid_type",
    "Bridge",
]


def _default_access() -> ReaderAccess:
    from nfcbridge.readers.pcsc import PCSCReaderAccess

    return PCSCReaderAccess()


class Bridge:
    """Public entry point for driving card readers through the bridge protocol.

    A `Bridge` wraps reader access, settings loading and the command
    dispatcher behind one object. `handle` answers a single JSON command;
    `serve` runs the framed request/event loop over a pair of byte streams
    with the same dispatcher, so listener state is shared between the two.
    """

    def __init__(
        self,
        *,
        access: ReaderAccess | None = None,
        settings: WatchSettings | None = None,
        config_path: Path | None = None,
        sink: MessageSink | None = None,
    ) -> None:
        self.access = access or _default_access()
        self.settings = settings or load_settings(config_path).settings
        self._sink = sink or _discard
        self._dispatcher = CommandDispatcher(self.access, self._emit, settings=self.settings)

    def list_readers(self) -> list[Reader]:
        return [Reader(index=i, name=name) for i, name in enumerate(self.access.list_readers())]

    def handle(self, command: str) -> dict[str, Any]:
        return self._dispatcher.handle(command)

    def is_listening(self) -> bool:
        return self._dispatcher.is_listening()

    def close(self) -> None:
        self._dispatcher.close()

    def serve(self, input_stream: BinaryIO, output_stream: BinaryIO) -> None:
        """Serve framed commands until ``input_stream`` ends.

        Watch-loop events go to ``output_stream`` while serving. The listener
        is stopped when serving ends.
        """
        writer = FrameWriter(output_stream)
        previous, self._sink = self._sink, writer.send
        try:
            BridgeHost(self._dispatcher, input_stream, writer).run()
        finally:
            self._sink = previous

    def _emit(self, message: dict[str, Any]) -> None:
        self._sink(message)


def _discard(message: dict[str, Any]) -> None:
    return None
