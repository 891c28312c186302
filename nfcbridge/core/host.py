"""Native-messaging process loop."""

from __future__ import annotations

import logging
from typing import Any, BinaryIO

from nfcbridge.core.dispatcher import CommandDispatcher, error_response
from nfcbridge.core.errors import InvalidLengthError, PayloadDecodeError
from nfcbridge.core.framing import FrameWriter, read_frame
from nfcbridge.core.model import WatchSettings
from nfcbridge.readers.base import ReaderAccess

RESPONSE_TOO_LARGE = "Response too large to send"
LOGGER = logging.getLogger(__name__)


class BridgeHost:
    def __init__(self, dispatcher: CommandDispatcher, input_stream: BinaryIO, writer: FrameWriter) -> None:
        self.dispatcher = dispatcher
        self._input = input_stream
        self._writer = writer

    def run(self) -> None:
        """Serve commands until the input stream ends.

        Framing errors on the input propagate; the listener is stopped either way.
        """
        LOGGER.debug("Native messaging host started")
        try:
            while True:
                try:
                    message = read_frame(self._input)
                except PayloadDecodeError as exc:
                    self._send(error_response(f"Error processing command: {exc}"))
                    continue
                if message is None:
                    break
                LOGGER.debug("Received frame: %s", message)
                self._send(self.dispatcher.handle(message))
        finally:
            self.dispatcher.close()
            LOGGER.debug("Native messaging host stopped")

    def _send(self, response: dict[str, Any]) -> None:
        try:
            self._writer.send(response)
        except InvalidLengthError as exc:
            LOGGER.warning("Replacing response that could not be framed: %s", exc)
            self._writer.send(error_response(RESPONSE_TOO_LARGE))


def serve(
    access: ReaderAccess,
    input_stream: BinaryIO,
    output_stream: BinaryIO,
    *,
    settings: WatchSettings | None = None,
) -> None:
    writer = FrameWriter(output_stream)
    dispatcher = CommandDispatcher(access, writer.send, settings=settings)
    BridgeHost(dispatcher, input_stream, writer).run()
