"""Native-messaging frame codec.

Each message is a 4-byte little-endian length followed by that many bytes of
UTF-8 JSON. The same layout is used in both directions.
"""

from __future__ import annotations

import json
import logging
import struct
import threading
from typing import Any, BinaryIO

from nfcbridge.core.errors import (
    IncompleteHeaderError,
    InvalidLengthError,
    PayloadDecodeError,
    UnexpectedEndError,
)

MAX_FRAME_BYTES = 1024 * 1024
_HEADER = struct.Struct("<I")
LOGGER = logging.getLogger(__name__)


def encode_frame(payload: str) -> bytes:
    body = payload.encode("utf-8")
    if not 0 < len(body) <= MAX_FRAME_BYTES:
        raise InvalidLengthError(f"Invalid message length: {len(body)}")
    return _HEADER.pack(len(body)) + body


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(stream: BinaryIO) -> str | None:
    """Read one frame from ``stream``.

    Returns ``None`` when the stream ends cleanly before a new frame starts.
    """
    header = _read_exact(stream, _HEADER.size)
    if not header:
        return None
    if len(header) < _HEADER.size:
        raise IncompleteHeaderError(
            f"Incomplete length header ({len(header)} of {_HEADER.size} bytes)"
        )

    (length,) = _HEADER.unpack(header)
    if not 0 < length <= MAX_FRAME_BYTES:
        raise InvalidLengthError(f"Invalid message length: {length}")

    body = _read_exact(stream, length)
    if len(body) != length:
        raise UnexpectedEndError(
            f"Incomplete message body ({len(body)} of {length} bytes)"
        )

    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PayloadDecodeError(f"Message is not valid UTF-8: {exc}") from exc


class FrameWriter:
    """Single-writer sink shared by command responses and watch-loop events."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def send(self, message: dict[str, Any]) -> None:
        frame = encode_frame(json.dumps(message, separators=(",", ":")))
        with self._lock:
            self._stream.write(frame)
            self._stream.flush()
        LOGGER.debug("Sent frame: %s", message)
