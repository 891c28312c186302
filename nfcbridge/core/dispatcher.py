"""Command dispatcher shared by the native-messaging host and API callers."""

from __future__ import annotations

import itertools
import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from jsonschema import ValidationError

from nfcbridge import __version__
from nfcbridge.core.config_loader import load_schema_validator
from nfcbridge.core.errors import CommandParseError, NfcBridgeError, ReaderError, ReaderSelectionError
from nfcbridge.core.model import IDLE, ListenerState, Listening, Reader, WatchEvent, WatchSettings
from nfcbridge.core.watch import CardWatchLoop
from nfcbridge.readers.base import ReaderAccess

NO_READERS_MESSAGE = "No readers detected. Please connect an NFC reader."
NO_READERS_AVAILABLE = "No readers available. Please connect an NFC reader."
# Client-supplied text quoted back in error responses is cut to this many characters.
ECHO_LIMIT = 64
LOGGER = logging.getLogger(__name__)

MessageSink = Callable[[dict[str, Any]], None]


def error_response(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


def _clip(text: str) -> str:
    return text if len(text) <= ECHO_LIMIT else text[:ECHO_LIMIT] + "..."


class CommandDispatcher:
    def __init__(
        self,
        access: ReaderAccess,
        sink: MessageSink,
        *,
        settings: WatchSettings | None = None,
    ) -> None:
        self.access = access
        self.settings = settings or WatchSettings()
        self._sink = sink
        self._state: ListenerState = IDLE
        self._state_lock = threading.Lock()
        self._relay_lock = threading.Lock()
        self._finished: set[int] = set()
        self._generations = itertools.count(1)
        self._validator = load_schema_validator("command.schema.json")
        self._handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "get-version": lambda _: self.get_version(),
            "list-readers": lambda _: self.list_readers(),
            "start-listening": lambda cmd: self.start_listening(int(cmd["readerIndex"])),
            "stop-listening": lambda _: self.stop_listening(),
            "get-status": lambda _: self.get_status(),
        }

    @property
    def state(self) -> ListenerState:
        self._reap_finished()
        return self._state

    def is_listening(self) -> bool:
        return self.state.listening

    def handle(self, raw: str) -> dict[str, Any]:
        """Turn one inbound command into exactly one response message."""
        self._reap_finished()
        try:
            command = self.parse(raw)
        except CommandParseError as exc:
            return error_response(f"Error processing command: {_clip(str(exc))}")

        action = command["action"]
        handler = self._handlers.get(action)
        if handler is None:
            return error_response(f"Unknown action: {_clip(action)}")

        try:
            return handler(command)
        except NfcBridgeError as exc:
            return error_response(_clip(str(exc)))
        except Exception as exc:
            LOGGER.exception("Unhandled failure while processing '%s'", action)
            return error_response(f"Error processing command: {_clip(str(exc))}")

    def parse(self, raw: str) -> dict[str, Any]:
        try:
            command = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CommandParseError(f"invalid JSON ({exc.msg})") from exc
        except (ValueError, RecursionError) as exc:
            # Oversized integer literals and nesting deeper than the decoder allows.
            raise CommandParseError(f"invalid JSON ({_clip(str(exc))})") from exc
        try:
            self._validator.validate(command)
        except ValidationError as exc:
            path = ".".join(str(p) for p in exc.path)
            where = f"{path}: " if path else ""
            raise CommandParseError(f"{where}{exc.message}") from exc
        except RecursionError as exc:
            raise CommandParseError("command is nested too deeply") from exc
        return command

    def get_version(self) -> dict[str, Any]:
        return {"success": True, "version": __version__}

    def list_readers(self) -> dict[str, Any]:
        try:
            readers = self.access.list_readers()
        except ReaderError as exc:
            LOGGER.info("Reader enumeration failed: %s", exc)
            readers = []

        response: dict[str, Any] = {"success": True, "readers": list(readers), "count": len(readers)}
        if not readers:
            response["message"] = NO_READERS_MESSAGE
        return response

    def start_listening(self, reader_index: int) -> dict[str, Any]:
        self._stop_current()

        try:
            names = self.access.list_readers()
        except ReaderError as exc:
            return error_response(f"Failed to start listening: {exc}")
        try:
            reader = select_reader(names, reader_index)
        except ReaderSelectionError as exc:
            return error_response(str(exc))

        generation = next(self._generations)
        loop = CardWatchLoop(
            self.access,
            reader,
            generation,
            self._relay,
            on_finished=self._mark_finished,
            settings=self.settings,
        )
        with self._state_lock:
            self._state = Listening(reader=reader, generation=generation, loop=loop)
        loop.start()
        LOGGER.info("Listening on reader %d (%s), generation %d", reader.index, reader.name, generation)

        return {
            "success": True,
            "message": f"Started listening on reader: {reader.name}",
            "readerIndex": reader.index,
            "readerName": reader.name,
        }

    def stop_listening(self) -> dict[str, Any]:
        self._stop_current()
        return {"success": True, "message": "Stopped listening"}

    def get_status(self) -> dict[str, Any]:
        state = self.state
        card_present = False
        if isinstance(state, Listening):
            try:
                card_present = bool(self.access.is_present(state.reader.name))
            except Exception as exc:
                LOGGER.debug("Presence check failed: %s", exc)
        return {"success": True, "listening": state.listening, "cardPresent": card_present}

    def close(self) -> None:
        self._stop_current()

    def _stop_current(self) -> None:
        with self._state_lock:
            state = self._state
            self._state = IDLE
        if isinstance(state, Listening):
            state.loop.stop(self.settings.stop_timeout_s)
            LOGGER.info("Stopped listening on generation %d", state.generation)

    def _mark_finished(self, generation: int) -> None:
        with self._state_lock:
            self._finished.add(generation)

    def _reap_finished(self) -> None:
        with self._state_lock:
            finished, self._finished = self._finished, set()
            state = self._state
            if not isinstance(state, Listening) or state.generation not in finished:
                return
            self._state = IDLE
        LOGGER.info("Watch loop %d gave up; listener is idle", state.generation)
        state.loop.stop(self.settings.stop_timeout_s)

    def _is_current(self, generation: int) -> bool:
        with self._state_lock:
            state = self._state
        return isinstance(state, Listening) and state.generation == generation

    def _relay(self, event: WatchEvent) -> None:
        # The sink may block on a slow reader of the output stream, so it is
        # called without holding the state lock.
        with self._relay_lock:
            if not self._is_current(event.generation):
                LOGGER.debug("Dropping event from stale generation %d", event.generation)
                return
            try:
                self._sink(event.to_message())
            except (OSError, ValueError) as exc:
                LOGGER.warning("Could not deliver %s event: %s", type(event).__name__, exc)


def select_reader(names: list[str], index: int) -> Reader:
    if not names:
        raise ReaderSelectionError(NO_READERS_AVAILABLE)
    if index < 0 or index >= len(names):
        raise ReaderSelectionError(f"Invalid reader index: {index}")
    return Reader(index=index, name=names[index])
