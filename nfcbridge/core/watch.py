"""Background card watch loop for a single reader."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from nfcbridge.core.errors import ReaderError
from nfcbridge.core.model import CardDetectedEvent, ErrorEvent, Reader, WatchEvent, WatchSettings
from nfcbridge.core.uid import uid_type
from nfcbridge.readers.base import ReaderAccess

LOGGER = logging.getLogger(__name__)

EventSink = Callable[[WatchEvent], None]
FinishedCallback = Callable[[int], None]


def _ignore_finished(generation: int) -> None:
    return None


class CardWatchLoop:
    """Polls one reader and reports each newly presented card once.

    The loop is stopped cooperatively: every wait happens on an internal
    stop event, so a stop request is observed within one poll cycle. Events
    carry the loop's generation so the owner can discard output from an
    instance it has already replaced.
    """

    def __init__(
        self,
        access: ReaderAccess,
        reader: Reader,
        generation: int,
        emit: EventSink,
        *,
        on_finished: FinishedCallback = _ignore_finished,
        settings: WatchSettings | None = None,
    ) -> None:
        self.access = access
        self.reader = reader
        self.generation = generation
        self.settings = settings or WatchSettings()
        self.consecutive_errors = 0
        self.gave_up = False
        self._emit = emit
        self._on_finished = on_finished
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("watch loop already started")
        self._thread = threading.Thread(
            target=self.run,
            name=f"card-watch-{self.generation}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout_s: float | None = None) -> bool:
        """Request the loop to stop and wait up to ``timeout_s`` for it.

        Returns True when the thread has exited (or was never started).
        """
        self._stop.set()
        if self._thread is None or self._thread is threading.current_thread():
            return True
        self._thread.join(self.settings.stop_timeout_s if timeout_s is None else timeout_s)
        finished = not self._thread.is_alive()
        if not finished:
            LOGGER.warning("Watch loop %d did not stop in time; abandoning it", self.generation)
        return finished

    def run(self) -> None:
        LOGGER.debug("Watch loop %d started on %s", self.generation, self.reader.name)
        try:
            while self.running:
                try:
                    self._poll_once()
                except ReaderError as exc:
                    if self._record_failure(exc):
                        break
                except Exception as exc:
                    LOGGER.exception("Watch loop %d crashed", self.generation)
                    self._publish(ErrorEvent(self.generation, f"Error reading card: {exc}"))
                    self._give_up()
                    break
        finally:
            LOGGER.debug("Watch loop %d exited", self.generation)

    def _poll_once(self) -> None:
        settings = self.settings
        if not self.access.wait_for_presence(self.reader.name, settings.presence_timeout_s):
            self.consecutive_errors = 0
            self._stop.wait(settings.idle_delay_s)
            return

        if self._stop.wait(settings.settle_delay_s):
            return

        uid = self._read_with_retry()
        if uid is None:
            return

        self.consecutive_errors = 0
        self._publish(CardDetectedEvent(self.generation, uid, uid_type(uid)))
        self._wait_for_removal()

    def _read_with_retry(self) -> str | None:
        attempts = max(1, self.settings.read_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return self.access.read_uid(self.reader.name)
            except ReaderError as exc:
                if not exc.transient or attempt == attempts:
                    raise
                LOGGER.debug("Card not ready (attempt %d/%d): %s", attempt, attempts, exc)
                if self._stop.wait(self.settings.retry_delay_s):
                    return None
        return None

    def _wait_for_removal(self) -> None:
        while self.running:
            if self.access.wait_for_absence(self.reader.name, self.settings.absence_poll_s):
                return

    def _record_failure(self, exc: ReaderError) -> bool:
        if not self.running:
            return True
        self.consecutive_errors += 1
        LOGGER.warning(
            "Reader failure %d on %s (%s): %s",
            self.consecutive_errors,
            self.reader.name,
            exc.code.value,
            exc,
        )
        if self.consecutive_errors == 1:
            self._publish(ErrorEvent(self.generation, f"Error reading card: {exc}"))
        if self.consecutive_errors >= self.settings.max_consecutive_errors:
            self._give_up()
            return True
        self._stop.wait(self.settings.idle_delay_s)
        return False

    def _give_up(self) -> None:
        self.gave_up = True
        self._stop.set()
        self._on_finished(self.generation)

    def _publish(self, event: WatchEvent) -> None:
        if self.running:
            self._emit(event)
