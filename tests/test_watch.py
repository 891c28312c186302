from __future__ import annotations

import time

from nfcbridge.core.errors import CardReadError, ReaderConnectError, ReaderNotReadyError, ReadFailure
from nfcbridge.core.model import CardDetectedEvent, ErrorEvent, Reader, WatchSettings
from nfcbridge.core.watch import CardWatchLoop

FAST = WatchSettings(
    presence_timeout_s=0.01,
    idle_delay_s=0.005,
    settle_delay_s=0.0,
    retry_delay_s=0.0,
    absence_poll_s=0.01,
    stop_timeout_s=1.0,
)
READER = Reader(index=0, name="ACR122U")


class ScriptedAccess:
    """A card is present while scripted read results remain."""

    def __init__(self, reads: list[str | Exception]) -> None:
        self.reads = list(reads)
        self.read_calls = 0
        self.absence_calls = 0

    def list_readers(self) -> list[str]:
        return [READER.name]

    def wait_for_presence(self, reader: str, timeout_s: float) -> bool:
        if self.reads:
            return True
        time.sleep(0.002)
        return False

    def wait_for_absence(self, reader: str, timeout_s: float) -> bool:
        self.absence_calls += 1
        return True

    def is_present(self, reader: str) -> bool:
        return bool(self.reads)

    def read_uid(self, reader: str) -> str:
        self.read_calls += 1
        result = self.reads.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def _loop(access: ScriptedAccess, events: list, finished: list | None = None) -> CardWatchLoop:
    return CardWatchLoop(
        access,
        READER,
        7,
        events.append,
        on_finished=(finished.append if finished is not None else lambda _: None),
        settings=FAST,
    )


def test_card_detected_then_waits_for_removal() -> None:
    access = ScriptedAccess(["04A1B2C3"])
    events: list = []
    loop = _loop(access, events)
    loop.start()
    try:
        assert _wait_until(lambda: access.absence_calls > 0)
    finally:
        assert loop.stop() is True

    assert events == [CardDetectedEvent(generation=7, uid="04A1B2C3", uid_type="Single size UID (4 bytes)")]
    assert loop.consecutive_errors == 0


def test_not_ready_is_retried_without_error_event() -> None:
    access = ScriptedAccess([ReaderNotReadyError("moved"), ReaderNotReadyError("moved"), "04112233445566"])
    events: list = []
    loop = _loop(access, events)
    loop.start()
    try:
        assert _wait_until(lambda: len(events) == 1)
    finally:
        loop.stop()

    assert access.read_calls == 3
    assert events[0].uid_type == "Double size UID (7 bytes)"


def test_other_failures_are_not_retried() -> None:
    access = ScriptedAccess([CardReadError("Status: 6A81", code=ReadFailure.STATUS), "04A1B2C3"])
    events: list = []
    loop = _loop(access, events)
    loop.start()
    try:
        assert _wait_until(lambda: len(events) == 2)
    finally:
        loop.stop()

    assert isinstance(events[0], ErrorEvent)
    assert "6A81" in events[0].message
    assert isinstance(events[1], CardDetectedEvent)


def test_exhausted_not_ready_counts_as_one_failure() -> None:
    access = ScriptedAccess([ReaderNotReadyError("moved")] * 3 + ["04A1B2C3"])
    events: list = []
    loop = _loop(access, events)
    loop.start()
    try:
        assert _wait_until(lambda: len(events) == 2)
    finally:
        loop.stop()

    assert [type(e) for e in events] == [ErrorEvent, CardDetectedEvent]
    assert access.read_calls == 4


def test_three_consecutive_failures_emit_one_error_and_stop() -> None:
    access = ScriptedAccess([ReaderConnectError("reader unplugged")] * 5)
    events: list = []
    finished: list = []
    loop = _loop(access, events, finished)

    loop.run()

    assert [type(e) for e in events] == [ErrorEvent]
    assert events[0].message == "Error reading card: reader unplugged"
    assert loop.gave_up is True
    assert loop.consecutive_errors == 3
    assert finished == [7]
    assert access.read_calls == 3


def test_success_resets_error_counter() -> None:
    error = CardReadError("no data", code=ReadFailure.NO_DATA)
    access = ScriptedAccess([error, error, "04A1B2C3", error, error, "04A1B2C4"])
    events: list = []
    finished: list = []
    loop = _loop(access, events, finished)
    loop.start()
    try:
        assert _wait_until(lambda: not access.reads)
        assert _wait_until(lambda: len(events) == 4)
    finally:
        loop.stop()

    assert [type(e) for e in events] == [ErrorEvent, CardDetectedEvent, ErrorEvent, CardDetectedEvent]
    assert finished == []


def test_unexpected_exception_stops_loop_with_single_error() -> None:
    access = ScriptedAccess([RuntimeError("driver bug")])
    events: list = []
    finished: list = []
    loop = _loop(access, events, finished)

    loop.run()

    assert len(events) == 1
    assert "driver bug" in events[0].message
    assert finished == [7]


def test_stop_is_observed_within_a_poll_cycle() -> None:
    access = ScriptedAccess([])
    events: list = []
    loop = _loop(access, events)
    loop.start()
    assert loop.is_alive()

    started = time.monotonic()
    assert loop.stop(timeout_s=1.0) is True
    assert time.monotonic() - started < 0.5
    assert not loop.is_alive()
    assert events == []


def test_no_events_after_stop_requested() -> None:
    access = ScriptedAccess(["04A1B2C3"])
    events: list = []
    loop = _loop(access, events)
    loop.stop()
    loop.run()
    assert events == []
    assert access.read_calls == 0
