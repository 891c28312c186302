"""Core data models used across the dispatcher, watch loop, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from nfcbridge.core.watch import CardWatchLoop


@dataclass(frozen=True)
class Reader:
    index: int
    name: str


@dataclass(frozen=True)
class WatchSettings:
    presence_timeout_s: float = 0.1
    idle_delay_s: float = 0.1
    settle_delay_s: float = 0.05
    read_attempts: int = 3
    retry_delay_s: float = 0.1
    max_consecutive_errors: int = 3
    absence_poll_s: float = 0.1
    stop_timeout_s: float = 1.0


@dataclass(frozen=True)
class CardDetectedEvent:
    generation: int
    uid: str
    uid_type: str

    def to_message(self) -> dict[str, Any]:
        return {"event": "card-detected", "uid": self.uid, "uidType": self.uid_type}


@dataclass(frozen=True)
class ErrorEvent:
    generation: int
    message: str

    def to_message(self) -> dict[str, Any]:
        return {"event": "error", "error": self.message}


WatchEvent = Union[CardDetectedEvent, ErrorEvent]


@dataclass(frozen=True)
class Idle:
    listening = False


@dataclass(frozen=True)
class Listening:
    reader: Reader
    generation: int
    loop: CardWatchLoop
    listening = True


ListenerState = Union[Idle, Listening]

IDLE = Idle()
