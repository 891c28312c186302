"""Reader access interfaces."""

from __future__ import annotations

from typing import Protocol


class ReaderAccess(Protocol):
    def list_readers(self) -> list[str]:
        """Return connected reader names in enumeration order."""

    def wait_for_presence(self, reader: str, timeout_s: float) -> bool:
        """Block up to ``timeout_s`` for a card; return whether one is present."""

    def wait_for_absence(self, reader: str, timeout_s: float) -> bool:
        """Block up to ``timeout_s`` for card removal; return whether the reader is empty."""

    def is_present(self, reader: str) -> bool:
        """Check the reader once for a card."""

    def read_uid(self, reader: str) -> str:
        """Read the present card's UID as uppercase hex.

        Raises ``ReaderError``; ``ReadFailure.NOT_READY`` marks a retryable read.
        """
