"""PC/SC reader access implementation using pyscard."""

from __future__ import annotations

import logging
import time
from types import SimpleNamespace
from typing import Any

from nfcbridge.core.errors import (
    CardReadError,
    ReaderConnectError,
    ReaderError,
    ReaderNotReadyError,
    ReaderUnavailableError,
    ReadFailure,
)

# GET DATA (UID) pseudo-APDU understood by PC/SC contactless readers such as the ACR122U.
GET_UID_APDU = [0xFF, 0xCA, 0x00, 0x00, 0x00]
SW_SUCCESS = 0x9000
SW_NOT_READY = 0x6300

_STATUS_DESCRIPTIONS = {
    0x6300: "Card verification failed or card removed during operation. Keep card on reader.",
    0x6400: "Card state unchanged (no data returned)",
    0x6A81: "Function not supported",
    0x6A82: "File or application not found",
    0x6A86: "Incorrect parameters P1-P2",
    0x6A88: "Referenced data not found",
    0x6B00: "Wrong parameters P1-P2",
    0x6D00: "Instruction not supported",
    0x6E00: "Class not supported",
    0x6F00: "No precise diagnosis (card internal error)",
    0x9000: "Success",
}

LOGGER = logging.getLogger(__name__)


def describe_status(sw: int) -> str:
    return _STATUS_DESCRIPTIONS.get(sw, "Unknown error")


def _load_pcsc() -> SimpleNamespace:
    try:
        from smartcard import Exceptions, System
        from smartcard.CardRequest import CardRequest
    except ImportError as exc:
        raise ReaderUnavailableError(
            "PC/SC access requires 'pyscard'. Install nfcbridge[pcsc] and retry."
        ) from exc
    return SimpleNamespace(system=System, exceptions=Exceptions, card_request=CardRequest)


def _classify_pcsc_failure(exc: Exception) -> ReadFailure:
    text = str(exc)
    if "SCARD_E_NO_SERVICE" in text or "SCARD_E_SERVICE_STOPPED" in text:
        return ReadFailure.NO_SERVICE
    if "SCARD_E_NO_READERS_AVAILABLE" in text or "SCARD_E_UNKNOWN_READER" in text:
        return ReadFailure.NO_READER
    return ReadFailure.CONNECT


class PCSCReaderAccess:
    def __init__(self, *, absence_poll_s: float = 0.1) -> None:
        self.absence_poll_s = absence_poll_s

    def _system_readers(self) -> list[Any]:
        pcsc = _load_pcsc()
        try:
            return list(pcsc.system.readers())
        except Exception as exc:
            code = _classify_pcsc_failure(exc)
            if code is ReadFailure.NO_READER:
                return []
            raise ReaderConnectError(f"Could not list PC/SC readers: {exc}", code=code) from exc

    def _find_reader(self, name: str) -> Any:
        for reader in self._system_readers():
            if str(reader) == name:
                return reader
        raise ReaderConnectError(f"Reader '{name}' is no longer connected", code=ReadFailure.NO_READER)

    def list_readers(self) -> list[str]:
        return [str(reader) for reader in self._system_readers()]

    def wait_for_presence(self, reader: str, timeout_s: float) -> bool:
        pcsc = _load_pcsc()
        target = self._find_reader(reader)
        request = pcsc.card_request(timeout=timeout_s, readers=[target], newcardonly=False)
        try:
            request.waitforcard()
        except pcsc.exceptions.CardRequestTimeoutException:
            return False
        except Exception as exc:
            raise ReaderConnectError(
                f"Waiting for card on {reader} failed: {exc}",
                code=_classify_pcsc_failure(exc),
            ) from exc
        return True

    def wait_for_absence(self, reader: str, timeout_s: float) -> bool:
        deadline = time.monotonic() + timeout_s
        while self.is_present(reader):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(self.absence_poll_s, remaining))
        return True

    def is_present(self, reader: str) -> bool:
        pcsc = _load_pcsc()
        connection = self._find_reader(reader).createConnection()
        try:
            connection.connect()
        except pcsc.exceptions.NoCardException:
            return False
        except pcsc.exceptions.CardConnectionException as exc:
            raise ReaderConnectError(f"Could not check {reader} for a card: {exc}") from exc
        _disconnect(connection)
        return True

    def read_uid(self, reader: str) -> str:
        pcsc = _load_pcsc()
        connection = self._find_reader(reader).createConnection()
        try:
            try:
                connection.connect()
            except pcsc.exceptions.NoCardException as exc:
                raise ReaderNotReadyError(f"Card left {reader} before it could be read") from exc
            except pcsc.exceptions.CardConnectionException as exc:
                raise ReaderConnectError(f"Could not connect to card on {reader}: {exc}") from exc

            try:
                data, sw1, sw2 = connection.transmit(GET_UID_APDU)
            except pcsc.exceptions.CardConnectionException as exc:
                raise ReaderNotReadyError(f"Card transaction interrupted on {reader}: {exc}") from exc

            sw = (sw1 << 8) | sw2
            if sw != SW_SUCCESS:
                message = f"Failed to read UID. Status: {sw:04X} - {describe_status(sw)}"
                if sw == SW_NOT_READY:
                    raise ReaderNotReadyError(message)
                raise CardReadError(message, code=ReadFailure.STATUS)
            if not data:
                raise CardReadError("No UID data returned from card", code=ReadFailure.NO_DATA)
            return bytes(data).hex().upper()
        except ReaderError:
            raise
        except Exception as exc:
            raise CardReadError(f"UID read failed on {reader}: {exc}") from exc
        finally:
            _disconnect(connection)


def _disconnect(connection: Any) -> None:
    try:
        connection.disconnect()
    except Exception as exc:
        LOGGER.debug("Ignoring disconnect failure: %s", exc)
