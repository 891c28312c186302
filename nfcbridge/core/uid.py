"""UID size classification for ISO 14443-A cards."""

from __future__ import annotations

_UID_TYPES = {
    4: "Single size UID (4 bytes)",
    7: "Double size UID (7 bytes)",
    10: "Triple size UID (10 bytes)",
}


def uid_type(uid: str) -> str:
    byte_count = len(uid) // 2
    return _UID_TYPES.get(byte_count, f"Unknown UID type ({byte_count} bytes)")
