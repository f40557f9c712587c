from __future__ import annotations

import os
import time
import uuid
from datetime import datetime


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    UUIDv7 layout per draft:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def format_certificate_number(prefix: str, issued_at: datetime, record_id: str) -> str:
    """
    Human-facing certificate reference, e.g. ``LRN-20240110-9F3A61C2``.

    The suffix is taken from the random tail of the record's UUID so two
    certificates issued in the same millisecond still differ.
    """
    clean_prefix = (prefix or "").strip().upper() or "LRN"
    suffix = record_id.replace("-", "")[-8:].upper()
    return f"{clean_prefix}-{issued_at.strftime('%Y%m%d')}-{suffix}"
