"""
ULID generation and timestamp utilities (stdlib-only).

Timestamps are persisted as fixed-width UTC strings so that lexical order
equals chronological order on SQLite and the same literal casts cleanly to
``TIMESTAMP`` on PostgreSQL.

Features:
    - **generate_ulid():** Time-sortable run identifiers
    - **utc_now():** Timezone-aware UTC datetime
    - **to_db_timestamp():** Fixed-width ``YYYY-MM-DD HH:MM:SS.ffffff``
    - **parse_source_datetime():** Lenient parser for upstream date formats
      (ISO-8601 with ``Z``, ``Y-m-d H:i:s``, ``d.m.Y H:i:s``, ``d.m.Y``)

Tags:
    timestamps, ulid, utc, datetime, common-sync, stdlib-only
"""

import random
import time
from datetime import UTC, datetime

DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
EVENT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_SOURCE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
    "%Y-%m-%d",
)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def generate_ulid() -> str:
    """
    Generate a ULID-like identifier.

    Format: 26 characters, base32 encoded, time-sortable.
    """
    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = _encode_base32(timestamp_ms, 10)
    random_part = "".join(random.choices(_ENCODING, k=16))
    return timestamp_chars + random_part


def to_db_timestamp(dt: datetime | None) -> str | None:
    """Render ``dt`` as a naive-UTC fixed-width string for storage."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt.strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def parse_source_datetime(value: object) -> datetime | None:
    """
    Parse a date/time value coming from an upstream system.

    Returns ``None`` for empty values, placeholder dates such as
    ``00.00.0000 00:00:00`` and anything unparsable. Naive results are
    returned as-is (upstream systems report local wall-clock time).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text or text.startswith("00.00.0000") or text.startswith("0000-00-00"):
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _SOURCE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_event_timestamp(dt: datetime | None) -> str | None:
    """Render an event time with second precision (``Y-m-d H:i:s``)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt.strftime(EVENT_TIMESTAMP_FORMAT)


# ULID base32 alphabet (Crockford's)
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))
