"""Helpers shared by the MedTouch CRM pipelines."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any

from commonsync.core.errors import RecordRejected
from commonsync.core.timestamps import parse_source_datetime, to_event_timestamp, utc_now

#: ``updated_after`` format expected by the CRM API (millisecond precision).
API_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S.000"


def updated_after_filter(updated_after: date | datetime | None) -> str:
    """Start of ``updated_after``'s day; defaults to the start of yesterday."""
    if updated_after is None:
        day = (utc_now() - timedelta(days=1)).date()
    elif isinstance(updated_after, datetime):
        day = updated_after.date()
    else:
        day = updated_after
    return datetime.combine(day, time.min).strftime(API_DATETIME_FORMAT)


def full_name(person: dict[str, Any]) -> str | None:
    """``last first middle`` with blanks dropped."""
    parts = [person.get("last_name"), person.get("first_name"), person.get("middle_name")]
    name = " ".join(str(p).strip() for p in parts if p and str(p).strip())
    return name or None


def event_time(value: Any, field: str, raw: Any = None) -> str:
    """Source date as ``Y-m-d H:i:s`` or ``RecordRejected("INVALID_DATE")``."""
    parsed = parse_source_datetime(value)
    if parsed is None:
        raise RecordRejected("INVALID_DATE", f"{field}={value!r}", raw=raw)
    return to_event_timestamp(parsed)


def optional_time(value: Any) -> str | None:
    return to_event_timestamp(parse_source_datetime(value))


def text(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def nested(raw: dict[str, Any], key: str) -> dict[str, Any]:
    """Sub-object ``raw[key]``; ``{}`` when absent, ``MALFORMED_RECORD`` when not an object."""
    value = raw.get(key)
    if not value:
        return {}
    if not isinstance(value, dict):
        raise RecordRejected("MALFORMED_RECORD", f"{key} is {type(value).__name__}, expected object", raw=raw)
    return value
