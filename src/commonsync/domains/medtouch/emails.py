"""
Email normalization and validation.

Emails are the natural key of every person table, so all pipelines pass
them through ``normalize_email`` (trim + lowercase) before dedup or lookup,
and reject records whose email fails ``is_valid_email``.

Validation is syntactic only: ``local@domain.tld`` with an ASCII local part
of at most 64 characters, dot-separated DNS labels and an alphabetic TLD.
"""

from __future__ import annotations

import re
from typing import Any

from commonsync.core.errors import RecordRejected

_LOCAL_RE = re.compile(r"^[a-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-z0-9!#$%&'*+/=?^_`{|}~-]+)*$")
_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_TLD_RE = re.compile(r"^[a-z]{2,63}$")

MAX_EMAIL_LENGTH = 254
MAX_LOCAL_LENGTH = 64


def normalize_email(value: Any) -> str | None:
    """Trim and lowercase; ``None`` for missing or blank values."""
    if value is None:
        return None
    email = str(value).strip().lower()
    return email or None


def is_valid_email(email: str | None) -> bool:
    if not email or len(email) > MAX_EMAIL_LENGTH or email.count("@") != 1:
        return False
    local, domain = email.split("@")
    if not local or len(local) > MAX_LOCAL_LENGTH or not _LOCAL_RE.match(local):
        return False
    labels = domain.split(".")
    if len(labels) < 2:
        return False
    if not all(_LABEL_RE.match(label) for label in labels[:-1]):
        return False
    return bool(_TLD_RE.match(labels[-1]))


def require_email(value: Any, raw: Any = None) -> str:
    """Normalized email or ``RecordRejected`` (``MISSING_EMAIL`` / ``INVALID_EMAIL``)."""
    email = normalize_email(value)
    if email is None:
        raise RecordRejected("MISSING_EMAIL", raw=raw)
    if not is_valid_email(email):
        raise RecordRejected("INVALID_EMAIL", repr(email), raw=raw)
    return email
