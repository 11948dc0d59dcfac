"""
Registered users file import.

Reads the legacy site's ``;``-delimited export and back-fills
``registration_date`` into ``users_mt`` and ``common_database``. The export
has a header row; by default the registration date is the fifth column and
the email the eighth. Rows are rejected when:

- the date is the ``00.00.0000 00:00:00`` placeholder (``PLACEHOLDER_DATE``)
- the date cannot be parsed (``INVALID_DATE``)
- the email is empty or malformed (``MISSING_EMAIL`` / ``INVALID_EMAIL``)

Rows whose column count differs from the header never reach the mapper;
the file cursor skips and counts them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from commonsync.core.errors import RecordRejected
from commonsync.core.schema import COMMON_DATABASE, USERS_MT
from commonsync.domains.medtouch.common import event_time
from commonsync.domains.medtouch.contracts import COMMON_DATABASE_CONTRACT, USERS_MT_CONTRACT
from commonsync.domains.medtouch.emails import require_email
from commonsync.framework.pipelines.base import SyncPipeline, WriteResult
from commonsync.framework.pipelines.destination import DestinationWriter
from commonsync.framework.pipelines.orchestrator import RunConfig
from commonsync.framework.registry import register_pipeline
from commonsync.framework.sources.file import StreamedFileCursor

PLACEHOLDER_DATE = "00.00.0000 00:00:00"
DEFAULT_EMAIL_COLUMN = 7
DEFAULT_DATE_COLUMN = 4


@dataclass(frozen=True)
class RegisteredUser:
    email: str
    registration_date: str


def _column(raw: dict[str, Any], column: int | str) -> Any:
    if isinstance(column, int):
        values = list(raw.values())
        return values[column] if column < len(values) else None
    return raw.get(column)


@register_pipeline("registered-users")
class RegisteredUsersPipeline(SyncPipeline):
    """
    Args:
        path: CSV export to read
        delimiter: Field delimiter
        email_column: 0-based index or header name of the email column
        date_column: 0-based index or header name of the registration date
    """

    description = "Registered users export (;-CSV) into users_mt / common_database"

    def __init__(
        self,
        path: str | Path,
        *,
        delimiter: str = ";",
        email_column: int | str = DEFAULT_EMAIL_COLUMN,
        date_column: int | str = DEFAULT_DATE_COLUMN,
    ):
        self.path = Path(path)
        self.delimiter = delimiter
        self.email_column = email_column
        self.date_column = date_column

    def open_cursor(self, config: RunConfig) -> StreamedFileCursor:
        return StreamedFileCursor(
            "registered_users_file",
            self.path,
            delimiter=self.delimiter,
            page_size=config.batch_size,
        )

    def map(self, raw: dict[str, Any]) -> RegisteredUser:
        date_value = str(_column(raw, self.date_column) or "").strip()
        if date_value == PLACEHOLDER_DATE:
            raise RecordRejected("PLACEHOLDER_DATE", raw=raw)
        email = require_email(_column(raw, self.email_column), raw)
        return RegisteredUser(email=email, registration_date=event_time(date_value, "registration_date", raw))

    def natural_key(self, record: RegisteredUser) -> str:
        return record.email

    def destinations(self, records: Sequence[RegisteredUser]) -> list[str]:
        return [USERS_MT, COMMON_DATABASE]

    def write(self, writer: DestinationWriter, records: Sequence[RegisteredUser]) -> WriteResult:
        rows = [{"email": r.email, "registration_date": r.registration_date} for r in records]
        user_ids = writer.upsert(USERS_MT_CONTRACT, rows)
        writer.upsert(
            COMMON_DATABASE_CONTRACT,
            [{**row, "mt_user_id": user_ids.get((row["email"],))} for row in rows],
        )
        return WriteResult(written=len(rows))
