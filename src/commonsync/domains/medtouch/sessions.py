"""
Action sessions rebuild.

Pages through the distinct users of ``actions_mt``, loads each batch of
users' actions ordered by (mt_user_id, activity_id, date_time), windows
every (user, activity) series with ``SessionWindower`` and replaces those
users' rows in ``action_sessions``. Re-running always yields the same
table contents.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from commonsync.core.dialect import Dialect, SQLiteDialect
from commonsync.core.protocols import Connection
from commonsync.core.schema import ACTION_SESSIONS, ACTIONS_MT
from commonsync.core.sessions import DEFAULT_GAP_SECONDS, SessionWindower, events_from_rows
from commonsync.core.timestamps import parse_source_datetime, to_event_timestamp
from commonsync.framework.pipelines.base import SyncPipeline, WriteResult
from commonsync.framework.pipelines.destination import DestinationWriter
from commonsync.framework.pipelines.orchestrator import RunConfig
from commonsync.framework.registry import register_pipeline
from commonsync.framework.sources.database import KeysetCursor

SESSION_COLUMNS = [
    "mt_user_id",
    "activity_id",
    "window_start",
    "window_end",
    "event_count",
    "duration_seconds",
    "satisfied",
]


def _parse_ts(value: Any):
    parsed = parse_source_datetime(value)
    if parsed is None:
        raise ValueError(f"unparsable action time {value!r}")
    return parsed


@register_pipeline("sessions")
class ActionSessionsPipeline(SyncPipeline):
    """Rebuild ``action_sessions`` from ``actions_mt``."""

    description = "Gap-based session windows over actions_mt"

    def __init__(self, conn: Connection, dialect: Dialect = SQLiteDialect()):
        self.conn = conn
        self.dialect = dialect
        self.windower = SessionWindower(DEFAULT_GAP_SECONDS)

    def open_cursor(self, config: RunConfig) -> KeysetCursor:
        self.windower = SessionWindower(config.session_gap_seconds)
        return KeysetCursor(
            "actions_mt_users",
            self.conn,
            self.dialect,
            ACTIONS_MT,
            "mt_user_id",
            page_size=config.batch_size,
        )

    def map(self, raw: dict[str, Any]) -> int:
        return int(raw["mt_user_id"])

    def natural_key(self, record: int) -> int:
        return record

    def destinations(self, records: Sequence[int]) -> list[str]:
        return [ACTION_SESSIONS]

    def write(self, writer: DestinationWriter, records: Sequence[int]) -> WriteResult:
        user_ids = list(records)
        writer.conn.execute(
            f"SELECT mt_user_id, activity_id, date_time, is_answer FROM {ACTIONS_MT} "
            f"WHERE {self.dialect.in_clause('mt_user_id', len(user_ids))} "
            f"ORDER BY mt_user_id, activity_id, date_time",
            tuple(user_ids),
        )
        rows = writer.conn.fetchall()
        windows = self.windower.window_many(events_from_rows(rows, _parse_ts))
        written = writer.replace(
            ACTION_SESSIONS,
            "mt_user_id",
            user_ids,
            SESSION_COLUMNS,
            (
                (
                    w.subject_id,
                    w.series_key,
                    to_event_timestamp(w.window_start),
                    to_event_timestamp(w.window_end),
                    w.event_count,
                    int(w.duration_seconds),
                    w.satisfied,
                )
                for w in windows
            ),
        )
        return WriteResult(written=written)
