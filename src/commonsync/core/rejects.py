"""
Record-level reject tracking.

A reject is a source record that could not be mapped: malformed row,
missing or invalid email, reference to an unknown user. Rejects never
abort a run. ``RejectSink`` counts them per reason code for the run
summary and, when given a connection, also stores them in
``sync_rejects`` so operators can inspect what was skipped.

Architecture:
    ::

        mapper ──raise RecordRejected──► orchestrator
                                             │
                                             ▼
                                      RejectSink.write(Reject)
                                      ├── counts["INVALID_EMAIL"] += 1
                                      └── INSERT INTO sync_rejects (optional)

Storage (sync_rejects):
    ========= ============ ========== ============== ============== ==========
    run_id    pipeline     stage      reason_code    reason_detail  raw_json
    ========= ============ ========== ============== ============== ==========
    01HZ...   touches      MAP        INVALID_EMAIL  'bob@'         {...}
    ========= ============ ========== ============== ============== ==========

Guardrails:
    - Rows are appended, never updated or deleted
    - No transaction management; the sink commits its own inserts
    - Raw data is JSON-serialized with ``default=str``

Tags:
    reject, validation, audit-trail, data-quality, common-sync
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from typing import Any

from commonsync.core.dialect import Dialect, SQLiteDialect
from commonsync.core.protocols import Connection
from commonsync.core.schema import SYNC_REJECTS
from commonsync.core.timestamps import to_db_timestamp, utc_now


@dataclass
class Reject:
    """A rejected record.

    Attributes:
        stage: Where it was rejected (``READ``, ``MAP``, ``RESOLVE``)
        reason_code: Machine-readable code (``INVALID_EMAIL``)
        reason_detail: Human-readable explanation
        raw_data: The original record, for reproduction
    """

    stage: str
    reason_code: str
    reason_detail: str = ""
    raw_data: Any = None


class RejectSink:
    """Count rejects per reason and optionally persist them.

    Args:
        conn: Connection for ``sync_rejects`` inserts; ``None`` counts only
        pipeline: Pipeline name stored with each reject
        run_id: Run correlation id
        dialect: SQL dialect for placeholders
    """

    _COLUMNS = (
        "run_id",
        "pipeline",
        "stage",
        "reason_code",
        "reason_detail",
        "raw_json",
        "created_at",
    )

    def __init__(
        self,
        conn: Connection | None,
        pipeline: str,
        run_id: str,
        dialect: Dialect = SQLiteDialect(),
    ):
        self.conn = conn
        self.pipeline = pipeline
        self.run_id = run_id
        self.dialect = dialect
        self.by_reason: Counter[str] = Counter()

    @property
    def count(self) -> int:
        """Number of rejects recorded."""
        return sum(self.by_reason.values())

    def write(self, reject: Reject) -> None:
        self.by_reason[reject.reason_code] += 1
        if self.conn is None:
            return

        raw_json = json.dumps(reject.raw_data, default=str, ensure_ascii=False) if reject.raw_data else None
        values = (
            self.run_id,
            self.pipeline,
            reject.stage,
            reject.reason_code,
            reject.reason_detail,
            raw_json,
            to_db_timestamp(utc_now()),
        )
        placeholders = self.dialect.placeholders(len(self._COLUMNS))
        self.conn.execute(
            f"INSERT INTO {SYNC_REJECTS} ({', '.join(self._COLUMNS)}) VALUES ({placeholders})",
            values,
        )
        self.conn.commit()

    def write_batch(self, rejects: list[Reject]) -> int:
        """Record several rejects. Returns the number written."""
        for reject in rejects:
            self.write(reject)
        return len(rejects)
