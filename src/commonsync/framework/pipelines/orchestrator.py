"""
Sync orchestrator: cursor -> accumulator -> lock -> merge -> flush.

Manifesto:
    Every import job used to carry its own copy of the same loop: fetch a
    page, dedup into arrays, lock tables, upsert, clear, collect garbage.
    The orchestrator owns that loop once so pipelines only describe
    mapping and destination writes.

State machine:
    ::

        INIT ─► FETCHING ─► ACCUMULATING ─┬─► FETCHING  (batch not full)
                                          │
                                          └─► LOCK_WAIT ─► MERGING ─► FLUSHING ─┐
                   ▲                                                             │
                   └─────────────────────────────────────────────────────────────┘
        cursor exhausted + partial batch flushed ─► DONE
        lock timeout / page fetch error / write error ─► FAILED

Guarantees:
    - Record-level failures (``RecordRejected``, or a mapper tripping over a
      record of the wrong shape) are counted and skipped
    - Each batch is written in exactly one transaction while the locks of
      every table it touches are held; locks are taken in name order and
      released in reverse, on every exit path
    - On a fatal error the open transaction is rolled back, held locks are
      released, counters are kept on ``RunStats`` and the error re-raised
    - Nothing is retried; a re-run is safe because writes are idempotent

Tags:
    orchestrator, batch, state-machine, locking, common-sync
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from commonsync.core.batch import BatchAccumulator
from commonsync.core.dialect import Dialect, SQLiteDialect
from commonsync.core.errors import FlushError, PipelineError, RecordRejected, SyncError
from commonsync.core.locks import LockCoordinator
from commonsync.core.memory import apply_memory_limit, reclaim
from commonsync.core.protocols import Connection
from commonsync.core.rejects import Reject, RejectSink
from commonsync.core.settings import SyncSettings, get_settings
from commonsync.core.timestamps import generate_ulid, utc_now
from commonsync.framework.logging import bind_context, get_logger, log_step, set_context
from commonsync.framework.pipelines.base import SyncPipeline
from commonsync.framework.pipelines.destination import DestinationWriter, TableWriteStats

log = get_logger(__name__)

# Raised by a mapper reading a record of the wrong shape; the record is rejected.
MAPPING_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


class RunState(str, Enum):
    INIT = "init"
    FETCHING = "fetching"
    ACCUMULATING = "accumulating"
    LOCK_WAIT = "lock_wait"
    MERGING = "merging"
    FLUSHING = "flushing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunConfig:
    """
    Explicit per-run configuration.

    Built from ``SyncSettings`` and overridden by CLI flags; the
    orchestrator never reads settings itself.
    """

    batch_size: int = 1000
    page_size: int = 100
    request_delay: float = 1.0
    request_timeout: float = 60.0
    lock_poll_interval: float = 1.0
    lock_timeout: float = 300.0
    lock_max_hold: float = 600.0
    memory_limit_mb: int = 0
    session_gap_seconds: int = 600
    updated_after: date | datetime | None = None
    dry_run: bool = False
    persist_rejects: bool = True

    @classmethod
    def from_settings(cls, settings: SyncSettings | None = None, **overrides: Any) -> RunConfig:
        """Defaults from settings; ``None`` overrides are ignored."""
        s = settings or get_settings()
        values = {
            "batch_size": s.batch_size,
            "page_size": s.page_size,
            "request_delay": s.request_delay,
            "request_timeout": s.request_timeout,
            "lock_poll_interval": s.lock_poll_interval,
            "lock_timeout": s.lock_timeout,
            "lock_max_hold": s.lock_max_hold,
            "memory_limit_mb": s.memory_limit_mb,
            "session_gap_seconds": s.session_gap_seconds,
            "persist_rejects": s.persist_rejects,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class RunStats:
    """Progress counters, reported on success and failure alike."""

    run_id: str
    pipeline: str
    state: RunState = RunState.INIT
    pages: int = 0
    fetched: int = 0
    accepted: int = 0
    duplicates: int = 0
    rejected: int = 0
    malformed: int = 0
    batches: int = 0
    written: int = 0
    tables: dict[str, TableWriteStats] = field(default_factory=dict)
    rejects_by_reason: dict[str, int] = field(default_factory=dict)
    error: str | None = None
    dry_run: bool = False
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def skipped(self) -> int:
        return self.duplicates + self.rejected + self.malformed

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "state": self.state.value,
            "pages": self.pages,
            "fetched": self.fetched,
            "accepted": self.accepted,
            "duplicates": self.duplicates,
            "rejected": self.rejected,
            "malformed": self.malformed,
            "batches": self.batches,
            "written": self.written,
            "tables": {t: s.to_dict() for t, s in sorted(self.tables.items())},
            "rejects_by_reason": dict(self.rejects_by_reason),
            "error": self.error,
            "dry_run": self.dry_run,
            "duration_seconds": self.duration_seconds,
        }


class SyncOrchestrator:
    """
    Run one pipeline to completion.

    Args:
        pipeline: The import job
        conn: Data connection (batches are committed here)
        locks: Lock coordinator on its *own* connection
        config: Run configuration
        dialect: SQL dialect of ``conn``
        rejects: Reject sink; a counting-only sink is created when omitted
        run_id: Correlation id; defaults to the lock holder id
        on_progress: Called with the live stats after every page and batch
    """

    def __init__(
        self,
        pipeline: SyncPipeline,
        conn: Connection,
        locks: LockCoordinator,
        config: RunConfig | None = None,
        *,
        dialect: Dialect = SQLiteDialect(),
        rejects: RejectSink | None = None,
        run_id: str | None = None,
        on_progress: Callable[[RunStats], None] | None = None,
    ):
        self.pipeline = pipeline
        self.on_progress = on_progress
        self.conn = conn
        self.locks = locks
        self.config = config or RunConfig()
        self.dialect = dialect
        self.run_id = run_id or locks.holder_id or generate_ulid()
        self.rejects = rejects or RejectSink(None, pipeline.name, self.run_id, dialect)
        self.accumulator: BatchAccumulator[Any] = BatchAccumulator(
            self.config.batch_size, key=pipeline.natural_key
        )
        self.stats = RunStats(run_id=self.run_id, pipeline=pipeline.name, dry_run=self.config.dry_run)

    @property
    def state(self) -> RunState:
        return self.stats.state

    def _transition(self, state: RunState) -> None:
        if self.stats.state is not state:
            log.debug("run.state", previous=self.stats.state.value, state=state.value)
            self.stats.state = state

    # === Run ===

    def run(self) -> RunStats:
        """Execute the run; returns stats or re-raises the fatal error."""
        set_context(run_id=self.run_id, pipeline=self.pipeline.name)
        apply_memory_limit(self.config.memory_limit_mb)
        log.info(
            "run.started",
            batch_size=self.config.batch_size,
            page_size=self.config.page_size,
            dry_run=self.config.dry_run,
        )

        cursor = None
        try:
            cursor = self.pipeline.open_cursor(self.config)
            self._transition(RunState.FETCHING)
            for page in cursor.pages():
                self.stats.pages += 1
                self.stats.fetched += len(page.items)
                self._transition(RunState.ACCUMULATING)
                self._accumulate(page.items)
                self._transition(RunState.FETCHING)
                self._progress()

            self.stats.malformed = cursor.state.skipped
            self._flush()
            self._transition(RunState.DONE)
            return self.stats

        except SyncError as e:
            self._fail(e)
            raise
        except Exception as e:
            self._fail(e)
            raise PipelineError(f"{self.pipeline.name} run failed: {e}", cause=e).with_context(
                pipeline=self.pipeline.name, run_id=self.run_id
            ) from e
        finally:
            if cursor is not None:
                if self.stats.state is RunState.FAILED:
                    self.stats.malformed = cursor.state.skipped
                cursor.close()
            self.locks.release_all()
            self.stats.finished_at = utc_now()
            self.stats.rejects_by_reason = dict(self.rejects.by_reason)
            event = "run.completed" if self.stats.state is RunState.DONE else "run.failed"
            getattr(log, "info" if self.stats.state is RunState.DONE else "error")(
                event,
                pages=self.stats.pages,
                fetched=self.stats.fetched,
                accepted=self.stats.accepted,
                skipped=self.stats.skipped,
                batches=self.stats.batches,
                written=self.stats.written,
                duration_seconds=self.stats.duration_seconds,
            )

    def _accumulate(self, items: Sequence[dict[str, Any]]) -> None:
        for raw in items:
            try:
                record = self.pipeline.map(raw)
            except RecordRejected as r:
                self._reject(Reject("MAP", r.reason_code, r.detail, r.raw if r.raw is not None else raw))
                continue
            except MAPPING_ERRORS as e:
                self._reject(Reject("MAP", "MALFORMED_RECORD", f"{type(e).__name__}: {e}", raw))
                continue
            if not self.accumulator.add(record):
                self.stats.duplicates += 1
                continue
            self.stats.accepted += 1
            if self.accumulator.should_flush():
                self._flush()
                self._transition(RunState.ACCUMULATING)

    def _reject(self, reject: Reject) -> None:
        self.stats.rejected += 1
        log.debug("record.rejected", stage=reject.stage, reason=reject.reason_code, detail=reject.reason_detail)
        if self.config.dry_run or not self.config.persist_rejects:
            self.rejects.by_reason[reject.reason_code] += 1
        else:
            self.rejects.write(reject)

    # === Flush ===

    def _flush(self) -> None:
        if not self.accumulator:
            return
        records = self.accumulator.drain()
        self.stats.batches += 1
        batch_no = self.stats.batches
        bind_context(batch_no=batch_no)

        resources = sorted(set(self.pipeline.destinations(records)))
        self._transition(RunState.LOCK_WAIT)
        with self.locks.hold(*resources):
            self._transition(RunState.MERGING)
            writer = DestinationWriter(self.conn, self.dialect, stats=self.stats.tables)
            try:
                with log_step("batch.flush", log_start=False, rows=len(records), tables=resources) as timer:
                    result = self.pipeline.write(writer, records)
                    self._transition(RunState.FLUSHING)
                    if self.config.dry_run:
                        self.conn.rollback()
                    else:
                        self.conn.commit()
                    timer.add_metric("written", result.written)
            except Exception as e:
                self.conn.rollback()
                raise FlushError(f"Batch {batch_no} write failed: {e}", cause=e).with_context(
                    pipeline=self.pipeline.name, run_id=self.run_id, batch_no=batch_no
                ) from e

        self.stats.written += result.written
        for reject in result.rejects:
            self._reject(reject)
        del records
        reclaim()
        self._progress()

    def _progress(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.stats)

    def _fail(self, error: Exception) -> None:
        self._transition(RunState.FAILED)
        self.stats.error = str(error)
        try:
            self.conn.rollback()
        except Exception as rollback_error:  # noqa: BLE001
            log.warning("run.rollback_failed", error=str(rollback_error))
        details = error.to_dict() if isinstance(error, SyncError) else {"error_type": type(error).__name__}
        log.error("run.error", error=str(error), **{k: v for k, v in details.items() if k != "message"})


__all__ = [
    "RunConfig",
    "RunState",
    "RunStats",
    "SyncOrchestrator",
]
