"""Cooperative write locks persisted in the ``write_locks`` table.

Manifesto:
    Import jobs are scheduled independently and routinely overlap: a
    nightly touches import can still be running when an operator re-runs
    a file import against the same ``common_database`` table. Writers
    must therefore be serialized per destination table *across
    processes*, which rules out in-process mutexes. The lock row in the
    database is the single source of truth.

    - **Compare-and-set:** One conditional upsert both creates a missing
      row in the locked state and flips an existing row from free to
      held. Zero affected rows means somebody else holds it.
    - **Bounded wait:** Contention is handled by sleeping a fixed poll
      interval up to a timeout, then failing with ``LockTimeoutError``.
    - **Stale reclaim:** A lock held longer than ``max_hold`` is treated
      as abandoned by a crashed run and taken over. The protected
      operations are idempotent upserts, so liveness wins over strict
      safety here.
    - **Scoped release:** ``LockGuard`` is a context manager; leaving the
      ``with`` block by any path releases the row.

Architecture:
    ::

        Run A                       write_locks                  Run B
        ─────                       ───────────                  ─────
        acquire("users_mt") ──► upsert … WHERE is_writing = 0
                                rowcount = 1  ✔ held by A
                                                       ◄── acquire("users_mt")
                                rowcount = 0  ✘ poll … sleep(poll_interval)
        release("users_mt") ──► is_writing = 0
                                                       ◄── poll
                                rowcount = 1  ✔ held by B

Defaults:
    poll_interval = 1.0 s, timeout = 300 s, max_hold = 600 s. All three
    come from ``SyncSettings`` / ``RunConfig`` and can be overridden per
    run.

Tags:
    locking, concurrency, compare-and-set, stale-lock, common-sync

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from commonsync.core.dialect import Dialect, SQLiteDialect
from commonsync.core.errors import LockError, LockTimeoutError
from commonsync.core.protocols import Connection
from commonsync.core.schema import WRITE_LOCKS
from commonsync.core.timestamps import (
    from_db_timestamp,
    generate_ulid,
    to_db_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_TIMEOUT = 300.0
DEFAULT_MAX_HOLD = 600.0


@dataclass(frozen=True)
class LockRecord:
    """Snapshot of one ``write_locks`` row."""

    resource_name: str
    is_writing: bool
    locked_at: datetime | None
    locked_by: str | None

    def held_for(self, now: datetime) -> float | None:
        """Seconds the lock has been held, or ``None`` when free."""
        if not self.is_writing or self.locked_at is None:
            return None
        return (now - self.locked_at).total_seconds()


@dataclass
class LockGuard:
    """Handle for a held lock; releases it on ``release()`` or ``with`` exit.

    Example:
        >>> with coordinator.acquire("users_mt"):
        ...     write_batch()
    """

    coordinator: LockCoordinator
    resource: str
    acquired_at: datetime = field(default_factory=utc_now)
    released: bool = False

    def release(self) -> bool:
        """Release the lock. Calling it more than once is a no-op."""
        if self.released:
            return False
        self.released = True
        return self.coordinator.release(self.resource)

    def __enter__(self) -> LockGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class LockCoordinator:
    """Per-resource mutual exclusion backed by the ``write_locks`` table.

    Each coordinator should own a dedicated connection: lock transitions
    are committed immediately and must not ride along with (or be rolled
    back by) the batch transaction on the data connection.

    Args:
        conn: Connection used exclusively for lock rows
        dialect: SQL dialect for portable statements
        holder_id: Token written to ``locked_by``; defaults to a fresh ULID
        poll_interval: Seconds between acquire attempts while contended
        timeout: Seconds to wait before raising ``LockTimeoutError``
        max_hold: Seconds after which a held lock is considered stale
        clock: Returns the current aware UTC time (injectable for tests)
        sleep: Blocking sleep function (injectable for tests)
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect = SQLiteDialect(),
        *,
        holder_id: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        max_hold: float = DEFAULT_MAX_HOLD,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.conn = conn
        self.dialect = dialect
        self.holder_id = holder_id or generate_ulid()
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_hold = max_hold
        self._clock = clock
        self._sleep = sleep
        self._held: set[str] = set()

    def _ph(self, count: int) -> str:
        return self.dialect.placeholders(count)

    @property
    def held(self) -> frozenset[str]:
        """Resources currently held by this coordinator."""
        return frozenset(self._held)

    # === Acquire ===

    def try_acquire(self, resource: str) -> bool:
        """Single compare-and-set attempt. Returns True if now held."""
        if resource in self._held:
            raise LockError(f"Lock on '{resource}' is already held by this run").with_context(
                resource=resource
            )

        now = self._clock()
        stale_before = now - timedelta(seconds=self.max_hold)
        true = self.dialect.boolean_true()
        false = self.dialect.boolean_false()
        p = self.dialect.placeholder

        sql = (
            f"INSERT INTO {WRITE_LOCKS} "
            f"(resource_name, is_writing, locked_at, locked_by, created_at, updated_at) "
            f"VALUES ({p(0)}, {true}, {p(1)}, {p(2)}, {p(3)}, {p(4)}) "
            f"ON CONFLICT (resource_name) DO UPDATE SET "
            f"is_writing = {true}, locked_at = excluded.locked_at, "
            f"locked_by = excluded.locked_by, updated_at = excluded.updated_at "
            f"WHERE {WRITE_LOCKS}.is_writing = {false} "
            f"OR {WRITE_LOCKS}.locked_at IS NULL "
            f"OR {WRITE_LOCKS}.locked_at < {p(5)}"
        )
        stamp = to_db_timestamp(now)
        try:
            cursor = self.conn.execute(
                sql,
                (resource, stamp, self.holder_id, stamp, stamp, to_db_timestamp(stale_before)),
            )
            acquired = cursor.rowcount > 0
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise LockError(f"Lock acquire failed for '{resource}': {e}", cause=e).with_context(
                resource=resource
            ) from e

        if acquired:
            self._held.add(resource)
            logger.debug("lock.acquired resource=%s holder=%s", resource, self.holder_id)
        return acquired

    def acquire(self, resource: str, *, timeout: float | None = None) -> LockGuard:
        """Block until ``resource`` is held, polling at ``poll_interval``.

        Raises:
            LockTimeoutError: If the lock is still held elsewhere after
                ``timeout`` seconds (defaults to the coordinator timeout).
        """
        limit = self.timeout if timeout is None else timeout
        started = time.monotonic()
        waited = 0.0
        attempts = 0

        while True:
            attempts += 1
            if self.try_acquire(resource):
                if attempts > 1:
                    logger.info(
                        "lock.acquired_after_wait resource=%s attempts=%d waited=%.1fs",
                        resource, attempts, time.monotonic() - started,
                    )
                return LockGuard(self, resource, acquired_at=self._clock())

            record = self.get(resource)
            holder = record.locked_by if record else None
            held_for = record.held_for(self._clock()) if record else None
            if held_for is not None and held_for > self.max_hold:
                # Next attempt reclaims it through the staleness clause.
                logger.warning(
                    "lock.stale_reclaim resource=%s holder=%s held_for=%.0fs",
                    resource, holder, held_for,
                )
                continue

            if waited + self.poll_interval > limit:
                raise LockTimeoutError(resource, limit, holder=holder)

            if attempts == 1:
                logger.info("lock.waiting resource=%s holder=%s", resource, holder)
            self._sleep(self.poll_interval)
            waited += self.poll_interval

    @contextmanager
    def hold(self, *resources: str) -> Iterator[list[LockGuard]]:
        """Acquire several resources in name order; release in reverse.

        A fixed acquisition order keeps two runs that lock overlapping
        table sets from waiting on each other forever.
        """
        guards: list[LockGuard] = []
        try:
            for resource in sorted(set(resources)):
                guards.append(self.acquire(resource))
            yield guards
        finally:
            for guard in reversed(guards):
                guard.release()

    # === Release ===

    def release(self, resource: str) -> bool:
        """Release ``resource`` if this coordinator holds it.

        Returns False (and changes nothing) if the lock was reclaimed by
        another run in the meantime or was never held.
        """
        self._held.discard(resource)
        false = self.dialect.boolean_false()
        p = self.dialect.placeholder
        try:
            cursor = self.conn.execute(
                f"UPDATE {WRITE_LOCKS} SET is_writing = {false}, locked_at = NULL, "
                f"locked_by = NULL, updated_at = {p(0)} "
                f"WHERE resource_name = {p(1)} AND locked_by = {p(2)}",
                (to_db_timestamp(self._clock()), resource, self.holder_id),
            )
            released = cursor.rowcount > 0
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise LockError(f"Lock release failed for '{resource}': {e}", cause=e).with_context(
                resource=resource
            ) from e

        if released:
            logger.debug("lock.released resource=%s holder=%s", resource, self.holder_id)
        else:
            logger.warning("lock.release_lost resource=%s holder=%s", resource, self.holder_id)
        return released

    def release_all(self) -> int:
        """Release every lock this coordinator still holds."""
        count = 0
        for resource in sorted(self._held):
            if self.release(resource):
                count += 1
        return count

    # === Inspection / maintenance ===

    def get(self, resource: str) -> LockRecord | None:
        """Read the current lock row for ``resource``."""
        self.conn.execute(
            f"SELECT resource_name, is_writing, locked_at, locked_by FROM {WRITE_LOCKS} "
            f"WHERE resource_name = {self.dialect.placeholder(0)}",
            (resource,),
        )
        row = self.conn.fetchone()
        return _to_record(row) if row else None

    def list_locks(self) -> list[LockRecord]:
        """All lock rows, ordered by resource name."""
        self.conn.execute(
            f"SELECT resource_name, is_writing, locked_at, locked_by FROM {WRITE_LOCKS} "
            f"ORDER BY resource_name"
        )
        return [_to_record(row) for row in self.conn.fetchall()]

    def force_release(self, resource: str) -> bool:
        """Operator recovery: free ``resource`` regardless of holder."""
        false = self.dialect.boolean_false()
        true = self.dialect.boolean_true()
        p = self.dialect.placeholder
        cursor = self.conn.execute(
            f"UPDATE {WRITE_LOCKS} SET is_writing = {false}, locked_at = NULL, "
            f"locked_by = NULL, updated_at = {p(0)} "
            f"WHERE resource_name = {p(1)} AND is_writing = {true}",
            (to_db_timestamp(self._clock()), resource),
        )
        count = cursor.rowcount
        self.conn.commit()
        if count:
            logger.warning("lock.force_released resource=%s", resource)
        return count > 0

    def force_release_all(self) -> int:
        """Free every held lock (recovery / tests only)."""
        false = self.dialect.boolean_false()
        true = self.dialect.boolean_true()
        cursor = self.conn.execute(
            f"UPDATE {WRITE_LOCKS} SET is_writing = {false}, locked_at = NULL, "
            f"locked_by = NULL WHERE is_writing = {true}"
        )
        count = cursor.rowcount
        self.conn.commit()
        logger.warning("lock.force_released_all count=%d", count)
        return count


def _to_record(row) -> LockRecord:
    return LockRecord(
        resource_name=row[0],
        is_writing=bool(row[1]),
        locked_at=from_db_timestamp(row[2]),
        locked_by=row[3],
    )


__all__ = [
    "DEFAULT_MAX_HOLD",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_TIMEOUT",
    "LockCoordinator",
    "LockGuard",
    "LockRecord",
]
