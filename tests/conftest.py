"""
Shared pytest fixtures for common-sync tests.

This module provides:
- File-backed SQLite databases with the full schema
- Separate lock connections (one per simulated process)
- A controllable clock for lock staleness tests
- Settings isolation from the developer's environment
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from commonsync.core.connection import SqliteConnection, create_connection
from commonsync.core.dialect import SQLiteDialect
from commonsync.core.locks import LockCoordinator
from commonsync.core.schema import create_tables
from commonsync.core.settings import get_settings


# =============================================================================
# Settings isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep COMMONSYNC_* variables and ``.env`` files out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("COMMONSYNC_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "common.db"
    conn, info = create_connection(str(path))
    create_tables(conn, info.dialect)
    conn.close()
    return path


@pytest.fixture
def conn(db_path: Path) -> Iterator[SqliteConnection]:
    """Data connection to the test database."""
    c = SqliteConnection(str(db_path))
    yield c
    c.close()


@pytest.fixture
def lock_conn(db_path: Path) -> Iterator[SqliteConnection]:
    """Second connection, as used by a run's lock coordinator."""
    c = SqliteConnection(str(db_path))
    yield c
    c.close()


@pytest.fixture
def dialect() -> SQLiteDialect:
    return SQLiteDialect()


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_locks(db_path: Path, clock: FakeClock):
    """Factory for coordinators on independent connections (one per "process")."""
    opened: list[SqliteConnection] = []

    def _make(holder_id: str, **kwargs) -> LockCoordinator:
        c = SqliteConnection(str(db_path))
        opened.append(c)
        kwargs.setdefault("poll_interval", 0.01)
        kwargs.setdefault("timeout", 0.05)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", lambda _: None)
        return LockCoordinator(c, holder_id=holder_id, **kwargs)

    yield _make
    for c in opened:
        c.close()


@pytest.fixture
def rows(conn):
    """Run a query on the data connection and return every row."""

    def _rows(sql: str, params: tuple = ()) -> list[tuple]:
        conn.execute(sql, params)
        return conn.fetchall()

    return _rows
