"""Connection factory: create database connections from URL strings.

Supported URL schemes
---------------------
==================  ==========================================  ============
Scheme              Example                                     Backend
==================  ==========================================  ============
``memory``          ``memory`` or ``:memory:`` or ``None``       SQLite RAM
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``(file path)``     ``./data/common.db``                         SQLite file
``postgresql``      ``postgresql://user:pw@host:port/db``        PostgreSQL
``postgres``        ``postgres://user:pw@host:port/db``          PostgreSQL
==================  ==========================================  ============

Usage
-----
::

    from commonsync.core.connection import create_connection, transaction

    conn, info = create_connection("sqlite:///data/common.db")
    with transaction(conn):
        conn.execute("UPDATE common_database SET ...", (...))

The lock coordinator always gets its *own* connection so that lock rows
commit independently of the batch transaction running on the data
connection.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from commonsync.core.dialect import Dialect, get_dialect
from commonsync.core.errors import ConfigError, DatabaseError
from commonsync.core.protocols import Connection

logger = logging.getLogger(__name__)


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    """Backend identifier: ``"sqlite"`` or ``"postgresql"``."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The original URL or path used to create the connection."""

    resolved_path: str | None = None
    """For file-based SQLite, the resolved absolute path."""

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.backend)

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"


# ── Adapters ─────────────────────────────────────────────────────────────


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Maintains a single cursor so that ``execute`` / ``fetchone`` /
    ``fetchall`` operate on the same result set.
    """

    def __init__(self, path: str = ":memory:", *, timeout: float = 30.0) -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False, timeout=timeout)
        self._cursor = self._conn.cursor()

    def execute(self, sql: str, params: tuple = ()) -> Any:
        self._cursor.execute(sql, params)
        return self._cursor

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        self._cursor.executemany(sql, params)
        return self._cursor

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"


class PostgresConnection:
    """Adapter: ``psycopg2`` connection → ``Connection`` protocol."""

    def __init__(self, dsn: str, *, connect_timeout: int = 10) -> None:
        import psycopg2

        try:
            self._conn = psycopg2.connect(dsn, connect_timeout=connect_timeout)
        except psycopg2.Error as e:
            raise DatabaseError(f"Failed to connect to PostgreSQL: {e}", cause=e) from e
        self._cursor = self._conn.cursor()

    def execute(self, sql: str, params: tuple = ()) -> Any:
        self._cursor.execute(sql, params)
        return self._cursor

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        self._cursor.executemany(sql, params)
        return self._cursor

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


# ── URL parsing ──────────────────────────────────────────────────────────


def _parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into (scheme, target)."""
    if db is None or db in ("", "memory", ":memory:"):
        return "memory", ":memory:"
    if db.startswith("sqlite:///"):
        path = db[len("sqlite:///"):]
        if not path or path == ":memory:":
            return "memory", ":memory:"
        return "sqlite", path
    if db.startswith(("postgresql://", "postgres://")):
        return "postgresql", db
    if "://" in db:
        raise ConfigError(f"Unsupported database URL scheme: {db.split('://', 1)[0]}")
    return "sqlite", db


def create_connection(url: str | None = None) -> tuple[Any, ConnectionInfo]:
    """Create a connection from a URL, returning ``(conn, info)``."""
    scheme, target = _parse_url(url)

    if scheme == "memory":
        return SqliteConnection(":memory:"), ConnectionInfo(
            backend="sqlite", persistent=False, url=":memory:"
        )

    if scheme == "sqlite":
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        resolved = str(path.resolve())
        return SqliteConnection(resolved), ConnectionInfo(
            backend="sqlite", persistent=True, url=url or target, resolved_path=resolved
        )

    logger.debug("Opening PostgreSQL connection")
    return PostgresConnection(target), ConnectionInfo(
        backend="postgresql", persistent=True, url=target
    )


@contextmanager
def transaction(conn: Connection) -> Iterator[Connection]:
    """Commit on success, roll back and re-raise on any error."""
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise


__all__ = [
    "ConnectionInfo",
    "SqliteConnection",
    "PostgresConnection",
    "create_connection",
    "transaction",
]
