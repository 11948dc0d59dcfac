"""SQL dialect abstraction for backend-agnostic pipeline code.

Repositories, the lock coordinator and destination writers generate SQL
fragments through a ``Dialect`` so the same code runs on SQLite (tests,
local runs) and PostgreSQL (production).

Architecture::

    ┌────────────────────────────────────────────────────────────────┐
    │  sql = f"SELECT ... WHERE email IN ({d.placeholders(n)})"      │
    │  conn.execute(sql, params)                                     │
    └────────────────────────────────────────────────────────────────┘
                              │
                 ┌────────────┴────────────┐
                 ▼                         ▼
           ┌──────────┐             ┌──────────────┐
           │ SQLite   │             │ PostgreSQL   │
           │ ?, ?, ?  │             │ %s, %s, %s   │
           └──────────┘             └──────────────┘

Examples:
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.upsert("t", ["k", "v"], ["k"])
    'INSERT INTO t (k, v) VALUES (?, ?) ON CONFLICT (k) DO UPDATE SET v = excluded.v'

Tags:
    dialect, sql, portability, database, common-sync
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL generation contract shared by all backends."""

    @property
    def name(self) -> str:
        """Backend name (``sqlite`` / ``postgresql``)."""
        ...

    def placeholder(self, index: int) -> str:
        """Placeholder for the 0-based parameter ``index``."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholders for ``count`` parameters."""
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """INSERT that silently skips rows conflicting on any unique key."""
        ...

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        """INSERT ... ON CONFLICT (keys) DO UPDATE SET non-key columns."""
        ...

    def auto_increment(self) -> str:
        """Column type for an auto-incrementing integer primary key."""
        ...

    def boolean_true(self) -> str:
        ...

    def boolean_false(self) -> str:
        ...

    def table_exists_query(self) -> str:
        """Query returning a row when the table (single parameter) exists."""
        ...

    def in_clause(self, column: str, count: int) -> str:
        """``column IN (...)`` with ``count`` placeholders."""
        ...


def _upsert(table: str, columns: list[str], key_columns: list[str], ph: str) -> str:
    cols = ", ".join(columns)
    keys = ", ".join(key_columns)
    update_cols = [c for c in columns if c not in key_columns]
    if not update_cols:
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT ({keys}) DO NOTHING"
    updates = ", ".join(f"{c} = excluded.{c}" for c in update_cols)
    return (
        f"INSERT INTO {table} ({cols}) VALUES ({ph}) "
        f"ON CONFLICT ({keys}) DO UPDATE SET {updates}"
    )


class SQLiteDialect:
    """SQLite dialect using ``?`` placeholders."""

    @property
    def name(self) -> str:
        return "sqlite"

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def in_clause(self, column: str, count: int) -> str:
        return f"{column} IN ({self.placeholders(count)})"

    # -- DML ---------------------------------------------------------------

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {table} ({cols}) VALUES ({ph})"

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        return _upsert(table, columns, key_columns, self.placeholders(len(columns)))

    # -- DDL ---------------------------------------------------------------

    def auto_increment(self) -> str:
        return "INTEGER PRIMARY KEY AUTOINCREMENT"

    def boolean_true(self) -> str:
        return "1"

    def boolean_false(self) -> str:
        return "0"

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?"


class PostgreSQLDialect:
    """PostgreSQL dialect using ``%s`` placeholders (psycopg2)."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def in_clause(self, column: str, count: int) -> str:
        return f"{column} IN ({self.placeholders(count)})"

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT DO NOTHING"

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        return _upsert(table, columns, key_columns, self.placeholders(len(columns)))

    def auto_increment(self) -> str:
        return "SERIAL PRIMARY KEY"

    def boolean_true(self) -> str:
        return "TRUE"

    def boolean_false(self) -> str:
        return "FALSE"

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = %s"
        )


_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
]
