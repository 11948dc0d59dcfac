"""
Transactional destination writer.

A ``DestinationWriter`` is handed to a pipeline's ``write()`` while the
orchestrator holds the write locks for every table of the batch and has a
transaction open on the data connection. It never commits: the
orchestrator commits (or rolls back) the whole batch at once.

Operations:
    - ``upsert``: look up existing rows by natural key, apply
      ``ConflictMerger`` and write only inserts and changed rows
    - ``insert_or_ignore``: create rows whose natural key is new, leave
      existing ones untouched (projects, activities, touches, actions)
    - ``lookup_ids``: resolve surrogate ids by a column (users by
      ``new_mt_id``)
    - ``replace``: delete a scope and re-insert it (derived tables)

Within one call rows are deduplicated by natural key, first row wins.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from commonsync.core.dialect import Dialect
from commonsync.core.merge import ConflictMerger, MergeAction, UpsertContract
from commonsync.core.protocols import Connection

DEFAULT_LOOKUP_CHUNK = 500


@dataclass
class TableWriteStats:
    """Per-table write counters for one run."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    ignored: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "ignored": self.ignored,
        }


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class DestinationWriter:
    """Merge-aware writes on the data connection (no commits).

    Args:
        conn: Data connection with the batch transaction open
        dialect: SQL dialect of ``conn``
        stats: Shared per-table counters, accumulated across batches
        lookup_chunk: Maximum keys per ``IN`` / ``OR`` lookup
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect,
        stats: dict[str, TableWriteStats] | None = None,
        lookup_chunk: int = DEFAULT_LOOKUP_CHUNK,
    ):
        self.conn = conn
        self.dialect = dialect
        self.stats = stats if stats is not None else {}
        self.lookup_chunk = lookup_chunk
        self.tables_written: set[str] = set()

    def _stats(self, table: str) -> TableWriteStats:
        return self.stats.setdefault(table, TableWriteStats())

    @staticmethod
    def _dedup(contract: UpsertContract, rows: Iterable[Mapping[str, Any]]) -> dict[tuple, Mapping[str, Any]]:
        pending: dict[tuple, Mapping[str, Any]] = {}
        for row in rows:
            key = contract.key_of(row)
            if key not in pending:
                pending[key] = row
        return pending

    # === Reads ===

    def fetch_existing(self, contract: UpsertContract, keys: Iterable[tuple]) -> dict[tuple, dict[str, Any]]:
        """Existing rows by natural key (includes the id column when set)."""
        keys = list(keys)
        if not keys:
            return {}
        columns = contract.columns
        if contract.id_column:
            columns = [contract.id_column, *columns]
        select = f"SELECT {', '.join(columns)} FROM {contract.table} WHERE "
        p = self.dialect.placeholder

        found: dict[tuple, dict[str, Any]] = {}
        for chunk in _chunks(keys, self.lookup_chunk):
            if len(contract.natural_key) == 1:
                where = self.dialect.in_clause(contract.natural_key[0], len(chunk))
                params = tuple(k[0] for k in chunk)
            else:
                one = "(" + " AND ".join(f"{c} = {p(0)}" for c in contract.natural_key) + ")"
                where = " OR ".join([one] * len(chunk))
                params = tuple(v for k in chunk for v in k)
            self.conn.execute(select + where, params)
            for values in self.conn.fetchall():
                row = dict(zip(columns, values, strict=True))
                found[contract.key_of(row)] = row
        return found

    def lookup_ids(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        id_column: str = "id",
    ) -> dict[Any, Any]:
        """Map ``column`` values to ``id_column`` for rows that exist."""
        values = list(dict.fromkeys(v for v in values if v is not None))
        ids: dict[Any, Any] = {}
        for chunk in _chunks(values, self.lookup_chunk):
            self.conn.execute(
                f"SELECT {column}, {id_column} FROM {table} WHERE {self.dialect.in_clause(column, len(chunk))}",
                tuple(chunk),
            )
            for value, id_ in self.conn.fetchall():
                ids[value] = id_
        return ids

    # === Writes ===

    def upsert(self, contract: UpsertContract, rows: Iterable[Mapping[str, Any]]) -> dict[tuple, Any]:
        """
        Merge ``rows`` into ``contract.table``.

        Returns:
            ``{natural_key: id}`` for every key written or already present
            (empty when the contract has no id column).
        """
        pending = self._dedup(contract, rows)
        if not pending:
            return {}

        existing = self.fetch_existing(contract, pending)
        merger = ConflictMerger(contract)
        stats = self._stats(contract.table)
        columns = contract.columns
        to_write: list[tuple] = []

        for key, incoming in pending.items():
            action, merged = merger.plan(existing.get(key), incoming)
            if action is MergeAction.INSERT:
                stats.inserted += 1
            elif action is MergeAction.UPDATE:
                stats.updated += 1
            else:
                stats.unchanged += 1
                continue
            to_write.append(tuple(merged[c] for c in columns))

        if to_write:
            sql = self.dialect.upsert(contract.table, columns, list(contract.natural_key))
            self.conn.executemany(sql, to_write)
            self.tables_written.add(contract.table)

        return self._ids_for(contract, pending, existing, bool(to_write))

    def insert_or_ignore(self, contract: UpsertContract, rows: Iterable[Mapping[str, Any]]) -> dict[tuple, Any]:
        """Insert rows with new natural keys; existing rows are not touched."""
        pending = self._dedup(contract, rows)
        if not pending:
            return {}

        existing = self.fetch_existing(contract, pending)
        merger = ConflictMerger(contract)
        stats = self._stats(contract.table)
        columns = contract.columns
        to_insert: list[tuple] = []

        for key, incoming in pending.items():
            if key in existing:
                stats.ignored += 1
                continue
            row = merger.normalize(incoming)
            to_insert.append(tuple(row[c] for c in columns))
            stats.inserted += 1

        if to_insert:
            self.conn.executemany(self.dialect.insert_or_ignore(contract.table, columns), to_insert)
            self.tables_written.add(contract.table)

        return self._ids_for(contract, pending, existing, bool(to_insert))

    def replace(
        self,
        table: str,
        scope_column: str,
        scope_values: Iterable[Any],
        columns: list[str],
        rows: Iterable[Sequence[Any]],
    ) -> int:
        """Delete rows whose ``scope_column`` is in ``scope_values`` and insert ``rows``."""
        scope = list(dict.fromkeys(scope_values))
        for chunk in _chunks(scope, self.lookup_chunk):
            self.conn.execute(
                f"DELETE FROM {table} WHERE {self.dialect.in_clause(scope_column, len(chunk))}",
                tuple(chunk),
            )
        values = [tuple(r) for r in rows]
        if values:
            placeholders = self.dialect.placeholders(len(columns))
            self.conn.executemany(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
        self._stats(table).inserted += len(values)
        self.tables_written.add(table)
        return len(values)

    def _ids_for(
        self,
        contract: UpsertContract,
        keys: Mapping[tuple, Any],
        existing: Mapping[tuple, Mapping[str, Any]],
        wrote: bool,
    ) -> dict[tuple, Any]:
        if not contract.id_column:
            return {}
        if wrote:
            existing = self.fetch_existing(contract, keys)
        return {k: row[contract.id_column] for k, row in existing.items() if k in keys}
