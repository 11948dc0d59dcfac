"""
Keyset cursor over a table's distinct key values.

Used by derived-table rebuilds: each page is the next ``page_size``
distinct values of ``key_column`` greater than the last one seen, so the
scan is stable and memory-bounded regardless of table size::

    SELECT DISTINCT mt_user_id FROM actions_mt
    WHERE mt_user_id > ? ORDER BY mt_user_id LIMIT 1000
"""

from __future__ import annotations

from typing import Any

from commonsync.core.dialect import Dialect
from commonsync.core.protocols import Connection
from commonsync.framework.logging import get_logger
from commonsync.framework.sources.protocol import BaseCursor, Page, SourceType

log = get_logger(__name__)


class KeysetCursor(BaseCursor):
    """
    Args:
        name: Source name
        conn: Connection to read from (pages are fully fetched)
        dialect: SQL dialect of ``conn``
        table: Table to scan
        key_column: Ordered, non-null key column
        page_size: Keys per page
    """

    def __init__(
        self,
        name: str,
        conn: Connection,
        dialect: Dialect,
        table: str,
        key_column: str,
        *,
        page_size: int = 1000,
    ):
        super().__init__(name, SourceType.DATABASE)
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.conn = conn
        self.dialect = dialect
        self.table = table
        self.key_column = key_column
        self.page_size = page_size
        self._last: Any = None

    def next(self) -> Page:
        state = self._state
        if state.exhausted:
            return Page(items=[], number=state.page, has_more=False)

        col = self.key_column
        sql = f"SELECT DISTINCT {col} FROM {self.table} WHERE {col} IS NOT NULL"
        params: tuple = ()
        if self._last is not None:
            sql += f" AND {col} > {self.dialect.placeholder(0)}"
            params = (self._last,)
        sql += f" ORDER BY {col} LIMIT {int(self.page_size)}"

        try:
            self.conn.execute(sql, params)
            keys = [row[0] for row in self.conn.fetchall()]
        except Exception as e:
            raise self._wrap_error(e, f"Keyset scan of {self.table} failed: {e}") from e

        state.page += 1
        state.items_seen += len(keys)
        if keys:
            self._last = keys[-1]
        has_more = len(keys) >= self.page_size
        if not has_more:
            state.exhausted = True
        log.debug("cursor.page", source=self.name, page=state.page, items=len(keys), has_more=has_more)
        return Page(items=[{col: k} for k in keys], number=state.page, has_more=has_more)
