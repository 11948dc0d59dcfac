"""
Row-streaming file cursor for CSV, TSV and JSON Lines exports.

Rows are read one at a time and grouped into pages of ``page_size``; the
file is never loaded whole. Malformed rows are skipped and counted in
``state.skipped`` instead of failing the run:

- delimited rows whose column count differs from the header
- lines the csv module cannot parse
- JSONL lines that are not valid JSON objects

Blank or repeated header names are made unique (``_5``, ``email_7``) so
every column keeps its own key and row dicts stay in column order.

Usage:
    with StreamedFileCursor("registered", "/data/users.csv", delimiter=";") as cursor:
        for page in cursor.pages():
            ...
"""

from __future__ import annotations

import csv
import json
from enum import Enum
from pathlib import Path
from typing import IO, Any

from commonsync.core.errors import SourceNotFoundError
from commonsync.framework.logging import get_logger
from commonsync.framework.sources.protocol import BaseCursor, Page, SourceType

log = get_logger(__name__)


class FileFormat(str, Enum):
    CSV = "csv"
    TSV = "tsv"
    JSONL = "jsonl"


_EXTENSION_FORMATS = {
    ".csv": FileFormat.CSV,
    ".txt": FileFormat.CSV,
    ".tsv": FileFormat.TSV,
    ".jsonl": FileFormat.JSONL,
    ".ndjson": FileFormat.JSONL,
}


class StreamedFileCursor(BaseCursor):
    """
    Paged view over a delimited or JSONL file.

    Args:
        name: Source name for logs and errors
        path: File to read
        format: Explicit format; detected from the extension when omitted
        delimiter: Field delimiter for delimited formats (``;`` for CRM exports)
        encoding: File encoding; the default strips a UTF-8 BOM
        page_size: Rows per page
    """

    def __init__(
        self,
        name: str,
        path: str | Path,
        *,
        format: FileFormat | str | None = None,
        delimiter: str | None = None,
        encoding: str = "utf-8-sig",
        page_size: int = 1000,
    ):
        super().__init__(name, SourceType.FILE)
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.path = Path(path)
        self.format = FileFormat(format) if format else self._detect_format()
        self.delimiter = delimiter or ("\t" if self.format is FileFormat.TSV else ",")
        self.encoding = encoding
        self.page_size = page_size
        self.header: list[str] | None = None
        self._fh: IO[str] | None = None
        self._reader: Any = None
        self._line_no = 0

    def _detect_format(self) -> FileFormat:
        return _EXTENSION_FORMATS.get(self.path.suffix.lower(), FileFormat.CSV)

    def _open(self) -> None:
        try:
            self._fh = open(self.path, encoding=self.encoding, newline="")
        except FileNotFoundError as e:
            raise SourceNotFoundError(f"File not found: {self.path}", cause=e).with_context(
                source_name=self.name, path=str(self.path)
            ) from e
        except OSError as e:
            raise self._wrap_error(e, f"Cannot open {self.path}: {e}") from e

        if self.format is not FileFormat.JSONL:
            self._reader = csv.reader(self._fh, delimiter=self.delimiter)
            try:
                header = next(self._reader, None)
            except csv.Error as e:
                raise self._wrap_error(e, f"Unreadable header in {self.path}: {e}") from e
            self._line_no = 1
            self.header = unique_header(header) if header else []

    def next(self) -> Page:
        state = self._state
        if state.exhausted:
            return Page(items=[], number=state.page, has_more=False)
        if self._fh is None:
            self._open()

        rows: list[dict[str, Any]] = []
        eof = False
        while len(rows) < self.page_size:
            row = self._read_row()
            if row is _EOF:
                eof = True
                break
            if row is not None:
                rows.append(row)

        state.page += 1
        state.items_seen += len(rows)
        if eof:
            state.exhausted = True
            self.close()
        return Page(items=rows, number=state.page, has_more=not eof)

    def _read_row(self) -> Any:
        """Return a row dict, ``None`` for a skipped row, or ``_EOF``."""
        if self.format is FileFormat.JSONL:
            line = self._fh.readline()
            if not line:
                return _EOF
            self._line_no += 1
            if not line.strip():
                return None
            try:
                obj = json.loads(line)
            except ValueError:
                self._skip("invalid_json")
                return None
            if not isinstance(obj, dict):
                self._skip("not_an_object")
                return None
            return obj

        if not self.header:
            return _EOF
        try:
            values = next(self._reader)
        except StopIteration:
            return _EOF
        except csv.Error:
            self._line_no += 1
            self._skip("unparsable_line")
            return None
        self._line_no += 1
        if not values:
            return None
        if len(values) != len(self.header):
            self._skip("column_count_mismatch")
            return None
        return dict(zip(self.header, values, strict=True))

    def _skip(self, reason: str) -> None:
        self._state.skip(reason)
        log.debug("cursor.row_skipped", source=self.name, line=self._line_no, reason=reason)

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._reader = None


_EOF = object()


def unique_header(names: list[str]) -> list[str]:
    """Strip header names; blank or repeated ones become ``_<position>`` or ``<name>_<position>``.

    Keeps one dict key per column so positional lookups stay aligned with
    the raw row.
    """
    seen: set[str] = set()
    header = []
    for position, name in enumerate(names):
        name = name.strip()
        if not name or name in seen:
            name = f"{name}_{position}"
        while name in seen:
            name += "_"
        seen.add(name)
        header.append(name)
    return header
