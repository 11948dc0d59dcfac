"""
Cursor protocol for paginated and streamed sources.

Every import reads its source through a ``SourceCursor``: one call to
``next()`` returns one ``Page`` of raw records plus whether more pages
follow. Only the current page is held in memory; the orchestrator decides
when to stop reading by looking at ``Page.has_more``.

Variants:
    - ``PagedApiCursor`` (``http.py``): JSON API with ``page`` numbers and a
      ``next_page_url`` sentinel
    - ``StreamedFileCursor`` (``file.py``): CSV / TSV / JSONL read
      row-at-a-time, malformed rows skipped and counted

Usage:
    with PagedApiCursor(...) as cursor:
        for page in cursor.pages():
            handle(page.items)
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from commonsync.core.errors import SourceError


class SourceType(str, Enum):
    """Source classifications."""

    HTTP = "http"
    FILE = "file"
    DATABASE = "database"


@dataclass
class Page:
    """One page of raw records."""

    items: list[dict[str, Any]]
    number: int
    has_more: bool

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class CursorState:
    """
    In-memory progress of a cursor.

    ``page`` only moves forward; ``exhausted`` is terminal.
    """

    page: int = 0
    next_page_url: str | None = None
    items_seen: int = 0
    skipped: int = 0
    exhausted: bool = False
    delay: float = 0.0
    skipped_reasons: dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.skipped_reasons[reason] = self.skipped_reasons.get(reason, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "items_seen": self.items_seen,
            "skipped": self.skipped,
            "exhausted": self.exhausted,
        }


@runtime_checkable
class SourceCursor(Protocol):
    """Contract the orchestrator relies on."""

    @property
    def name(self) -> str:
        ...

    @property
    def state(self) -> CursorState:
        ...

    def next(self) -> Page:
        """Fetch the next page. Returns an empty, final page once exhausted."""
        ...

    def pages(self) -> Iterator[Page]:
        ...

    def close(self) -> None:
        ...


class BaseCursor:
    """
    Shared cursor behaviour: page iteration, context management and
    error wrapping.
    """

    def __init__(self, name: str, source_type: SourceType):
        self._name = name
        self._source_type = source_type
        self._state = CursorState()

    @property
    def name(self) -> str:
        return self._name

    @property
    def source_type(self) -> SourceType:
        return self._source_type

    @property
    def state(self) -> CursorState:
        return self._state

    @abstractmethod
    def next(self) -> Page:
        raise NotImplementedError

    def pages(self) -> Iterator[Page]:
        """Yield non-empty pages until the source reports no more."""
        while not self._state.exhausted:
            page = self.next()
            if page.items:
                yield page
            if not page.has_more:
                break

    def close(self) -> None:
        """Release underlying resources (no-op by default)."""

    def _finish(self) -> Page:
        self._state.exhausted = True
        return Page(items=[], number=self._state.page, has_more=False)

    def _wrap_error(self, error: Exception, message: str | None = None) -> SourceError:
        """Wrap an exception in SourceError with cursor context."""
        if isinstance(error, SourceError):
            return error
        return SourceError(message or str(error), cause=error).with_context(
            source_name=self._name,
            source_type=self._source_type.value,
            page=self._state.page,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, page={self._state.page})"
