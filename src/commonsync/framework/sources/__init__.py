"""Source cursors: paged API (httpx), streamed files, keyset table scans."""

from commonsync.framework.sources.database import KeysetCursor
from commonsync.framework.sources.file import FileFormat, StreamedFileCursor
from commonsync.framework.sources.http import PagedApiCursor
from commonsync.framework.sources.protocol import (
    BaseCursor,
    CursorState,
    Page,
    SourceCursor,
    SourceType,
)

__all__ = [
    "BaseCursor",
    "CursorState",
    "FileFormat",
    "KeysetCursor",
    "Page",
    "PagedApiCursor",
    "SourceCursor",
    "SourceType",
    "StreamedFileCursor",
]
