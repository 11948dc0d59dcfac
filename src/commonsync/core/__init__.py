"""common-sync core -- database-backed primitives of the sync engine.

Layers::

    Errors & types
        errors.py        SyncError hierarchy with category/retryable/context
        protocols.py     Connection protocol
        timestamps.py    ULIDs, UTC helpers, lenient source date parsing

    Database
        dialect.py       SQLite / PostgreSQL SQL generation
        connection.py    create_connection(), transaction()
        schema.py        DDL for lock, reject and destination tables

    Engine primitives
        locks.py         LockCoordinator (write_locks compare-and-set)
        batch.py         BatchAccumulator (bounded, deduplicating)
        merge.py         UpsertContract / ConflictMerger
        sessions.py      SessionWindower (gap from window start)
        rejects.py       RejectSink
        memory.py        apply_memory_limit(), reclaim()
        settings.py      SyncSettings (pydantic-settings)
"""

from commonsync.core.batch import BatchAccumulator
from commonsync.core.connection import ConnectionInfo, create_connection, transaction
from commonsync.core.dialect import Dialect, PostgreSQLDialect, SQLiteDialect, get_dialect
from commonsync.core.errors import (
    ConfigError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    FlushError,
    LockError,
    LockTimeoutError,
    ParseError,
    PipelineError,
    RecordRejected,
    SourceError,
    SourceNotFoundError,
    SourceUnavailableError,
    SyncError,
    ValidationError,
)
from commonsync.core.locks import LockCoordinator, LockGuard, LockRecord
from commonsync.core.merge import ConflictMerger, FieldPolicy, MergeAction, UpsertContract, is_empty
from commonsync.core.rejects import Reject, RejectSink
from commonsync.core.sessions import SessionEvent, SessionWindow, SessionWindower

__all__ = [
    "BatchAccumulator",
    "ConfigError",
    "ConflictMerger",
    "ConnectionInfo",
    "DatabaseError",
    "Dialect",
    "ErrorCategory",
    "ErrorContext",
    "FieldPolicy",
    "FlushError",
    "LockCoordinator",
    "LockError",
    "LockGuard",
    "LockRecord",
    "LockTimeoutError",
    "MergeAction",
    "ParseError",
    "PipelineError",
    "PostgreSQLDialect",
    "RecordRejected",
    "Reject",
    "RejectSink",
    "SQLiteDialect",
    "SessionEvent",
    "SessionWindow",
    "SessionWindower",
    "SourceError",
    "SourceNotFoundError",
    "SourceUnavailableError",
    "SyncError",
    "UpsertContract",
    "ValidationError",
    "create_connection",
    "get_dialect",
    "is_empty",
    "transaction",
]
