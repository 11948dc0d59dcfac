"""
Structured error types for common-sync.

Every failure the synchronization engine can surface is a ``SyncError``
subclass carrying a category, a retry hint and a structured context, so
that the CLI can print a one-line summary while the logs keep the full
picture (resource, page number, source name, batch number).

Manifesto:
    - **Typed hierarchy:** Lock, source, record and flush failures are
      distinguishable without parsing messages
    - **Explicit retry semantics:** Lock contention is transient, a lock
      timeout is not
    - **Rich context:** Errors carry the page, resource or batch that failed
    - **Error chaining:** Original driver/HTTP exceptions kept as ``cause``

Architecture:
    ::

        SyncError (category, retryable, context, cause)
        ├── LockError ─────────── LockTimeoutError
        ├── SourceError ───────── SourceNotFoundError
        │                     ├── SourceUnavailableError
        │                     └── ParseError
        ├── ValidationError ───── RecordRejected
        ├── ConfigError
        ├── DatabaseError ─────── FlushError
        └── PipelineError

Propagation:
    - ``RecordRejected`` never escapes the batch loop (counted and skipped)
    - ``KeyError``/``TypeError``/``ValueError``/``AttributeError`` raised by a
      mapper are rejected as ``MALFORMED_RECORD`` and skipped the same way
    - ``FlushError`` / ``LockTimeoutError`` / ``SourceError`` abort the run
      after locks are released

Tags:
    error-handling, exception-hierarchy, common-sync, observability

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for routing and summary output."""

    NETWORK = "NETWORK"
    DATABASE = "DATABASE"
    LOCK = "LOCK"
    SOURCE = "SOURCE"
    PARSE = "PARSE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    PIPELINE = "PIPELINE"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        pipeline: Name of the pipeline that failed
        run_id: Run identifier
        resource: Destination table / lock resource involved
        source_name: Name of the upstream source
        page: Page number being fetched when the error happened
        batch_no: Flush counter for batch-level failures
        url: URL being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    pipeline: str | None = None
    run_id: str | None = None
    resource: str | None = None
    source_name: str | None = None
    page: int | None = None
    batch_no: int | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["pipeline", "run_id", "resource", "source_name", "page",
                    "batch_no", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SyncError(Exception):
    """
    Base exception for all common-sync errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override both per instance.

    Examples:
        >>> error = SyncError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> err = SourceError("API returned 500").with_context(page=3)
        >>> err.context.page
        3
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SyncError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SourceUnavailableError("Failed").with_context(
                source_name="crm_touches",
                page=12,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# LOCK ERRORS
# =============================================================================


class LockError(SyncError):
    """Failure while acquiring or releasing a write lock."""

    default_category = ErrorCategory.LOCK


class LockTimeoutError(LockError):
    """
    The write lock for a resource could not be acquired in time.

    Fatal for the run: the orchestrator releases whatever it holds and
    re-raises so the job exits non-zero.
    """

    def __init__(self, resource: str, timeout: float, holder: str | None = None):
        super().__init__(
            f"Timed out after {timeout:g}s waiting for write lock on '{resource}'",
        )
        self.resource = resource
        self.timeout = timeout
        self.holder = holder
        self.context.resource = resource
        if holder:
            self.context.metadata["holder"] = holder


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class SourceError(SyncError):
    """Error reading from an upstream source (API or file)."""

    default_category = ErrorCategory.SOURCE


class SourceNotFoundError(SourceError):
    """Source file or endpoint does not exist."""


class SourceUnavailableError(SourceError):
    """A page fetch failed; pages are not retried within a run."""

    default_category = ErrorCategory.NETWORK


class ParseError(SourceError):
    """Source content could not be parsed."""

    default_category = ErrorCategory.PARSE


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(SyncError):
    """Data failed validation."""

    default_category = ErrorCategory.VALIDATION


class RecordRejected(ValidationError):
    """
    A single source record is unusable and must be skipped.

    Raised by mappers; the orchestrator catches it, counts it under
    ``reason_code`` and moves on.
    """

    def __init__(self, reason_code: str, detail: str = "", raw: Any = None):
        super().__init__(f"{reason_code}: {detail}" if detail else reason_code)
        self.reason_code = reason_code
        self.detail = detail
        self.raw = raw


# =============================================================================
# CONFIG / DATABASE / PIPELINE ERRORS
# =============================================================================


class ConfigError(SyncError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


class DatabaseError(SyncError):
    """Database operation failed."""

    default_category = ErrorCategory.DATABASE


class FlushError(DatabaseError):
    """The transactional write of a batch failed and was rolled back."""


class PipelineError(SyncError):
    """Pipeline execution failed for a reason not covered above."""

    default_category = ErrorCategory.PIPELINE


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SyncError",
    "LockError",
    "LockTimeoutError",
    "SourceError",
    "SourceNotFoundError",
    "SourceUnavailableError",
    "ParseError",
    "ValidationError",
    "RecordRejected",
    "ConfigError",
    "DatabaseError",
    "FlushError",
    "PipelineError",
]
