"""
Run context attached to every log entry.

A ``LogContext`` lives in a ``ContextVar``; the ``add_context_processor``
structlog processor copies its non-empty fields into each event, so a
lock wait deep in the coordinator is logged with the run id, pipeline and
batch number without passing them around.
"""

import uuid
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Any

import structlog


@dataclass
class LogContext:
    """
    Context fields included in log entries.

    Run identity:
        run_id: ULID of the current import run
        pipeline: Pipeline name (``touches``, ``quizzes`` ...)

    Tracing:
        span_id / parent_span_id: Nested ``log_step`` blocks

    Progress:
        resource: Destination table / lock resource in play
        batch_no: 1-based batch counter
        page: Current source page number
        step: Current processing step
    """

    run_id: str | None = None
    pipeline: str | None = None

    span_id: str | None = None
    parent_span_id: str | None = None

    resource: str | None = None
    batch_no: int | None = None
    page: int | None = None
    step: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "LogContext":
        """Create new context with merged values (unknown keys ignored)."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if k in current and v is not None})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def set_context(
    run_id: str | None = None,
    pipeline: str | None = None,
    resource: str | None = None,
    batch_no: int | None = None,
    page: int | None = None,
    step: str | None = None,
) -> LogContext:
    """
    Replace the current log context.

    Use ``bind_context()`` to add to the existing one instead.
    """
    ctx = LogContext(
        run_id=run_id,
        pipeline=pipeline,
        resource=resource,
        batch_no=batch_no,
        page=page,
        step=step,
    )
    _log_context.set(ctx)
    return ctx


def bind_context(**kwargs) -> LogContext:
    """Merge values into the current context."""
    updated = get_context().merge(**kwargs)
    _log_context.set(updated)
    return updated


def clear_context() -> None:
    """Reset to an empty context."""
    _log_context.set(LogContext())


class _ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token):
        self._token = token

    def restore(self):
        _log_context.reset(self._token)


def push_context(**kwargs) -> _ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(resource="users_mt")
        try:
            write()
        finally:
            token.restore()
    """
    token = _log_context.set(get_context().merge(**kwargs))
    return _ContextToken(token)


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor adding the run context (explicit keys win)."""
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def new_span_id() -> str:
    """Generate a short span ID (8 hex chars)."""
    return uuid.uuid4().hex[:8]


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger that includes the run context."""
    return structlog.get_logger(name)
