"""
Timing helpers for step durations.

- ``with log_step("batch.flush", rows=n) as timer:`` logs ``.start`` at
  DEBUG and ``.end`` with ``duration_ms`` (or ``.error``)

Nested ``log_step`` blocks chain ``span_id`` -> ``parent_span_id``.
"""

import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from commonsync.framework.logging.context import get_context, get_logger, new_span_id, push_context


@dataclass
class TimingResult:
    """Result of a timed operation."""

    step: str
    span_id: str = field(default_factory=new_span_id)
    parent_span_id: str | None = None
    started_at: float = field(default_factory=time.perf_counter)
    ended_at: float | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    status: str = "ok"
    error_info: dict[str, Any] | None = None

    def stop(self) -> "TimingResult":
        if self.ended_at is None:
            self.ended_at = time.perf_counter()
        return self

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return time.perf_counter() - self.started_at
        return self.ended_at - self.started_at

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1000

    def add_metric(self, key: str, value: Any) -> "TimingResult":
        """Add a metric to include in the end-of-step log."""
        self.metrics[key] = value
        return self

    def set_error(self, e: BaseException) -> "TimingResult":
        self.status = "error"
        self.error_info = {
            "error_type": type(e).__name__,
            "error_message": str(e),
            "error_stack": traceback.format_exc(),
        }
        return self

    def to_log_dict(self) -> dict[str, Any]:
        result = {
            "duration_ms": round(self.duration_ms, 2),
            "span_id": self.span_id,
        }
        if self.parent_span_id:
            result["parent_span_id"] = self.parent_span_id
        result.update(self.metrics)
        return result

    def to_error_dict(self) -> dict[str, Any]:
        result = self.to_log_dict()
        result["status"] = "error"
        if self.error_info:
            result.update(self.error_info)
        return result


@contextmanager
def log_step(event: str, log_start: bool = True, level: str = "info", **extra_metrics) -> Iterator[TimingResult]:
    """
    Log a step's start and end with timing.

    Usage:
        with log_step("batch.flush", rows=1000) as timer:
            written = flush(rows)
            timer.add_metric("written", written)

        # DEBUG batch.flush.start span_id=a1b2c3d4 rows=1000
        # INFO  batch.flush.end   span_id=a1b2c3d4 duration_ms=84.2 rows=1000 written=1000

    Args:
        event: Event name prefix
        log_start: Whether to log the start at DEBUG
        level: Log level for the end message
        **extra_metrics: Included in both messages
    """
    log = get_logger("commonsync.timing")
    parent_span = get_context().span_id
    timer = TimingResult(step=event, parent_span_id=parent_span, metrics=dict(extra_metrics))
    context_token = push_context(span_id=timer.span_id, parent_span_id=parent_span, step=event)

    try:
        if log_start:
            log.debug(f"{event}.start", span_id=timer.span_id, **extra_metrics)
        yield timer
    except Exception as e:
        timer.stop()
        timer.set_error(e)
        log.error(f"{event}.error", **timer.to_error_dict())
        raise
    finally:
        timer.stop()
        context_token.restore()

    getattr(log, level)(f"{event}.end", **timer.to_log_dict())
