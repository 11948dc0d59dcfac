"""
Structured, run-aware logging for common-sync.

Usage:
    from commonsync.framework.logging import configure_logging, get_logger, log_step, set_context

    configure_logging()
    log = get_logger(__name__)
    set_context(run_id="01HZ...", pipeline="touches")

    with log_step("batch.flush", rows=1000):
        flush()
"""

from commonsync.framework.logging.config import configure_logging, is_configured, is_debug_enabled
from commonsync.framework.logging.context import (
    LogContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    push_context,
    set_context,
)
from commonsync.framework.logging.timing import TimingResult, log_step

__all__ = [
    "LogContext",
    "TimingResult",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_context",
    "get_logger",
    "is_configured",
    "is_debug_enabled",
    "log_step",
    "push_context",
    "set_context",
]
