"""
Logging configuration.

Single entry point for structured logging. Configuration is read from
arguments or, failing that, the environment:

- ``COMMONSYNC_LOG_LEVEL``: DEBUG | INFO | WARNING | ERROR (default: INFO)
- ``COMMONSYNC_LOG_FORMAT``: json | console (default: console)
- ``COMMONSYNC_LOG_PIPELINE_DEBUG``: comma-separated pipeline names that
  log at DEBUG regardless of the level

Usage:
    from commonsync.framework.logging import configure_logging
    configure_logging(level="DEBUG", format="json")
"""

import logging
import os
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

from commonsync.framework.logging.context import add_context_processor

_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    pipeline_debug: list[str] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structlog and align stdlib logging with it.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level (overrides COMMONSYNC_LOG_LEVEL)
        format: Output format (overrides COMMONSYNC_LOG_FORMAT)
        pipeline_debug: Pipelines that always log at DEBUG
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("COMMONSYNC_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("COMMONSYNC_LOG_FORMAT", "console")).lower()

    debug_pipelines = pipeline_debug
    if debug_pipelines is None:
        env_pipelines = os.environ.get("COMMONSYNC_LOG_PIPELINE_DEBUG", "")
        debug_pipelines = [p.strip() for p in env_pipelines.split(",") if p.strip()]

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_processor,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if debug_pipelines:
        processors.insert(0, _make_pipeline_filter(debug_pipelines, log_level))
    else:
        processors.insert(0, structlog.stdlib.filter_by_level)

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Debug-enabled pipelines need the stdlib gate open too.
    stdlib_level = "DEBUG" if debug_pipelines else log_level
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, stdlib_level),
        force=True,
    )
    logging.getLogger("commonsync").setLevel(getattr(logging, stdlib_level))
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True


def _make_pipeline_filter(debug_pipelines: list[str], default_level: str):
    """Processor letting listed pipelines through at DEBUG, others at ``default_level``."""
    default_level_num = getattr(logging, default_level)

    def pipeline_debug_filter(
        logger: Any,
        method_name: str,
        event_dict: dict,
    ) -> dict:
        pipeline = event_dict.get("pipeline")
        if pipeline is None:
            pipeline = add_context_processor(logger, method_name, {}).get("pipeline")

        level = event_dict.get("level", method_name)
        level_num = getattr(logging, level.upper(), logging.DEBUG)

        if pipeline and pipeline in debug_pipelines:
            return event_dict
        if level_num < default_level_num:
            raise structlog.DropEvent
        return event_dict

    return pipeline_debug_filter


def is_debug_enabled() -> bool:
    """Check if DEBUG level logging is enabled."""
    return logging.getLogger().isEnabledFor(logging.DEBUG)


def is_configured() -> bool:
    return _configured
