"""Process memory controls for long-running imports."""

from __future__ import annotations

import gc
import logging

logger = logging.getLogger(__name__)


def apply_memory_limit(limit_mb: int | None) -> bool:
    """Cap the process address space at ``limit_mb`` megabytes.

    Returns True if a limit was applied. ``None`` or ``0`` leaves the
    process unlimited; platforms without ``resource`` (Windows) only log.
    """
    if not limit_mb:
        return False
    try:
        import resource
    except ImportError:
        logger.warning("memory.limit_unsupported limit_mb=%d", limit_mb)
        return False

    limit = limit_mb * 1024 * 1024
    _soft, hard = resource.getrlimit(resource.RLIMIT_AS)
    if hard != resource.RLIM_INFINITY and limit > hard:
        limit = hard
    resource.setrlimit(resource.RLIMIT_AS, (limit, hard))
    logger.info("memory.limit_applied limit_mb=%d", limit // (1024 * 1024))
    return True


def reclaim() -> int:
    """Force a collection pass after a batch is released."""
    return gc.collect()
