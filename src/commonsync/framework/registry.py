"""Pipeline registry.

Import jobs register themselves by name so the CLI and tests can look
them up without import-time coupling to each domain module.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING

from commonsync.framework.logging import get_logger

if TYPE_CHECKING:
    from commonsync.framework.pipelines.base import SyncPipeline

log = get_logger(__name__)

_registry: dict[str, type["SyncPipeline"]] = {}
_loaded: bool = False


def register_pipeline(name: str) -> Callable[[type["SyncPipeline"]], type["SyncPipeline"]]:
    """Decorator registering a pipeline class under ``name``."""

    def decorator(cls: type["SyncPipeline"]) -> type["SyncPipeline"]:
        if name in _registry and _registry[name] is not cls:
            raise ValueError(f"Pipeline '{name}' is already registered")
        _registry[name] = cls
        cls.name = name
        log.debug("pipeline.registered", name=name, cls=cls.__name__)
        return cls

    return decorator


def _ensure_loaded() -> None:
    global _loaded
    if not _loaded:
        import commonsync.domains.medtouch  # noqa: F401, PLC0415

        _loaded = True


def get_pipeline(name: str) -> type["SyncPipeline"]:
    """Get a pipeline class by name.

    Raises:
        KeyError: If no pipeline is registered under ``name``.
    """
    _ensure_loaded()
    if name not in _registry:
        available = ", ".join(sorted(_registry))
        raise KeyError(f"Pipeline '{name}' not found. Available: {available}")
    return _registry[name]


def list_pipelines() -> list[str]:
    _ensure_loaded()
    return sorted(_registry)
