"""
Environment-driven settings for common-sync.

All knobs are read from ``COMMONSYNC_*`` environment variables or a local
``.env`` file and validated by pydantic at startup. Run-level values
(batch size, lock timings, delays, memory limit) are only *defaults*: the
orchestrator receives them through an explicit ``RunConfig`` that CLI
flags can override.

Examples:
    >>> import os
    >>> os.environ["COMMONSYNC_BATCH_SIZE"] = "500"
    >>> get_settings.cache_clear()
    >>> get_settings().batch_size
    500

Tags:
    settings, configuration, pydantic, environment, common-sync
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Settings for the sync engine and its reference pipelines.

    Fields
    ──────
    database_url       : SQLite path / ``sqlite:///`` URL or ``postgresql://`` DSN
    lock_*             : Write-lock poll interval, acquire timeout, stale threshold
    batch_size         : Records per flush
    page_size          : Items requested per API page
    request_*          : Courtesy delay between pages and HTTP timeout
    memory_limit_mb    : Address-space cap for a run (0 = unlimited)
    crm_api_*          : CRM base URLs and bearer tokens (v1 quizzes, v2 touches)
    """

    model_config = SettingsConfigDict(
        env_prefix="COMMONSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = "commonsync.db"
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".commonsync",
        description="Directory for import files and local state",
    )
    persist_rejects: bool = True

    # ── Locks ────────────────────────────────────────────────────
    lock_poll_interval: float = Field(default=1.0, gt=0)
    lock_timeout: float = Field(default=300.0, gt=0)
    lock_max_hold: float = Field(default=600.0, gt=0)

    # ── Batching / sources ───────────────────────────────────────
    batch_size: int = Field(default=1000, ge=1)
    page_size: int = Field(default=100, ge=1)
    request_delay: float = Field(default=1.0, ge=0)
    request_timeout: float = Field(default=60.0, gt=0)
    memory_limit_mb: int = Field(default=0, ge=0)
    session_gap_seconds: int = Field(default=600, ge=0)

    # ── CRM API ──────────────────────────────────────────────────
    crm_api_url_v1: str = "http://localhost/api/v1"
    crm_api_token_v1: str = ""
    crm_api_url_v2: str = "http://localhost/api/v2"
    crm_api_token_v2: str = ""

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v


@lru_cache(maxsize=1)
def get_settings() -> SyncSettings:
    """Return the cached settings singleton."""
    return SyncSettings()
