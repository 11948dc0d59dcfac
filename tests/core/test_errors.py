"""Tests for ``commonsync.core.errors``."""

from commonsync.core.errors import (
    ErrorCategory,
    FlushError,
    LockTimeoutError,
    RecordRejected,
    SourceUnavailableError,
    SyncError,
)


class TestSyncError:
    def test_defaults(self):
        err = SyncError("boom")
        assert err.category is ErrorCategory.INTERNAL
        assert err.retryable is False

    def test_with_context_known_and_unknown_keys(self):
        err = SourceUnavailableError("HTTP 500").with_context(page=3, http_status=500, attempt=1)
        assert err.context.page == 3
        assert err.context.metadata == {"attempt": 1}
        d = err.to_dict()
        assert d["category"] == "NETWORK"
        assert d["context"]["page"] == 3

    def test_cause_is_chained(self):
        cause = ValueError("disk")
        err = FlushError("write failed", cause=cause)
        assert err.__cause__ is cause
        assert err.to_dict()["cause"] == "disk"


class TestSpecificErrors:
    def test_lock_timeout(self):
        err = LockTimeoutError("users_mt", 300, holder="run-a")
        assert "users_mt" in str(err)
        assert err.category is ErrorCategory.LOCK
        assert err.context.resource == "users_mt"
        assert err.context.metadata["holder"] == "run-a"

    def test_record_rejected(self):
        err = RecordRejected("INVALID_EMAIL", "not an email", raw={"email": "x"})
        assert str(err) == "INVALID_EMAIL: not an email"
        assert err.reason_code == "INVALID_EMAIL"
        assert err.raw == {"email": "x"}
