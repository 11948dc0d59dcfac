"""Tests for ``commonsync.core.memory``."""

from commonsync.core.memory import apply_memory_limit, reclaim


def test_zero_limit_is_noop():
    assert apply_memory_limit(0) is False
    assert apply_memory_limit(None) is False


def test_reclaim_returns_count():
    assert reclaim() >= 0
