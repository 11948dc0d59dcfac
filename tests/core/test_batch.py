"""Tests for ``commonsync.core.batch`` -- bounded accumulation with dedup."""

import pytest

from commonsync.core.batch import BatchAccumulator


class TestBatchAccumulator:
    def test_flush_threshold(self):
        acc = BatchAccumulator(batch_size=2)
        acc.add({"id": 1})
        assert not acc.should_flush()
        acc.add({"id": 2})
        assert acc.should_flush()

    def test_drain_resets(self):
        acc = BatchAccumulator(batch_size=2)
        acc.add("a")
        assert acc.drain() == ["a"]
        assert len(acc) == 0
        assert not acc
        assert acc.flushes == 1

    def test_duplicate_key_keeps_first(self):
        acc = BatchAccumulator(batch_size=10, key=lambda r: r["email"])
        assert acc.add({"email": "a@b.co", "name": "first"}) is True
        assert acc.add({"email": "a@b.co", "name": "second"}) is False
        assert acc.drain() == [{"email": "a@b.co", "name": "first"}]
        assert acc.dropped == 1

    def test_dedup_is_per_batch(self):
        acc = BatchAccumulator(batch_size=10, key=lambda r: r)
        acc.add("x")
        acc.drain()
        assert acc.add("x") is True

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            BatchAccumulator(batch_size=0)
