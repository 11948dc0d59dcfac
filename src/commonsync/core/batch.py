"""
Bounded in-memory batch with natural-key dedup.

The accumulator is the only place a run holds more than one record at a
time. It fills to ``batch_size`` and is drained by the orchestrator, which
then writes the batch and asks the garbage collector to reclaim it.

Dedup is keyed on the destination's natural key: the first record seen for
a key wins and later duplicates in the same batch are dropped and counted,
never merged. Merging happens only against the destination store.

Example:
    >>> acc = BatchAccumulator(batch_size=2, key=lambda r: r["email"])
    >>> acc.add({"email": "a@x.io"}), acc.add({"email": "a@x.io"})
    (True, False)
    >>> acc.dropped
    1
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 1000


class BatchAccumulator(Generic[T]):
    """Buffers records until ``batch_size`` is reached.

    Args:
        batch_size: Flush threshold (number of distinct records)
        key: Natural-key function used for in-batch dedup
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE, key: Callable[[T], Hashable] | None = None):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = batch_size
        self._key = key
        self._records: list[T] = []
        self._seen: set[Hashable] = set()
        self.dropped = 0
        self.flushes = 0

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)

    def add(self, record: T) -> bool:
        """Buffer ``record``. Returns False if its key is already buffered."""
        if self._key is not None:
            k = self._key(record)
            if k in self._seen:
                self.dropped += 1
                return False
            self._seen.add(k)
        self._records.append(record)
        return True

    def should_flush(self) -> bool:
        return len(self._records) >= self.batch_size

    def drain(self) -> list[T]:
        """Hand over the buffered records and reset the batch."""
        records = self._records
        self._records = []
        self._seen = set()
        self.flushes += 1
        return records
