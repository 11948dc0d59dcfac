"""common-sync: concurrency-safe, memory-bounded batch imports into a common database."""

__version__ = "0.1.0"
