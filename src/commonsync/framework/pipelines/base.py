"""Base sync pipeline interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from commonsync.core.rejects import Reject

if TYPE_CHECKING:
    from commonsync.framework.pipelines.destination import DestinationWriter
    from commonsync.framework.pipelines.orchestrator import RunConfig
    from commonsync.framework.sources.protocol import SourceCursor


@dataclass
class WriteResult:
    """What a pipeline's ``write()`` reports back for one batch."""

    written: int = 0
    rejects: list[Reject] = field(default_factory=list)


class SyncPipeline(ABC):
    """
    One import job: where records come from, how they are mapped and
    which destination tables they land in.

    The orchestrator drives it::

        cursor = pipeline.open_cursor(config)
        record = pipeline.map(raw)            # may raise RecordRejected
        key = pipeline.natural_key(record)    # in-batch dedup
        tables = pipeline.destinations(batch) # locks taken, sorted
        pipeline.write(writer, batch)         # inside one transaction
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def open_cursor(self, config: RunConfig) -> SourceCursor:
        ...

    @abstractmethod
    def map(self, raw: dict[str, Any]) -> Any:
        """Turn a raw source record into a typed record or raise ``RecordRejected``."""
        ...

    @abstractmethod
    def natural_key(self, record: Any) -> Hashable:
        ...

    @abstractmethod
    def destinations(self, records: Sequence[Any]) -> list[str]:
        """Tables (lock resources) the batch will write."""
        ...

    @abstractmethod
    def write(self, writer: DestinationWriter, records: Sequence[Any]) -> WriteResult:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
