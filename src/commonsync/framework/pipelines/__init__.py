"""Pipeline framework: base interface, destination writer, orchestrator."""

from commonsync.framework.pipelines.base import SyncPipeline, WriteResult
from commonsync.framework.pipelines.destination import DestinationWriter, TableWriteStats
from commonsync.framework.pipelines.orchestrator import RunConfig, RunState, RunStats, SyncOrchestrator

__all__ = [
    "DestinationWriter",
    "RunConfig",
    "RunState",
    "RunStats",
    "SyncOrchestrator",
    "SyncPipeline",
    "TableWriteStats",
    "WriteResult",
]
