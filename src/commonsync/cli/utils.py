"""
CLI utility helpers: connections, run execution and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from commonsync.core.connection import ConnectionInfo, create_connection
from commonsync.core.errors import SyncError
from commonsync.core.locks import LockCoordinator
from commonsync.core.protocols import Connection
from commonsync.core.rejects import RejectSink
from commonsync.core.schema import create_tables
from commonsync.core.settings import get_settings
from commonsync.framework.logging import configure_logging
from commonsync.framework.pipelines.base import SyncPipeline
from commonsync.framework.pipelines.orchestrator import RunConfig, RunStats, SyncOrchestrator

console = Console()
err_console = Console(stderr=True)

DatabaseOption = typer.Option(None, "--database", "-d", help="Database path or URL (default: settings)")


# ── Connection helpers ───────────────────────────────────────────────────


def open_database(database: str | None = None) -> tuple[Connection, ConnectionInfo]:
    """Open the data connection; defaults to ``COMMONSYNC_DATABASE_URL``."""
    try:
        return create_connection(database or get_settings().database_url)
    except SyncError as e:
        fail(str(e))
        raise  # unreachable, keeps type checkers quiet


def open_locks(
    database: str | None,
    config: RunConfig | None = None,
    *,
    shared: tuple[Connection, ConnectionInfo] | None = None,
) -> tuple[LockCoordinator, Connection]:
    """Lock coordinator on its own connection.

    An in-memory database only exists on one connection, so ``shared`` is
    reused there.
    """
    if shared is not None and not shared[1].persistent:
        conn, info = shared
    else:
        conn, info = open_database(database)
        create_tables(conn, info.dialect)
    config = config or RunConfig.from_settings()
    locks = LockCoordinator(
        conn,
        info.dialect,
        poll_interval=config.lock_poll_interval,
        timeout=config.lock_timeout,
        max_hold=config.lock_max_hold,
    )
    return locks, conn


def fail(message: str, code: int = 1) -> None:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=code)


# ── Run helper ───────────────────────────────────────────────────────────


def run_pipeline(
    build: Callable[[Connection, ConnectionInfo], SyncPipeline],
    config: RunConfig,
    *,
    database: str | None = None,
    as_json: bool = False,
) -> RunStats:
    """Run a pipeline with progress output and a final summary.

    Exits with code 1 on a fatal error after printing the partial counters.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level.upper(), format=settings.log_format)

    conn, info = open_database(database)
    create_tables(conn, info.dialect)
    locks, lock_conn = open_locks(database, config, shared=(conn, info))
    pipeline = build(conn, info)
    sink_conn = conn if config.persist_rejects and not config.dry_run else None
    orchestrator = SyncOrchestrator(
        pipeline,
        conn,
        locks,
        config,
        dialect=info.dialect,
        rejects=RejectSink(sink_conn, pipeline.name, locks.holder_id, info.dialect),
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        TextColumn("{task.fields[detail]}"),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
        disable=as_json,
    )
    task = progress.add_task(pipeline.name, detail="starting")

    def on_progress(stats: RunStats) -> None:
        progress.update(
            task,
            detail=f"pages {stats.pages} · fetched {stats.fetched} · batches {stats.batches} · skipped {stats.skipped}",
        )

    orchestrator.on_progress = on_progress
    try:
        with progress:
            stats = orchestrator.run()
    except SyncError as e:
        print_run_summary(orchestrator.stats, as_json=as_json)
        fail(f"{type(e).__name__}: {e}")
    finally:
        if lock_conn is not conn:
            lock_conn.close()
        conn.close()

    print_run_summary(stats, as_json=as_json)
    return stats


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_run_summary(stats: RunStats, *, as_json: bool = False) -> None:
    """Processed / skipped / error counts plus per-table writes."""
    if as_json:
        console.print_json(json.dumps(stats.to_dict(), default=str))
        return

    state_style = "green" if stats.error is None else "red"
    title = f"{stats.pipeline} [{state_style}]{stats.state.value}[/{state_style}]"

    summary = Table(title=title, show_header=False, pad_edge=False)
    summary.add_column("metric", style="cyan")
    summary.add_column("value", justify="right")
    for label, value in (
        ("run id", stats.run_id),
        ("pages", stats.pages),
        ("fetched", stats.fetched),
        ("processed", stats.accepted),
        ("duplicates", stats.duplicates),
        ("rejected", stats.rejected),
        ("malformed", stats.malformed),
        ("batches", stats.batches),
        ("written", stats.written),
        ("duration", f"{stats.duration_seconds:.1f}s" if stats.duration_seconds is not None else "-"),
    ):
        summary.add_row(label, str(value))
    console.print(summary)

    if stats.tables:
        tables = Table(title="Tables", pad_edge=False)
        for col in ("table", "inserted", "updated", "unchanged", "ignored"):
            tables.add_column(col, justify="left" if col == "table" else "right")
        for name, t in sorted(stats.tables.items()):
            tables.add_row(name, str(t.inserted), str(t.updated), str(t.unchanged), str(t.ignored))
        console.print(tables)

    if stats.rejects_by_reason:
        rejects = Table(title="Rejects", pad_edge=False)
        rejects.add_column("reason")
        rejects.add_column("count", justify="right")
        for reason, count in sorted(stats.rejects_by_reason.items()):
            rejects.add_row(reason, str(count))
        console.print(rejects)

    if stats.error:
        err_console.print(f"[red]{stats.error}[/red]")
    if stats.dry_run:
        console.print("[yellow]Dry run: every batch was rolled back[/yellow]")


def print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for i, col in enumerate(first):
        table.add_column(col, overflow="fold", no_wrap=i == 0)
    for item in items:
        table.add_row(*(str(v) if v is not None else "-" for v in _to_dict(item).values()))
    console.print(table)
