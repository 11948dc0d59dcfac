"""
CLI: ``commonsync sessions`` -- derived session windows.
"""

from __future__ import annotations

import typer

from commonsync.cli.utils import DatabaseOption, run_pipeline
from commonsync.domains.medtouch.sessions import ActionSessionsPipeline
from commonsync.framework.pipelines.orchestrator import RunConfig

app = typer.Typer(no_args_is_help=True)


@app.command()
def rebuild(
    gap: int | None = typer.Option(None, "--gap", min=0, help="Session gap in seconds (from window start)"),
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Users per flush"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Roll back, report stats only"),
    database: str | None = DatabaseOption,
    json_out: bool = typer.Option(False, "--json", help="JSON summary"),
) -> None:
    """Rebuild action_sessions from actions_mt."""
    config = RunConfig.from_settings(session_gap_seconds=gap, batch_size=batch_size, dry_run=dry_run)
    run_pipeline(
        lambda conn, info: ActionSessionsPipeline(conn, info.dialect),
        config,
        database=database,
        as_json=json_out,
    )
