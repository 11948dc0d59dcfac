"""
CLI: ``commonsync import`` -- run an import pipeline.

Shared flags:
    --batch-size     records per transactional flush
    --page-size      items per API request (or rows per file page)
    --updated-after  only records updated since this date (API pipelines)
    --memory-limit   address-space cap in MB for this run
    --dry-run        run everything, roll back every batch
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer

from commonsync.cli.utils import DatabaseOption, run_pipeline
from commonsync.domains.medtouch.events import EventsPipeline
from commonsync.domains.medtouch.quizzes import QuizzesPipeline
from commonsync.domains.medtouch.registered_users import RegisteredUsersPipeline
from commonsync.domains.medtouch.touches import TouchesPipeline
from commonsync.domains.medtouch.users import UsersPipeline
from commonsync.framework.pipelines.orchestrator import RunConfig

app = typer.Typer(no_args_is_help=True)

DATE_FORMATS = ["%d.%m.%Y", "%Y-%m-%d"]

BatchSizeOption = typer.Option(None, "--batch-size", "--chunk", min=1, help="Records per flush")
PageSizeOption = typer.Option(None, "--page-size", min=1, help="Items per page")
UpdatedAfterOption = typer.Option(
    None, "--updated-after", formats=DATE_FORMATS, help="Only records updated since (d.m.Y or Y-m-d)"
)
MemoryLimitOption = typer.Option(None, "--memory-limit", min=0, help="Memory limit in MB (0 = unlimited)")
DryRunOption = typer.Option(False, "--dry-run", help="Roll back every batch, report stats only")
JsonOption = typer.Option(False, "--json", help="JSON summary")


def _config(
    batch_size: int | None,
    page_size: int | None,
    updated_after: datetime | None,
    memory_limit: int | None,
    dry_run: bool,
) -> RunConfig:
    return RunConfig.from_settings(
        batch_size=batch_size,
        page_size=page_size,
        updated_after=updated_after.date() if updated_after else None,
        memory_limit_mb=memory_limit,
        dry_run=dry_run,
    )


@app.command()
def touches(
    batch_size: int | None = BatchSizeOption,
    page_size: int | None = PageSizeOption,
    updated_after: datetime | None = UpdatedAfterOption,
    memory_limit: int | None = MemoryLimitOption,
    dry_run: bool = DryRunOption,
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Import CRM touches (users, doctors, projects, touches)."""
    config = _config(batch_size, page_size, updated_after, memory_limit, dry_run)
    run_pipeline(lambda conn, info: TouchesPipeline(), config, database=database, as_json=json_out)


@app.command()
def users(
    batch_size: int | None = BatchSizeOption,
    page_size: int | None = PageSizeOption,
    updated_after: datetime | None = UpdatedAfterOption,
    memory_limit: int | None = MemoryLimitOption,
    dry_run: bool = DryRunOption,
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Import CRM users (run before quizzes and events, which resolve users by CRM id)."""
    config = _config(batch_size, page_size, updated_after, memory_limit, dry_run)
    run_pipeline(lambda conn, info: UsersPipeline(), config, database=database, as_json=json_out)


@app.command()
def events(
    batch_size: int | None = BatchSizeOption,
    page_size: int | None = PageSizeOption,
    updated_after: datetime | None = UpdatedAfterOption,
    memory_limit: int | None = MemoryLimitOption,
    dry_run: bool = DryRunOption,
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Import finished CRM events and their online/offline participations."""
    config = _config(batch_size, page_size, updated_after, memory_limit, dry_run)
    run_pipeline(lambda conn, info: EventsPipeline(), config, database=database, as_json=json_out)


@app.command()
def quizzes(
    batch_size: int | None = BatchSizeOption,
    page_size: int | None = PageSizeOption,
    updated_after: datetime | None = UpdatedAfterOption,
    memory_limit: int | None = MemoryLimitOption,
    dry_run: bool = DryRunOption,
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Import CRM quiz participations as actions."""
    config = _config(batch_size, page_size, updated_after, memory_limit, dry_run)
    run_pipeline(lambda conn, info: QuizzesPipeline(), config, database=database, as_json=json_out)


@app.command("registered-users")
def registered_users(
    path: Path = typer.Argument(..., help="Registered users CSV export"),
    delimiter: str = typer.Option(";", "--delimiter", help="Field delimiter"),
    email_column: int = typer.Option(7, "--email-column", min=0, help="0-based email column"),
    date_column: int = typer.Option(4, "--date-column", min=0, help="0-based registration date column"),
    batch_size: int | None = BatchSizeOption,
    memory_limit: int | None = MemoryLimitOption,
    dry_run: bool = DryRunOption,
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Back-fill registration dates from the legacy users export."""
    config = _config(batch_size, None, None, memory_limit, dry_run)
    run_pipeline(
        lambda conn, info: RegisteredUsersPipeline(
            path, delimiter=delimiter, email_column=email_column, date_column=date_column
        ),
        config,
        database=database,
        as_json=json_out,
    )
