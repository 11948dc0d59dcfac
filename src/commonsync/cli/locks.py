"""
CLI: ``commonsync locks`` -- inspect and recover write locks.
"""

from __future__ import annotations

import typer

from commonsync.cli.utils import DatabaseOption, console, open_locks, print_table
from commonsync.core.timestamps import utc_now

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_locks(database: str | None = DatabaseOption) -> None:
    """Show every lock row and how long it has been held."""
    locks, conn = open_locks(database)
    try:
        records = locks.list_locks()
    finally:
        conn.close()
    now = utc_now()
    print_table(
        [
            {
                "resource": r.resource_name,
                "held": "yes" if r.is_writing else "no",
                "locked_at": r.locked_at.strftime("%Y-%m-%d %H:%M:%S") if r.locked_at else None,
                "held_for_s": round(r.held_for(now)) if r.held_for(now) is not None else None,
                "holder": r.locked_by,
            }
            for r in records
        ],
        title="Write locks",
    )


@app.command()
def release(
    resource: str = typer.Argument(..., help="Resource (table) name"),
    database: str | None = DatabaseOption,
) -> None:
    """Free one lock regardless of its holder."""
    locks, conn = open_locks(database)
    try:
        released = locks.force_release(resource)
    finally:
        conn.close()
    if released:
        console.print(f"[green]Released[/green] {resource}")
    else:
        console.print(f"[dim]{resource} was not held[/dim]")


@app.command("force-release")
def force_release(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    database: str | None = DatabaseOption,
) -> None:
    """Free every held lock (only when no import is running)."""
    if not yes:
        typer.confirm("Release ALL write locks?", abort=True)
    locks, conn = open_locks(database)
    try:
        count = locks.force_release_all()
    finally:
        conn.close()
    console.print(f"[green]Released[/green] {count} lock(s)")
