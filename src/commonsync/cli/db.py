"""
CLI: ``commonsync db`` -- schema management.
"""

from __future__ import annotations

import typer

from commonsync.cli.utils import DatabaseOption, console, open_database
from commonsync.core.schema import create_tables

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(database: str | None = DatabaseOption) -> None:
    """Create the lock, reject and destination tables."""
    conn, info = open_database(database)
    try:
        tables = create_tables(conn, info.dialect)
    finally:
        conn.close()
    console.print(f"[green]Initialised[/green] {info.backend} database: {len(tables)} tables")
    for name in tables:
        console.print(f"  [cyan]{name}[/cyan]")
