"""
Root Typer application for the commonsync CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="commonsync",
    help="commonsync -- concurrency-safe batch imports into the common database.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from commonsync import __version__

        typer.echo(f"commonsync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """commonsync CLI -- imports, session rebuilds, write locks, schema."""


# ── Sub-command registration ─────────────────────────────────────────────

from commonsync.cli.db import app as db_app  # noqa: E402
from commonsync.cli.imports import app as import_app  # noqa: E402
from commonsync.cli.locks import app as locks_app  # noqa: E402
from commonsync.cli.pipelines import app as pipelines_app  # noqa: E402
from commonsync.cli.sessions import app as sessions_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database schema.")
app.add_typer(import_app, name="import", help="Run an import pipeline.")
app.add_typer(sessions_app, name="sessions", help="Action session windows.")
app.add_typer(locks_app, name="locks", help="Inspect and recover write locks.")
app.add_typer(pipelines_app, name="pipelines", help="Registered pipelines.")
