"""
CLI: ``commonsync pipelines`` -- registered import pipelines.
"""

from __future__ import annotations

import typer

from commonsync.cli.utils import print_table
from commonsync.framework.registry import get_pipeline, list_pipelines

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_cmd() -> None:
    """List registered pipelines."""
    print_table(
        [{"name": name, "description": get_pipeline(name).description} for name in list_pipelines()],
        title="Pipelines",
    )
