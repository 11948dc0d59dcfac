"""commonsync command-line interface."""

from commonsync.cli.app import app

__all__ = ["app"]
