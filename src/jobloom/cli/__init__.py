"""jobloom command-line interface."""

from jobloom.cli.app import app

__all__ = ["app"]
