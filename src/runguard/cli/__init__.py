"""Command-line interface."""

from runguard.cli.app import app

__all__ = ["app"]
