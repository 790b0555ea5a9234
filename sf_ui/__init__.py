"""Command-line front end for sim-seed-finder."""

from sf_ui.cli import app, main

__all__ = ["app", "main"]
