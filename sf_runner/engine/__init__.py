"""Seed execution engine: supervisor, log filter and scheduler."""
