"""Shared helpers for sim-seed-finder."""

from sf_common.api import ConfigurationError, SFError, configure_logging

__all__ = ["ConfigurationError", "SFError", "configure_logging"]
