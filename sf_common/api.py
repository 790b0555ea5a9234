"""Public API surface for sf_common."""

from sf_common.errors import (
    ConfigurationError,
    ReportingError,
    RunIOError,
    SFError,
    StartupError,
    error_to_payload,
)
from sf_common.logging import configure_logging

__all__ = [
    "ConfigurationError",
    "ReportingError",
    "RunIOError",
    "SFError",
    "StartupError",
    "configure_logging",
    "error_to_payload",
]
