"""Runner facade for sim-seed-finder.

Re-exports the pieces needed to run a seed session without reaching into
the engine modules.
"""

from sf_runner.api import (
    ExecutionSession,
    FinderConfig,
    ProcessSupervisor,
    SeedSource,
    SessionSummary,
    StopToken,
)

__all__ = [
    "ExecutionSession",
    "FinderConfig",
    "ProcessSupervisor",
    "SeedSource",
    "SessionSummary",
    "StopToken",
]
