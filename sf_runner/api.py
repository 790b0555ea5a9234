"""Public API surface for sf_runner."""

from sf_runner.engine.log_filter import filter_logs, render_entries
from sf_runner.engine.protocols import OutcomeReporter, RunSupervisor
from sf_runner.engine.session import ExecutionSession, SeedReport
from sf_runner.engine.state import SessionState
from sf_runner.engine.supervisor import ProcessSupervisor, terminate_process_tree
from sf_runner.models.config import FinderConfig, GitlabSettings, load_config
from sf_runner.models.types import (
    EXIT_CLEAN,
    EXIT_CONFIG_ERROR,
    EXIT_FAULT,
    EXIT_INTERRUPTED,
    MAX_SEED,
    FilteredLogEntry,
    ReportKind,
    ReportOutcome,
    RunRequest,
    RunResult,
    RunStatus,
    SessionOutcome,
    SessionPhase,
    SessionSummary,
)
from sf_runner.seeds import SeedSource, merge_user_defined_seeds, parse_seed_file
from sf_runner.stop_token import StopToken

__all__ = [
    "EXIT_CLEAN",
    "EXIT_CONFIG_ERROR",
    "EXIT_FAULT",
    "EXIT_INTERRUPTED",
    "MAX_SEED",
    "ExecutionSession",
    "FilteredLogEntry",
    "FinderConfig",
    "GitlabSettings",
    "OutcomeReporter",
    "ProcessSupervisor",
    "ReportKind",
    "ReportOutcome",
    "RunRequest",
    "RunResult",
    "RunStatus",
    "RunSupervisor",
    "SeedReport",
    "SeedSource",
    "SessionOutcome",
    "SessionPhase",
    "SessionState",
    "SessionSummary",
    "StopToken",
    "filter_logs",
    "load_config",
    "merge_user_defined_seeds",
    "parse_seed_file",
    "render_entries",
    "terminate_process_tree",
]
