"""Value types shared by the seed runner and the reporters."""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_SEED = 2**32 - 1


class RunStatus(str, Enum):
    """Terminal classification of one simulator invocation."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class RunRequest:
    """Everything needed to run the simulator once for a seed."""

    seed: int
    workload_file: Path
    simulator_path: Path
    timeout_seconds: float
    work_root: Optional[Path] = None


@dataclass
class RunResult:
    """Outcome of one RunRequest, owned by the pipeline that produced it."""

    seed: int
    status: RunStatus
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    log_dir: Optional[Path] = None
    run_dir: Optional[Path] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def is_fault(self) -> bool:
        return self.status is RunStatus.FAILURE

    @property
    def is_startup_error(self) -> bool:
        return self.is_fault and self.exit_code is None and self.error is not None

    def cleanup(self) -> None:
        """Remove the run directory; failures are logged, never raised."""
        if self.run_dir is None:
            return
        try:
            shutil.rmtree(self.run_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning(
                "Failed to remove run directory %s for seed %s: %s",
                self.run_dir,
                self.seed,
                exc,
            )
            return
        self.run_dir = None
        self.log_dir = None


@dataclass(frozen=True)
class FilteredLogEntry:
    """Trace record kept by the log filter."""

    layer: str
    severity: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.fields, indent=2)


class ReportKind(str, Enum):
    ISSUE_CREATED = "issue_created"
    PRINTED_LOCALLY = "printed_locally"
    REPORTING_FAILED = "reporting_failed"


@dataclass(frozen=True)
class ReportOutcome:
    """What the outcome reporter did with a faulty run."""

    kind: ReportKind
    url: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def issue_created(cls, url: str) -> "ReportOutcome":
        return cls(kind=ReportKind.ISSUE_CREATED, url=url)

    @classmethod
    def printed_locally(cls) -> "ReportOutcome":
        return cls(kind=ReportKind.PRINTED_LOCALLY)

    @classmethod
    def reporting_failed(cls, reason: str) -> "ReportOutcome":
        return cls(kind=ReportKind.REPORTING_FAILED, reason=reason)

    @property
    def filed(self) -> bool:
        return self.kind is ReportKind.ISSUE_CREATED


class SessionPhase(str, Enum):
    """Lifecycle phases of an execution session."""

    RUNNING = "running"
    FAIL_FAST_ABORTING = "fail_fast_aborting"
    COMPLETED = "completed"


class SessionOutcome(str, Enum):
    ALL_CLEAN = "all_clean"
    FAULT_FOUND = "fault_found"
    FAULT_FOUND_AND_REPORTED = "fault_found_and_reported"


EXIT_CLEAN = 0
EXIT_FAULT = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


@dataclass(frozen=True)
class SessionSummary:
    """Final accounting of an execution session."""

    outcome: SessionOutcome
    phase: SessionPhase
    dispatched: int
    completed: int
    faults: int
    reported: int
    timed_out: int
    startup_errors: int = 0
    faulty_seeds: List[int] = field(default_factory=list)
    issue_urls: List[str] = field(default_factory=list)
    stopped: bool = False
    abort_reason: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None

    def exit_code(self) -> int:
        """Map the session outcome to the process exit status."""
        if self.outcome is SessionOutcome.FAULT_FOUND:
            return EXIT_FAULT
        if self.outcome is SessionOutcome.FAULT_FOUND_AND_REPORTED and self.aborted:
            return EXIT_FAULT
        if self.stopped:
            return EXIT_INTERRUPTED
        return EXIT_CLEAN
