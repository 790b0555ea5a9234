"""Thread-safe session state shared by the scheduler and its workers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sf_runner.models.types import ReportOutcome, SessionPhase

_ALLOWED_TRANSITIONS = {
    SessionPhase.RUNNING: {
        SessionPhase.FAIL_FAST_ABORTING,
        SessionPhase.COMPLETED,
    },
    SessionPhase.FAIL_FAST_ABORTING: {SessionPhase.COMPLETED},
    SessionPhase.COMPLETED: set(),
}


@dataclass(frozen=True)
class StateSnapshot:
    phase: SessionPhase
    dispatched: int
    completed: int
    faults: int
    reported: int
    timed_out: int
    startup_errors: int
    faulty_seeds: List[int] = field(default_factory=list)
    issue_urls: List[str] = field(default_factory=list)
    abort_reason: Optional[str] = None

    @property
    def in_flight(self) -> int:
        return self.dispatched - self.completed


class SessionState:
    """Counters, fault flag and phase for one session.

    Every mutation happens under a single lock so concurrent completions
    never lose or double-count an update.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._phase = SessionPhase.RUNNING
        self._abort_reason: Optional[str] = None
        self._dispatched = 0
        self._completed = 0
        self._faults = 0
        self._reported = 0
        self._timed_out = 0
        self._startup_errors = 0
        self._faulty_seeds: List[int] = []
        self._issue_urls: List[str] = []
        self._callbacks: list[Callable[[SessionPhase, Optional[str]], None]] = []

    @property
    def phase(self) -> SessionPhase:
        with self._lock:
            return self._phase

    @property
    def fault_found(self) -> bool:
        with self._lock:
            return self._faults > 0

    def accepting_work(self) -> bool:
        with self._lock:
            return self._phase is SessionPhase.RUNNING

    def register_callback(
        self, callback: Callable[[SessionPhase, Optional[str]], None]
    ) -> None:
        """Register a callback invoked on every phase transition."""
        self._callbacks.append(callback)

    def _transition(self, new_phase: SessionPhase, reason: Optional[str]) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self._phase, set())
        if new_phase not in allowed:
            raise ValueError(f"Invalid transition {self._phase.value} -> {new_phase.value}")
        self._phase = new_phase
        for cb in list(self._callbacks):
            try:
                cb(new_phase, reason)
            except Exception:
                continue

    def record_dispatch(self, count: int = 1) -> None:
        with self._lock:
            self._dispatched += count

    def record_completion(self) -> None:
        with self._lock:
            if self._completed >= self._dispatched:
                raise ValueError("More completions than dispatched runs")
            self._completed += 1

    def record_timeout(self) -> None:
        with self._lock:
            self._timed_out += 1

    def record_fault(self, seed: int, *, halt: bool, startup_error: bool = False) -> None:
        """Count a faulty seed; ``halt`` stops further dispatch."""
        with self._lock:
            self._faults += 1
            self._faulty_seeds.append(seed)
            if startup_error:
                self._startup_errors += 1
            if halt:
                self._request_abort_locked(f"faulty seed {seed}")

    def record_report(self, outcome: ReportOutcome) -> None:
        with self._lock:
            if outcome.filed:
                self._reported += 1
                if outcome.url:
                    self._issue_urls.append(outcome.url)

    def _request_abort_locked(self, reason: str) -> bool:
        if self._phase is not SessionPhase.RUNNING:
            return False
        self._abort_reason = reason
        self._transition(SessionPhase.FAIL_FAST_ABORTING, reason)
        return True

    def request_abort(self, reason: str) -> bool:
        """Stop dispatching new seeds. Returns False if already aborting."""
        with self._lock:
            return self._request_abort_locked(reason)

    def complete(self) -> None:
        with self._lock:
            if self._phase is not SessionPhase.COMPLETED:
                self._transition(SessionPhase.COMPLETED, self._abort_reason)

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            return StateSnapshot(
                phase=self._phase,
                dispatched=self._dispatched,
                completed=self._completed,
                faults=self._faults,
                reported=self._reported,
                timed_out=self._timed_out,
                startup_errors=self._startup_errors,
                faulty_seeds=list(self._faulty_seeds),
                issue_urls=list(self._issue_urls),
                abort_reason=self._abort_reason,
            )
