"""Protocols the execution session depends on."""

from __future__ import annotations

from typing import Protocol, Sequence

from sf_runner.models.types import FilteredLogEntry, ReportOutcome, RunRequest, RunResult


class RunSupervisor(Protocol):
    def execute(self, request: RunRequest) -> RunResult:
        ...


class OutcomeReporter(Protocol):
    """Sink for faulty runs."""

    @property
    def halts_on_fault(self) -> bool:
        """True when the first fault should stop further dispatch."""
        ...

    def report(
        self, result: RunResult, entries: Sequence[FilteredLogEntry]
    ) -> ReportOutcome:
        ...
