"""Unit tests for the ExecutionSession scheduler."""

from __future__ import annotations

import logging
import random
import threading
import time
from pathlib import Path
from typing import List, Sequence
from unittest.mock import MagicMock

import pytest

from sf_runner.engine.session import ExecutionSession
from sf_runner.models.config import load_config
from sf_runner.models.types import (
    FilteredLogEntry,
    ReportOutcome,
    RunResult,
    RunStatus,
    SessionOutcome,
    SessionPhase,
)
from sf_runner.seeds import SeedSource
from sf_runner.stop_token import StopToken


pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


class RecordingReporter:
    """Reporter double that records what it was asked to report."""

    def __init__(self, outcome: ReportOutcome | None = None, halts: bool = False) -> None:
        self.outcome = outcome or ReportOutcome.issue_created("https://gitlab.example/issues/1")
        self.halts_on_fault = halts
        self.reported: List[int] = []
        self.on_report = None
        self._lock = threading.Lock()

    def report(self, result: RunResult, entries: Sequence[FilteredLogEntry]) -> ReportOutcome:
        assert result.run_dir is not None and result.run_dir.exists()
        with self._lock:
            self.reported.append(result.seed)
        if self.on_report:
            self.on_report(result)
        return self.outcome


def _config(workload_file: Path, **overrides):
    return load_config(workload_file=workload_file, **overrides)


def test_all_clean_session(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor()
    reporter = RecordingReporter()
    config = _config(workload_file, seeds=[1, 2, 3], chunk_size=3)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert summary.outcome is SessionOutcome.ALL_CLEAN
    assert summary.exit_code() == 0
    assert summary.phase is SessionPhase.COMPLETED
    assert sorted(supervisor.seeds) == [1, 2, 3]
    assert (summary.dispatched, summary.completed) == (3, 3)
    assert reporter.reported == []
    assert not any(path.exists() for path in supervisor.run_dirs)


def test_dispatch_never_exceeds_iteration_cap(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor()
    config = _config(workload_file, max_iterations=37, chunk_size=5)
    source = SeedSource(max_iterations=37, rng=random.Random(7))

    summary = ExecutionSession(config, RecordingReporter(), supervisor=supervisor).run(source)

    assert summary.dispatched == 37
    assert len(supervisor.requests) == 37
    assert supervisor.max_active <= 5


def test_seed_list_and_file_are_all_scheduled(
    scripted_supervisor, workload_file: Path, tmp_path: Path
) -> None:
    seed_file = tmp_path / "seeds.txt"
    seed_file.write_text("3\n4\n1\n")
    supervisor = scripted_supervisor()
    config = _config(workload_file, seeds=[1, 2], seed_file=seed_file, chunk_size=2)

    summary = ExecutionSession(config, RecordingReporter(), supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert summary.dispatched == 5
    assert sorted(supervisor.seeds) == [1, 1, 2, 3, 4]


def test_pool_is_kept_full(scripted_supervisor, workload_file: Path) -> None:
    release = threading.Event()
    started = threading.Semaphore(0)

    def slow() -> RunStatus:
        started.release()
        release.wait(5)
        return RunStatus.SUCCESS

    supervisor = scripted_supervisor({seed: slow for seed in range(1, 7)})
    config = _config(workload_file, seeds=list(range(1, 7)), chunk_size=3)
    session = ExecutionSession(config, RecordingReporter(), supervisor=supervisor)

    worker = threading.Thread(target=lambda: session.run(SeedSource.from_config(config)))
    worker.start()
    for _ in range(3):
        assert started.acquire(timeout=5)
    time.sleep(0.2)
    assert supervisor.active == 3
    assert session.state.snapshot().dispatched == 3
    release.set()
    worker.join(10)
    assert not worker.is_alive()
    assert supervisor.max_active == 3


def test_failures_are_reported_without_stopping(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor({2: RunStatus.FAILURE, 4: RunStatus.FAILURE})
    reporter = RecordingReporter()
    config = _config(workload_file, seeds=[1, 2, 3, 4, 5], chunk_size=2)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert summary.dispatched == 5
    assert sorted(reporter.reported) == [2, 4]
    assert summary.outcome is SessionOutcome.FAULT_FOUND_AND_REPORTED
    assert summary.exit_code() == 0
    assert sorted(summary.faulty_seeds) == [2, 4]
    assert len(summary.issue_urls) == 2


def test_reporting_failure_keeps_seed_faulty(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor({1: RunStatus.FAILURE})
    reporter = RecordingReporter(ReportOutcome.reporting_failed("HTTP 503"))
    config = _config(workload_file, seeds=[1, 2], chunk_size=1)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert summary.dispatched == 2
    assert summary.faults == 1
    assert summary.reported == 0
    assert summary.outcome is SessionOutcome.FAULT_FOUND
    assert summary.exit_code() != 0


def test_timeouts_are_not_faults(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor({1: RunStatus.TIMED_OUT})
    reporter = RecordingReporter()
    config = _config(workload_file, seeds=[1, 2], chunk_size=2, fail_fast=True)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert summary.outcome is SessionOutcome.ALL_CLEAN
    assert summary.timed_out == 1
    assert summary.faults == 0
    assert reporter.reported == []
    assert summary.exit_code() == 0
    assert not any(path.exists() for path in supervisor.run_dirs)


def test_fail_fast_drains_in_flight_runs(scripted_supervisor, workload_file: Path) -> None:
    sibling_release = threading.Event()

    def sibling() -> RunStatus:
        assert sibling_release.wait(5)
        return RunStatus.SUCCESS

    supervisor = scripted_supervisor({7: RunStatus.FAILURE, 8: sibling})
    reporter = RecordingReporter()
    reporter.on_report = lambda result: sibling_release.set()
    config = _config(workload_file, seeds=[7, 8, 9, 10], chunk_size=2, fail_fast=True)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert sorted(supervisor.seeds) == [7, 8]
    assert sorted(supervisor.finished) == [7, 8]
    assert summary.dispatched == summary.completed == 2
    assert summary.phase is SessionPhase.COMPLETED
    assert summary.outcome is SessionOutcome.FAULT_FOUND_AND_REPORTED
    assert summary.abort_reason == "faulty seed 7"
    assert summary.exit_code() == 1
    assert not any(path.exists() for path in supervisor.run_dirs)


def test_fail_fast_stops_unbounded_random_source(
    scripted_supervisor, workload_file: Path
) -> None:
    supervisor = scripted_supervisor()
    calls = {"n": 0}
    lock = threading.Lock()
    original = supervisor.execute

    def execute(request):
        with lock:
            calls["n"] += 1
            fail = calls["n"] == 5
        result = original(request)
        if fail:
            result.status = RunStatus.FAILURE
            result.exit_code = 1
        return result

    supervisor.execute = execute
    config = _config(workload_file, chunk_size=1, fail_fast=True)
    summary = ExecutionSession(config, RecordingReporter(), supervisor=supervisor).run(
        SeedSource(rng=random.Random(3))
    )

    assert summary.faults == 1
    assert summary.dispatched == summary.completed == 5
    assert summary.phase is SessionPhase.COMPLETED


def test_local_reporter_halting_acts_as_fail_fast(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor({5: RunStatus.FAILURE})
    reporter = RecordingReporter(ReportOutcome.printed_locally(), halts=True)
    config = _config(workload_file, seeds=[5, 6, 7], chunk_size=1)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert supervisor.seeds == [5]
    assert summary.outcome is SessionOutcome.FAULT_FOUND
    assert summary.exit_code() == 1


def test_local_reporter_can_continue_past_faults(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor({5: RunStatus.FAILURE})
    reporter = RecordingReporter(ReportOutcome.printed_locally(), halts=False)
    config = _config(workload_file, seeds=[5, 6, 7], chunk_size=1)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert supervisor.seeds == [5, 6, 7]
    assert summary.outcome is SessionOutcome.FAULT_FOUND
    assert summary.exit_code() == 1


def test_pipeline_error_counts_as_fault_and_cleans_up(
    scripted_supervisor, workload_file: Path
) -> None:
    supervisor = scripted_supervisor({1: RunStatus.FAILURE})
    reporter = MagicMock()
    reporter.halts_on_fault = False
    reporter.report.side_effect = RuntimeError("reporter bug")
    config = _config(workload_file, seeds=[1, 2], chunk_size=1)

    summary = ExecutionSession(config, reporter, supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert summary.faults == 1
    assert summary.dispatched == 2
    assert summary.outcome is SessionOutcome.FAULT_FOUND
    assert not any(path.exists() for path in supervisor.run_dirs)


def test_stop_token_stops_dispatch_and_drains(scripted_supervisor, workload_file: Path) -> None:
    token = StopToken(enable_signals=False)

    def trip() -> RunStatus:
        token.request_stop()
        return RunStatus.SUCCESS

    supervisor = scripted_supervisor({1: trip})
    config = _config(workload_file, seeds=[1, 2, 3, 4], chunk_size=1)

    summary = ExecutionSession(
        config, RecordingReporter(), supervisor=supervisor, stop_token=token
    ).run(SeedSource.from_config(config))

    assert supervisor.seeds == [1]
    assert summary.stopped is True
    assert summary.outcome is SessionOutcome.ALL_CLEAN
    assert summary.exit_code() == 130


def test_empty_source_completes_immediately(scripted_supervisor, workload_file: Path) -> None:
    supervisor = scripted_supervisor()
    config = _config(workload_file, max_iterations=0)

    summary = ExecutionSession(config, RecordingReporter(), supervisor=supervisor).run(
        SeedSource.from_config(config)
    )

    assert summary.dispatched == 0
    assert summary.outcome is SessionOutcome.ALL_CLEAN
    assert summary.phase is SessionPhase.COMPLETED


def test_seed_outcomes_are_logged(scripted_supervisor, workload_file: Path, caplog) -> None:
    def crash() -> RunStatus:
        raise RuntimeError("boom")

    supervisor = scripted_supervisor({2: RunStatus.FAILURE, 3: crash})
    config = _config(workload_file, seeds=[1, 2, 3], chunk_size=1)

    with caplog.at_level(logging.INFO, logger="sf_runner.engine.session"):
        summary = ExecutionSession(config, RecordingReporter(), supervisor=supervisor).run(
            SeedSource.from_config(config)
        )

    assert summary.faults == 2
    assert sorted(summary.faulty_seeds) == [2, 3]
    assert "Seed 2 finished with failure (issue_created)" in caplog.text
    assert "Seed 3 counted as faulty after an internal error: boom" in caplog.text
    assert "Seed 1 finished" not in caplog.text
