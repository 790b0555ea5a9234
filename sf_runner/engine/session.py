"""
Execution session: bounded-parallel scheduler over a seed source.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional

from sf_runner.engine.log_filter import filter_logs
from sf_runner.engine.protocols import OutcomeReporter, RunSupervisor
from sf_runner.engine.state import SessionState
from sf_runner.engine.supervisor import ProcessSupervisor
from sf_runner.models.config import FinderConfig
from sf_runner.models.types import (
    ReportOutcome,
    RunRequest,
    RunResult,
    RunStatus,
    SessionOutcome,
    SessionPhase,
    SessionSummary,
)
from sf_runner.seeds import SeedSource
from sf_runner.stop_token import StopToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedReport:
    """Result of one seed's full pipeline (run, filter, report)."""

    seed: int
    status: RunStatus
    report: Optional[ReportOutcome] = None
    internal_error: Optional[str] = None


class ExecutionSession:
    """Runs seeds through the simulator with at most ``chunk_size`` in flight."""

    def __init__(
        self,
        config: FinderConfig,
        reporter: OutcomeReporter,
        supervisor: RunSupervisor | None = None,
        stop_token: StopToken | None = None,
        state: SessionState | None = None,
    ) -> None:
        self.config = config
        self.reporter = reporter
        self.supervisor = supervisor or ProcessSupervisor()
        self.stop_token = stop_token
        self.state = state or SessionState()
        self.state.register_callback(self._on_phase_change)

    @property
    def halt_on_fault(self) -> bool:
        return self.config.fail_fast or self.reporter.halts_on_fault

    def run(self, source: SeedSource) -> SessionSummary:
        """Drive the source to exhaustion, abort, or external stop."""
        start = time.monotonic()
        chunk_size = self.config.chunk_size
        total = source.total
        end = "inf" if total is None else str(total)
        in_flight: Dict[Future[SeedReport], int] = {}
        stopped = False

        logger.info(
            "Starting session: chunk_size=%s fail_fast=%s timeout=%ss seeds=%s",
            chunk_size,
            self.config.fail_fast,
            self.config.timeout_seconds,
            end,
        )
        with ThreadPoolExecutor(
            max_workers=chunk_size, thread_name_prefix="seed"
        ) as executor:
            while True:
                if not stopped and self._stop_requested():
                    stopped = True
                    logger.warning(
                        "Stop requested (%s); waiting for %d in-flight seed(s)",
                        self.stop_token.reason if self.stop_token else "unknown",
                        len(in_flight),
                    )
                if not stopped:
                    self._fill_slots(executor, source, in_flight, chunk_size)
                if not in_flight:
                    break

                done, _ = concurrent.futures.wait(
                    in_flight, timeout=1.0, return_when=concurrent.futures.FIRST_COMPLETED
                )
                for future in done:
                    seed = in_flight.pop(future)
                    self._collect(future, seed)
                    snap = self.state.snapshot()
                    logger.info("Running seeds [%d/%s]", snap.completed, end)

        self.state.complete()
        return self._summarize(time.monotonic() - start, stopped)

    def _stop_requested(self) -> bool:
        return bool(self.stop_token and self.stop_token.should_stop())

    def _fill_slots(
        self,
        executor: ThreadPoolExecutor,
        source: SeedSource,
        in_flight: Dict[Future[SeedReport], int],
        chunk_size: int,
    ) -> None:
        # One seed per free slot so nothing is drawn once a worker trips the abort.
        while len(in_flight) < chunk_size and self.state.accepting_work():
            batch = source.next_batch(1)
            if not batch:
                return
            seed = batch[0]
            self.state.record_dispatch()
            logger.info("Starting to check seed %s", seed)
            in_flight[executor.submit(self._run_pipeline, seed)] = seed

    def _collect(self, future: Future[SeedReport], seed: int) -> None:
        try:
            report = future.result()
            if report.internal_error:
                logger.error(
                    "Seed %s counted as faulty after an internal error: %s",
                    seed,
                    report.internal_error,
                )
            elif report.report is not None:
                logger.info(
                    "Seed %s finished with %s (%s)",
                    seed,
                    report.status.value,
                    report.report.kind.value,
                )
        except Exception:
            # _run_pipeline handles its own errors; this is a bug guard.
            logger.exception("Seed %s pipeline crashed", seed)
            self.state.record_fault(seed, halt=self.halt_on_fault)
        finally:
            self.state.record_completion()

    def _build_request(self, seed: int) -> RunRequest:
        return RunRequest(
            seed=seed,
            workload_file=self.config.workload_file,
            simulator_path=self.config.simulator_path,
            timeout_seconds=self.config.timeout_seconds,
            work_root=self.config.work_dir,
        )

    def _run_pipeline(self, seed: int) -> SeedReport:
        """Run, filter and report one seed; always removes its run directory."""
        result: RunResult | None = None
        try:
            result = self.supervisor.execute(self._build_request(seed))
            if result.status is RunStatus.SUCCESS:
                return SeedReport(seed=seed, status=result.status)
            if result.status is RunStatus.TIMED_OUT:
                self.state.record_timeout()
                return SeedReport(seed=seed, status=result.status)
            return self._handle_fault(result)
        except Exception as exc:
            logger.exception("Internal error while processing seed %s", seed)
            self.state.record_fault(seed, halt=self.halt_on_fault)
            return SeedReport(
                seed=seed, status=RunStatus.FAILURE, internal_error=str(exc)
            )
        finally:
            if result is not None:
                result.cleanup()

    def _handle_fault(self, result: RunResult) -> SeedReport:
        if result.is_startup_error:
            logger.error("Seed %s could not start the simulator: %s", result.seed, result.error)
        else:
            logger.warning("Faulty seed found: %s (exit code %s)", result.seed, result.exit_code)
        self.state.record_fault(
            result.seed,
            halt=self.halt_on_fault,
            startup_error=result.is_startup_error,
        )
        try:
            entries = filter_logs(result.log_dir)
            outcome = self.reporter.report(result, entries)
        except Exception as exc:
            logger.exception("Reporting seed %s failed", result.seed)
            outcome = ReportOutcome.reporting_failed(str(exc))
        self.state.record_report(outcome)
        if outcome.filed:
            logger.info("Seed %s reported: %s", result.seed, outcome.url)
        return SeedReport(seed=result.seed, status=result.status, report=outcome)

    def _on_phase_change(self, phase: SessionPhase, reason: Optional[str]) -> None:
        if phase is SessionPhase.FAIL_FAST_ABORTING:
            logger.warning(
                "Stopping dispatch after %s; draining in-flight seeds", reason
            )
        else:
            logger.debug("Session phase -> %s", phase.value)

    def _summarize(self, elapsed: float, stopped: bool) -> SessionSummary:
        snap = self.state.snapshot()
        if snap.faults == 0:
            outcome = SessionOutcome.ALL_CLEAN
        elif snap.reported == snap.faults:
            outcome = SessionOutcome.FAULT_FOUND_AND_REPORTED
        else:
            outcome = SessionOutcome.FAULT_FOUND
        summary = SessionSummary(
            outcome=outcome,
            phase=snap.phase,
            dispatched=snap.dispatched,
            completed=snap.completed,
            faults=snap.faults,
            reported=snap.reported,
            timed_out=snap.timed_out,
            startup_errors=snap.startup_errors,
            faulty_seeds=snap.faulty_seeds,
            issue_urls=snap.issue_urls,
            stopped=stopped,
            abort_reason=snap.abort_reason,
            elapsed_seconds=elapsed,
        )
        logger.info(
            "Session finished: outcome=%s dispatched=%d faults=%d timed_out=%d in %.1fs",
            outcome.value,
            summary.dispatched,
            summary.faults,
            summary.timed_out,
            elapsed,
        )
        return summary
