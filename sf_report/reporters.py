"""Outcome reporters: file a GitLab issue or dump the fault locally."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Sequence

from rich.console import Console
from rich.rule import Rule

from sf_common.errors import ReportingError, error_to_payload
from sf_report.archive import archive_directory
from sf_report.gitlab_client import GitlabClient
from sf_runner.engine.log_filter import render_entries
from sf_runner.engine.protocols import OutcomeReporter
from sf_runner.models.config import FinderConfig
from sf_runner.models.types import FilteredLogEntry, ReportOutcome, RunResult

logger = logging.getLogger(__name__)

UNSPECIFIED_COMMIT = "Non specified"


class LocalPrintReporter:
    """Dumps a faulty run to the terminal; the simulator stderr goes to stderr."""

    def __init__(
        self,
        console: Console | None = None,
        err_console: Console | None = None,
        *,
        halt_on_fault: bool = True,
    ) -> None:
        self.console = console or Console(soft_wrap=True)
        self.err_console = err_console or Console(stderr=True, soft_wrap=True)
        self._halt_on_fault = halt_on_fault
        self._lock = threading.Lock()

    @property
    def halts_on_fault(self) -> bool:
        return self._halt_on_fault

    def report(
        self, result: RunResult, entries: Sequence[FilteredLogEntry]
    ) -> ReportOutcome:
        filtered = render_entries(entries)
        with self._lock:
            self.console.print(Rule(f"Faulty seed {result.seed}"))
            if result.error:
                self.console.print(f"error: {result.error}", markup=False)
            self.console.print("stdout:\n", markup=False)
            self.console.print(result.stdout, markup=False, highlight=False)
            self.err_console.print("stderr:\n", markup=False)
            self.err_console.print(result.stderr, markup=False, highlight=False)
            self.console.print("layer errors (filtered_output):\n", markup=False)
            if filtered:
                self.console.print(filtered, markup=False, highlight=False)
        return ReportOutcome.printed_locally()


def build_issue_description(
    *,
    commit_id: Optional[str],
    stdout_url: str,
    stderr_url: str,
    logs_url: str,
    filtered_output: str,
    error: Optional[str] = None,
) -> str:
    """Render the markdown body of a faulty-seed issue."""
    lines = [
        f"- Commit ID: {commit_id or UNSPECIFIED_COMMIT}",
        f"- Output: [simulation.out]({stdout_url})",
        f"- Stderr : [simulation.err]({stderr_url})",
        f"- Full logs: [logs.tar.gz]({logs_url})",
    ]
    if error:
        lines.append(f"- Harness error: {error}")
    lines.append("- Layer errors:")
    lines.append("```json")
    lines.append(filtered_output)
    lines.append("```")
    return "\n".join(lines) + "\n"


class GitlabReporter:
    """Uploads a faulty run's artifacts and opens an issue for it."""

    halts_on_fault = False

    def __init__(
        self,
        client: GitlabClient,
        commit_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.commit_id = commit_id
        self._clock = clock

    def report(
        self, result: RunResult, entries: Sequence[FilteredLogEntry]
    ) -> ReportOutcome:
        try:
            url = self._file_issue(result, entries)
        except ReportingError as exc:
            logger.error(
                "Failed to report seed %s to GitLab: %s",
                result.seed,
                error_to_payload(exc),
            )
            return ReportOutcome.reporting_failed(str(exc))
        except OSError as exc:
            logger.error("Cannot archive logs of seed %s: %s", result.seed, exc)
            return ReportOutcome.reporting_failed(str(exc))
        return ReportOutcome.issue_created(url)

    def _file_issue(
        self, result: RunResult, entries: Sequence[FilteredLogEntry]
    ) -> str:
        seed = result.seed
        now = int(self._clock())
        stdout_url = self.client.upload_artifact(
            result.stdout.encode("utf-8"), f"simulation_stdout_seed_{seed}_{now}.txt"
        )
        stderr_url = self.client.upload_artifact(
            result.stderr.encode("utf-8"), f"simulation_stderr_seed_{seed}_{now}.txt"
        )
        logs = archive_directory(result.log_dir)
        logs_url = self.client.upload_artifact(
            logs, f"simulation_logs_seed_{seed}_{now}.tar.gz"
        )
        description = build_issue_description(
            commit_id=self.commit_id,
            stdout_url=stdout_url,
            stderr_url=stderr_url,
            logs_url=logs_url,
            filtered_output=render_entries(entries),
            error=result.error,
        )
        return self.client.create_issue(f"Investigate Faulty Seed #{seed}", description)


def build_reporter(
    config: FinderConfig,
    console: Console | None = None,
    err_console: Console | None = None,
) -> OutcomeReporter:
    """Pick the reporter variant once from validated configuration."""
    gitlab = config.gitlab
    if gitlab.enabled:
        logger.info(
            "Export reports to GitLab (host=%s project_id=%s)",
            gitlab.host,
            gitlab.project_id,
        )
        client = GitlabClient(
            host=gitlab.host,
            token=gitlab.token or "",
            project_id=int(gitlab.project_id or 0),
        )
        return GitlabReporter(client, commit_id=config.commit_id)
    logger.info("No GitLab API configured, skipping GitLab export")
    return LocalPrintReporter(
        console, err_console, halt_on_fault=config.halt_on_unreported_fault
    )
