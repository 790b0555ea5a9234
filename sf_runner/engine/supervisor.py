"""
Supervisor for a single simulator invocation.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from sf_common.errors import RunIOError, StartupError
from sf_runner.models.types import RunRequest, RunResult, RunStatus

logger = logging.getLogger(__name__)

DEFAULT_KILL_GRACE_SECONDS = 5.0
STDOUT_FILENAME = "simulation.out"
STDERR_FILENAME = "simulation.err"
LOGS_DIRNAME = "logs"
DATA_DIRNAME = "simfdb"


def build_command(request: RunRequest, run_dir: Path) -> List[str]:
    """Return the simulator argv for a request."""
    return [
        str(request.simulator_path),
        "-r",
        "simulation",
        "-b",
        "on",
        "--trace-format",
        "json",
        "-f",
        str(request.workload_file),
        "-d",
        str(run_dir / DATA_DIRNAME),
        "-L",
        str(run_dir / LOGS_DIRNAME),
        "-s",
        str(request.seed),
    ]


def _signal_group(proc: subprocess.Popen, sig: int) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass


def terminate_process_tree(
    proc: subprocess.Popen, grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS
) -> Optional[int]:
    """Best-effort kill of a process and everything in its process group.

    Sends SIGTERM first and escalates to SIGKILL once the grace period runs
    out. The child is always reaped before returning.
    """
    use_group = hasattr(os, "killpg")
    if proc.poll() is None:
        try:
            if use_group:
                _signal_group(proc, signal.SIGTERM)
            else:
                proc.terminate()
        except OSError as exc:
            logger.warning("Failed to terminate process %s: %s", proc.pid, exc)
    try:
        proc.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        logger.warning(
            "Process %s ignored SIGTERM for %.1fs; killing", proc.pid, grace_seconds
        )
    # Descendants may still be alive even when the leader already exited.
    try:
        if use_group:
            _signal_group(proc, signal.SIGKILL)
        elif proc.poll() is None:
            proc.kill()
    except OSError as exc:
        logger.warning("Failed to kill process %s: %s", proc.pid, exc)
    return proc.wait()


class ProcessSupervisor:
    """Runs the simulator once per request and classifies the exit."""

    def __init__(self, kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS) -> None:
        self.kill_grace_seconds = kill_grace_seconds

    def execute(self, request: RunRequest) -> RunResult:
        """
        Run one simulation to completion or forced termination.

        Args:
            request: Seed, workload and binary for this run.

        Returns:
            RunResult referencing the still-populated run directory. The
            caller owns the directory and must call ``RunResult.cleanup``.
        """
        start = time.monotonic()
        try:
            run_dir = self._prepare_run_dir(request)
        except RunIOError as exc:
            logger.error("Seed %s: %s", request.seed, exc)
            return RunResult(
                seed=request.seed,
                status=RunStatus.FAILURE,
                error=str(exc),
                duration_seconds=time.monotonic() - start,
            )

        try:
            result = self._run(request, run_dir)
        except BaseException:
            shutil.rmtree(run_dir, ignore_errors=True)
            raise
        result.duration_seconds = time.monotonic() - start
        return result

    def _prepare_run_dir(self, request: RunRequest) -> Path:
        try:
            run_dir = Path(
                tempfile.mkdtemp(
                    prefix=f"seed_{request.seed}_",
                    dir=str(request.work_root) if request.work_root else None,
                )
            )
            (run_dir / LOGS_DIRNAME).mkdir()
            (run_dir / DATA_DIRNAME).mkdir()
        except OSError as exc:
            raise RunIOError(
                "Cannot create run directory",
                context={"seed": request.seed, "work_root": request.work_root},
                cause=exc,
            ) from exc
        return run_dir

    def _run(self, request: RunRequest, run_dir: Path) -> RunResult:
        log_dir = run_dir / LOGS_DIRNAME
        stdout_path = run_dir / STDOUT_FILENAME
        stderr_path = run_dir / STDERR_FILENAME
        cmd = build_command(request, run_dir)
        logger.debug("Seed %s: executing %s", request.seed, " ".join(cmd))

        try:
            with stdout_path.open("wb") as out, stderr_path.open("wb") as err:
                try:
                    proc = self._spawn(cmd, run_dir, out, err)
                except StartupError as exc:
                    logger.error(
                        "Seed %s: simulator failed to start: %s", request.seed, exc
                    )
                    return RunResult(
                        seed=request.seed,
                        status=RunStatus.FAILURE,
                        log_dir=log_dir,
                        run_dir=run_dir,
                        error=str(exc),
                    )
                status, exit_code = self._wait(proc, request)
        except OSError as exc:
            logger.error("Seed %s: cannot open output files: %s", request.seed, exc)
            return RunResult(
                seed=request.seed,
                status=RunStatus.FAILURE,
                log_dir=log_dir,
                run_dir=run_dir,
                error=f"Cannot open output files: {exc}",
            )

        result = RunResult(
            seed=request.seed,
            status=status,
            exit_code=exit_code,
            log_dir=log_dir,
            run_dir=run_dir,
        )
        try:
            result.stdout = self._read_stream(stdout_path)
            result.stderr = self._read_stream(stderr_path)
        except RunIOError as exc:
            logger.error("Seed %s: %s", request.seed, exc)
            if status is not RunStatus.TIMED_OUT:
                result.status = RunStatus.FAILURE
            result.error = str(exc)
        return result

    def _spawn(
        self, cmd: List[str], run_dir: Path, out, err
    ) -> subprocess.Popen:
        try:
            return subprocess.Popen(
                cmd,
                cwd=run_dir,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=err,
                start_new_session=True,
                close_fds=True,
            )
        except FileNotFoundError as exc:
            raise StartupError(
                f"Simulator binary not found: {cmd[0]}",
                context={"simulator": cmd[0]},
                cause=exc,
            ) from exc
        except PermissionError as exc:
            raise StartupError(
                f"Simulator binary is not executable: {cmd[0]}",
                context={"simulator": cmd[0]},
                cause=exc,
            ) from exc
        except OSError as exc:
            raise StartupError(
                f"Cannot start simulator {cmd[0]}: {exc}",
                context={"simulator": cmd[0]},
                cause=exc,
            ) from exc

    def _wait(
        self, proc: subprocess.Popen, request: RunRequest
    ) -> tuple[RunStatus, Optional[int]]:
        try:
            exit_code = proc.wait(timeout=request.timeout_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Seed %s: timeout of %ss reached; terminating simulator",
                request.seed,
                request.timeout_seconds,
            )
            terminate_process_tree(proc, self.kill_grace_seconds)
            return RunStatus.TIMED_OUT, None
        except BaseException:
            terminate_process_tree(proc, self.kill_grace_seconds)
            raise

        if exit_code == 0:
            logger.info("Seed %s: finished, no error found", request.seed)
            return RunStatus.SUCCESS, exit_code
        logger.warning("Seed %s: simulator exited with code %s", request.seed, exit_code)
        return RunStatus.FAILURE, exit_code

    @staticmethod
    def _read_stream(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise RunIOError(
                f"Cannot read captured output {path.name}",
                context={"path": path},
                cause=exc,
            ) from exc
