"""
Command-line interface for sim-seed-finder.

Runs the simulator against a workload with many seeds and reports the ones
that make it fail.
"""

from __future__ import annotations

import logging
from importlib import metadata
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from sf_common.api import ConfigurationError, configure_logging, error_to_payload
from sf_common.config import parse_int_list
from sf_report.api import build_reporter
from sf_runner.api import (
    EXIT_CONFIG_ERROR,
    ExecutionSession,
    SeedSource,
    StopToken,
    load_config,
)
from sf_runner.models.config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_GITLAB_HOST,
    DEFAULT_SIMULATOR_PATH,
    DEFAULT_TIMEOUT_SECS,
)
from sf_ui.presenters import build_summary_table

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Run a simulator with many seeds and surface the faulty ones.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


@app.callback()
def entry(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
    log_json: Optional[bool] = typer.Option(
        None, "--log-json/--log-console", help="Render logs as JSON lines."
    ),
) -> None:
    """Global options shared by all commands."""
    configure_logging(debug=debug, json=log_json, force=True)


@app.command("run")
def run(
    test_file: Path = typer.Option(
        ..., "--test-file", "-f", help="Path to the workload (test) file to run."
    ),
    fdbserver_path: Path = typer.Option(
        DEFAULT_SIMULATOR_PATH, "--fdbserver-path", help="Path to the simulator binary."
    ),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", help="Maximum number of seeds to run."
    ),
    seeds: Optional[List[str]] = typer.Option(
        None, "--seeds", help="Seeds to run (repeatable or comma-separated)."
    ),
    seed_file: Optional[Path] = typer.Option(
        None, "--seed-file", help="File with one seed per line."
    ),
    chunk_size: int = typer.Option(
        DEFAULT_CHUNK_SIZE, "--chunk-size", help="Number of seeds run in parallel."
    ),
    fail_fast: bool = typer.Option(
        False, "--fail-fast", help="Stop starting seeds after the first faulty one."
    ),
    timeout_secs: float = typer.Option(
        DEFAULT_TIMEOUT_SECS,
        "--timeout-secs",
        envvar="TIMEOUT_SECS",
        help="Seconds to wait for each simulation before terminating it.",
    ),
    commit_id: Optional[str] = typer.Option(
        None, "--commit-id", help="Commit id of the tested build, added to issues."
    ),
    halt_on_fault: bool = typer.Option(
        True,
        "--halt-on-fault/--continue-on-fault",
        help="Without GitLab, stop after the first faulty seed printed locally.",
    ),
    work_dir: Optional[Path] = typer.Option(
        None, "--work-dir", envvar="SF_WORK_DIR", help="Parent directory for per-seed run directories."
    ),
    stop_file: Optional[Path] = typer.Option(
        None, "--stop-file", help="Stop starting seeds once this file exists."
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="GITLAB_TOKEN", show_envvar=True, help="GitLab token."
    ),
    gitlab_url: str = typer.Option(
        DEFAULT_GITLAB_HOST, "--gitlab-url", envvar="GITLAB_URL", help="GitLab host."
    ),
    gitlab_project_id: Optional[int] = typer.Option(
        None,
        "--gitlab-project-id",
        envvar="GITLAB_PROJECT_ID",
        help="GitLab project receiving the issues; required with a token.",
    ),
) -> None:
    """Run seeds against the workload and report faulty ones."""
    try:
        seed_list = parse_int_list(seeds)
    except ValueError as exc:
        err_console.print(f"[red]Invalid --seeds value:[/red] {exc}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from exc

    try:
        config = load_config(
            simulator_path=fdbserver_path,
            workload_file=test_file,
            max_iterations=max_iterations,
            seeds=seed_list,
            seed_file=seed_file,
            chunk_size=chunk_size,
            fail_fast=fail_fast,
            timeout_seconds=timeout_secs,
            commit_id=commit_id,
            halt_on_unreported_fault=halt_on_fault,
            work_dir=work_dir,
            stop_file=stop_file,
            gitlab={
                "token": token,
                "host": gitlab_url,
                "project_id": gitlab_project_id,
            },
        )
        source = SeedSource.from_config(config)
    except ConfigurationError as exc:
        logger.debug("Configuration rejected: %s", error_to_payload(exc))
        err_console.print(f"[red]Configuration error:[/red] {exc}", highlight=False)
        raise typer.Exit(EXIT_CONFIG_ERROR) from exc

    if token and gitlab_project_id is None:
        err_console.print(
            "[yellow]GITLAB_TOKEN is set without a project id; issues will not be filed.[/yellow]"
        )

    reporter = build_reporter(config, console=console, err_console=err_console)
    with StopToken(stop_file=config.stop_file) as stop_token:
        session = ExecutionSession(config, reporter, stop_token=stop_token)
        summary = session.run(source)

    console.print(build_summary_table(summary))
    raise typer.Exit(summary.exit_code())


@app.command("version")
def version() -> None:
    """Print the installed version."""
    try:
        typer.echo(metadata.version("sim-seed-finder"))
    except metadata.PackageNotFoundError:
        typer.echo("unknown")


def main() -> None:
    """Console script entrypoint (Typer app)."""
    app()


if __name__ == "__main__":
    main()
