"""Rich renderables for session results."""

from __future__ import annotations

from rich.table import Table

from sf_runner.api import SessionOutcome, SessionSummary

_OUTCOME_STYLE = {
    SessionOutcome.ALL_CLEAN: "green",
    SessionOutcome.FAULT_FOUND: "red",
    SessionOutcome.FAULT_FOUND_AND_REPORTED: "yellow",
}


def build_summary_table(summary: SessionSummary) -> Table:
    """Render a session summary as a two-column table."""
    table = Table(title="Seed session summary", show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")

    style = _OUTCOME_STYLE.get(summary.outcome, "white")
    table.add_row("Outcome", f"[{style}]{summary.outcome.value}[/{style}]")
    table.add_row("Seeds dispatched", str(summary.dispatched))
    table.add_row("Seeds completed", str(summary.completed))
    table.add_row("Faulty seeds", str(summary.faults))
    table.add_row("Issues filed", str(summary.reported))
    table.add_row("Timed out", str(summary.timed_out))
    if summary.startup_errors:
        table.add_row("Startup errors", str(summary.startup_errors))
    if summary.faulty_seeds:
        table.add_row("Faulty seed ids", ", ".join(str(s) for s in summary.faulty_seeds))
    for url in summary.issue_urls:
        table.add_row("Issue", url)
    if summary.abort_reason:
        table.add_row("Aborted after", summary.abort_reason)
    if summary.stopped:
        table.add_row("Stopped", "by user request")
    table.add_row("Elapsed (s)", f"{summary.elapsed_seconds:.1f}")
    return table
