from __future__ import annotations

import stat
import sys
import uuid
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest
from rich.console import Console
from rich.table import Table

from tests.helpers.fakes import ScriptedSupervisor

FAKE_SIMULATOR_TEMPLATE = """#!/bin/sh
seed=""
logs=""
while [ $# -gt 0 ]; do
  case "$1" in
    -s) seed="$2"; shift 2 ;;
    -L) logs="$2"; shift 2 ;;
    *) shift ;;
  esac
done
echo "stdout for seed $seed"
echo "stderr for seed $seed" >&2
printf '%s\\n' '{{"Layer":"Rust","Severity":"40","Seed":"'"$seed"'"}}' > "$logs/trace.1.json"
printf '%s\\n' '{{"Layer":"Cpp","Severity":"10"}}' >> "$logs/trace.1.json"
case "$seed" in
{cases}
  *) {default} ;;
esac
"""


@pytest.fixture
def fake_simulator(tmp_path: Path) -> Callable[..., Path]:
    """Write a /bin/sh script that behaves like the simulator.

    ``cases`` maps a seed to the shell snippet run for it (e.g. ``"exit 1"``).
    """
    if sys.platform.startswith("win"):
        pytest.skip("fake simulator needs /bin/sh")

    def _make(cases: Optional[Dict[int, str]] = None, default: str = "exit 0") -> Path:
        body = "\n".join(
            f"  {seed}) {snippet} ;;" for seed, snippet in (cases or {}).items()
        )
        script = tmp_path / f"fake_fdbserver_{uuid.uuid4().hex[:8]}"
        script.write_text(FAKE_SIMULATOR_TEMPLATE.format(cases=body, default=default))
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make


@pytest.fixture
def workload_file(tmp_path: Path) -> Path:
    path = tmp_path / "workload.toml"
    path.write_text("[[test]]\ntestTitle = 'Cycle'\n")
    return path


@pytest.fixture
def scripted_supervisor(tmp_path: Path) -> Callable[..., ScriptedSupervisor]:
    root = tmp_path / "runs"
    root.mkdir()

    def _make(behaviors: Optional[Dict[int, object]] = None) -> ScriptedSupervisor:
        return ScriptedSupervisor(root, behaviors)

    return _make


MARKERS = ("unit_common", "unit_runner", "unit_report", "unit_ui", "posix")


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """Print per-marker pass/fail counts at the end of the session."""
    _ = (exitstatus, config)
    counts: Dict[str, Dict[str, float]] = {}
    for outcome in ("passed", "failed", "skipped"):
        for report in terminalreporter.stats.get(outcome, []):
            if report.when != "call" and not (report.when == "setup" and report.skipped):
                continue
            for marker in MARKERS:
                if marker not in report.keywords:
                    continue
                row = counts.setdefault(
                    marker, {"passed": 0, "failed": 0, "skipped": 0, "duration": 0.0}
                )
                row[outcome] += 1
                row["duration"] += getattr(report, "duration", 0.0)

    if not counts:
        return

    table = Table(title="Tests by marker", header_style="bold magenta")
    table.add_column("Marker", style="cyan")
    for name, style in (("Passed", "green"), ("Failed", "red"), ("Skipped", "yellow")):
        table.add_column(name, justify="right", style=style)
    table.add_column("Duration (s)", justify="right", style="blue")
    for marker, row in sorted(counts.items()):
        table.add_row(
            marker,
            *(str(int(row[key])) for key in ("passed", "failed", "skipped")),
            f"{row['duration']:.2f}",
        )
    Console().print(table)
