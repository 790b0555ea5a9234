"""Extract triage-relevant records from simulator JSON trace files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from sf_runner.models.types import FilteredLogEntry

logger = logging.getLogger(__name__)

LAYER_FIELD = "Layer"
SEVERITY_FIELD = "Severity"
RUST_LAYER = "Rust"
ERROR_SEVERITY = "40"
TRACE_SUFFIX = ".json"


def _trace_files(log_dir: Path) -> List[Path]:
    return sorted(
        path for path in log_dir.rglob(f"*{TRACE_SUFFIX}") if path.is_file()
    )


def _iter_records(path: Path) -> Iterator[dict]:
    skipped = 0
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                skipped += 1
                continue
            if not isinstance(record, dict):
                skipped += 1
                continue
            yield record
    if skipped:
        logger.debug("Skipped %d unparsable record(s) in %s", skipped, path)


def matches(record: dict) -> bool:
    """Return True for error-level records emitted by the Rust layer."""
    return (
        record.get(LAYER_FIELD) == RUST_LAYER
        and record.get(SEVERITY_FIELD) == ERROR_SEVERITY
    )


def filter_logs(log_dir: Optional[Path]) -> List[FilteredLogEntry]:
    """Scan every trace file under ``log_dir`` and keep the matching records.

    Files are visited in sorted path order so the output is stable for a given
    directory. Malformed lines and unreadable files are skipped.
    """
    if log_dir is None or not log_dir.is_dir():
        return []
    entries: List[FilteredLogEntry] = []
    for path in _trace_files(log_dir):
        try:
            for record in _iter_records(path):
                if matches(record):
                    entries.append(
                        FilteredLogEntry(
                            layer=record[LAYER_FIELD],
                            severity=record[SEVERITY_FIELD],
                            fields=record,
                        )
                    )
        except OSError as exc:
            logger.warning("Cannot read trace file %s: %s", path, exc)
    return entries


def render_entries(entries: Iterable[FilteredLogEntry]) -> str:
    """Pretty-print entries as newline-separated JSON documents."""
    return "\n".join(entry.to_json() for entry in entries)
