"""nutritrack_etl.shared

Shared utilities used by the ingestion pipeline, the record store and the
CLI. Includes the error taxonomy, RejectWriter, RunCounters and
report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class IngestionError(Exception):
    """Base class for ingestion run failures."""

class SourceUnavailable(IngestionError):
    """Raised when the source CSV cannot be opened or has no header line."""

class MissingRequiredHeader(IngestionError):
    """Raised when the header lacks the identifier or contact-token column."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"missing required headers: {missing}")
        self.missing = missing


class RowParseFailure(IngestionError):
    """Raised for one unusable row; always caught and counted by the parser."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

class SourceReadError(IngestionError):
    """Raised when reading data rows fails after the header was accepted.

    Aborts only the current phase; the next phase still runs.
    """

class PhaseTransactionFailure(IngestionError):
    """Raised when a phase's bulk transaction fails and is rolled back."""

class QueryFailure(Exception):
    """Raised internally when a store query fails; surfaced as absence."""

# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows."""

    FIELDNAMES = ("phase", "line_number", "raw_line", "_reject_reason")

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, phase: str, line_number: int | None, raw_line: str, reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(self._fh, fieldnames=self.FIELDNAMES)
            self._writer.writeheader()
        self._writer.writerow({
            "phase": phase,
            "line_number": line_number,
            "raw_line": raw_line,
            "_reject_reason": reason,
        })
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None
            self._writer = None

# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    rows_read: int = 0
    rows_parsed: int = 0
    rows_rejected: int = 0
    rows_written: int = 0
    db_phase_errors: int = 0
    reject_reasons: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def record_reject(self, reason: str) -> None:
        self.rows_rejected += 1
        key = reason.split(":", 1)[0]
        self.reject_reasons[key] = self.reject_reasons.get(key, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_parsed": self.rows_parsed,
            "rows_rejected": self.rows_rejected,
            "rows_written": self.rows_written,
            "db_phase_errors": self.db_phase_errors,
            "reject_reasons": dict(self.reject_reasons),
            "warnings": self.warnings,
        }

# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    source_paths: dict[str, str | None],
    counters: dict[str, RunCounters],
    outcome: dict[str, Any] | None = None,
    reports_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        **source_paths,
        "outcome": outcome or {},
        "counters": {phase: c.to_dict() for phase, c in counters.items()},
    }
    report_path = reports_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
