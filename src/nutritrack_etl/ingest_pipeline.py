"""nutritrack_etl.ingest_pipeline

Two-phase bulk load of the nutrition CSV into the record store.

Phase 1 (basic): parse identity fields only, then in one transaction
delete every patient and insert the batch. Signals BASIC_READY so
identity-driven consumers can start immediately.

Phase 2 (full): re-open the source from the start, parse every field,
then upsert the batch by user_id in one transaction. Signals FULL_READY.

The phases never share parsed rows; the source is scanned twice so only
one batch is held in memory at a time.

Failure isolation:
  - unusable rows are counted (and written to the rejects file) and
    never abort a batch; undecodable bytes in a file source are
    replaced, so the row carrying them is rejected rather than the run
  - an unopenable source or a header without User_ID / PhoneNumber
    aborts the whole run before any row is parsed
  - a read error while streaming rows, or a failed phase transaction,
    leaves only that phase's readiness unset; phase 2 is still attempted
    after a phase-1 failure
  - run_ingestion never raises; the outcome is an IngestionReport
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol, TextIO, Union

from nutritrack_etl.readiness import ReadinessPublisher
from nutritrack_etl.records import PatientRecord
from nutritrack_etl.row_parser import (
    MIN_COLUMNS,
    ParseMode,
    build_header_index,
    missing_required_headers,
    parse_row,
)
from nutritrack_etl.shared import (
    IngestionError,
    MissingRequiredHeader,
    PhaseTransactionFailure,
    RejectWriter,
    RunCounters,
    SourceReadError,
    SourceUnavailable,
)

log = logging.getLogger(__name__)

Source = Union[Path, str, Callable[[], TextIO]]


class PatientWriter(Protocol):
    def replace_all(self, records: list[PatientRecord]) -> int: ...

    def upsert_all(self, records: list[PatientRecord]) -> int: ...


@dataclass
class IngestionReport:
    basic: RunCounters = field(default_factory=RunCounters)
    full: RunCounters = field(default_factory=RunCounters)
    basic_loaded: bool = False
    full_loaded: bool = False
    error: str | None = None

    @property
    def aborted(self) -> bool:
        return self.error is not None and not (self.basic_loaded or self.full_loaded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "basic_loaded": self.basic_loaded,
            "full_loaded": self.full_loaded,
            "error": self.error,
            "basic": self.basic.to_dict(),
            "full": self.full.to_dict(),
        }


# ---------------------------------------------------------------------------
# Source helpers
# ---------------------------------------------------------------------------

def open_source(source: Source) -> TextIO:
    """Open a fresh text stream over the source, positioned at the header."""
    try:
        if isinstance(source, (str, Path)):
            return Path(source).open(encoding="utf-8-sig", errors="replace", newline="")
        return source()
    except OSError as exc:
        raise SourceUnavailable(f"cannot open source {source}: {exc}") from exc


def read_header(fh: TextIO) -> dict[str, int]:
    """Read the header line and validate the required columns."""
    try:
        header_line = fh.readline()
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceUnavailable(f"cannot read header line: {exc}") from exc
    if not header_line.strip():
        raise SourceUnavailable("source has no header line")
    header_index = build_header_index(header_line)
    log.debug("CSV header read: %d columns", len(header_index))
    missing = missing_required_headers(header_index)
    if missing:
        raise MissingRequiredHeader(missing)
    return header_index


def _data_lines(fh: TextIO, mode: ParseMode) -> Iterator[tuple[int, str]]:
    """Yield (line_number, raw_line) after the header; read errors become SourceReadError."""
    lines = enumerate(fh, start=2)
    while True:
        try:
            item = next(lines)
        except StopIteration:
            return
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceReadError(f"error reading source during {mode} pass: {exc}") from exc
        yield item


def parse_source(
    source: Source,
    mode: ParseMode,
    counters: RunCounters,
    *,
    rejects: RejectWriter | None = None,
    min_columns: int = MIN_COLUMNS,
) -> list[PatientRecord]:
    """Stream every data line of the source through the row parser."""
    batch: list[PatientRecord] = []
    with open_source(source) as fh:
        header_index = read_header(fh)
        for line_number, raw_line in _data_lines(fh, mode):
            if not raw_line.strip():
                continue
            counters.rows_read += 1
            record = parse_row(
                raw_line, header_index, mode, counters,
                line_number=line_number, rejects=rejects, min_columns=min_columns,
            )
            if record is not None:
                batch.append(record)

    counters.rows_parsed = len(batch)
    log.info(
        "Processed %d rows for %s data (Success: %d, Failed: %d)",
        counters.rows_read, mode, counters.rows_parsed, counters.rows_rejected,
    )
    return batch


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def load_basic_phase(
    store: PatientWriter,
    source: Source,
    counters: RunCounters,
    *,
    rejects: RejectWriter | None = None,
    min_columns: int = MIN_COLUMNS,
) -> int:
    """Replace every stored patient with identity-only records. Returns rows written."""
    batch = parse_source(source, "basic", counters, rejects=rejects, min_columns=min_columns)
    if not batch:
        log.error("PHASE 1: no basic patient data extracted from source")
        return 0
    counters.rows_written = store.replace_all(batch)
    log.info("PHASE 1: inserted %d basic patient records", counters.rows_written)
    return counters.rows_written


def load_full_phase(
    store: PatientWriter,
    source: Source,
    counters: RunCounters,
    *,
    rejects: RejectWriter | None = None,
    min_columns: int = MIN_COLUMNS,
) -> int:
    """Upsert complete records over the basic rows. Returns rows written."""
    batch = parse_source(source, "full", counters, rejects=rejects, min_columns=min_columns)
    if not batch:
        log.error("PHASE 2: no full patient data extracted from source")
        return 0
    counters.rows_written = store.upsert_all(batch)
    log.info("PHASE 2: upserted %d full patient records", counters.rows_written)
    return counters.rows_written


def run_ingestion(
    store: PatientWriter,
    source: Source,
    readiness: ReadinessPublisher,
    *,
    rejects: RejectWriter | None = None,
    min_columns: int = MIN_COLUMNS,
) -> IngestionReport:
    """Run both phases against the store, publishing readiness as each lands."""
    report = IngestionReport()
    readiness.reset()
    log.info("Starting two-phase load from %s", source)

    try:
        if load_basic_phase(store, source, report.basic, rejects=rejects, min_columns=min_columns):
            report.basic_loaded = True
            readiness.mark_basic_ready()
    except (SourceUnavailable, MissingRequiredHeader) as exc:
        report.error = str(exc)
        log.error("Ingestion aborted: %s", exc)
        return report
    except PhaseTransactionFailure as exc:
        report.basic.db_phase_errors += 1
        report.error = str(exc)
        log.error("PHASE 1: %s", exc)
    except SourceReadError as exc:
        report.basic.warnings.append(str(exc))
        report.error = str(exc)
        log.error("PHASE 1: %s", exc)

    try:
        if load_full_phase(store, source, report.full, rejects=rejects, min_columns=min_columns):
            report.full_loaded = True
            readiness.mark_full_ready()
    except IngestionError as exc:
        if isinstance(exc, PhaseTransactionFailure):
            report.full.db_phase_errors += 1
        elif isinstance(exc, SourceReadError):
            report.full.warnings.append(str(exc))
        report.error = str(exc)
        log.error("PHASE 2: %s", exc)

    return report
