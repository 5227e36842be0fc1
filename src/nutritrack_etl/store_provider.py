"""nutritrack_etl.store_provider

Composition root for the record store.

StoreProvider owns the lazily opened RecordStore, the ReadinessPublisher
and the single background worker that runs ingestion. The first get()
opens (or migrates) the schema under a lock, so concurrent first callers
share one store and trigger at most one ingestion run:

  fresh or destructively recreated store  -> ingest
  existing store, marker not initialized  -> ingest
  existing store, marker initialized      -> FULL_READY, no ingest

The "initialized" marker lives in a JSON file outside the database so a
reinitialize() survives process restarts.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from pathlib import Path

import psycopg

from nutritrack_etl.config import PipelineConfig
from nutritrack_etl.ingest_pipeline import IngestionReport, Source, run_ingestion
from nutritrack_etl.readiness import ReadinessPublisher
from nutritrack_etl.record_store import RecordStore
from nutritrack_etl.schema import ensure_schema
from nutritrack_etl.shared import RejectWriter

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# InitMarker
# ---------------------------------------------------------------------------

class InitMarker:
    """Persist whether the store has been loaded from the source CSV."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def is_initialized(self) -> bool:
        if not self._path.exists():
            return False
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("Init marker unreadable (%s); treating store as not initialized.", exc)
            return False
        return bool(data.get("initialized", False))

    def mark_initialized(self) -> None:
        self._save(True)

    def reset(self) -> None:
        self._save(False)

    def _save(self, initialized: bool) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(
                {
                    "initialized": initialized,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                indent=2,
            ),
            encoding="utf-8",
        )
        log.info("Init marker %s set to initialized=%s", self._path, initialized)


# ---------------------------------------------------------------------------
# StoreProvider
# ---------------------------------------------------------------------------

class StoreProvider:
    def __init__(
        self,
        config: PipelineConfig,
        readiness: ReadinessPublisher | None = None,
        *,
        dsn: str | None = None,
        source: Source | None = None,
    ) -> None:
        self._config = config
        self._dsn = dsn
        self._source: Source = source if source is not None else config.source_path
        self.readiness = readiness or ReadinessPublisher()
        self.marker = InitMarker(config.init_marker_path)
        self.last_report: IngestionReport | None = None
        self._lock = threading.Lock()
        self._store: RecordStore | None = None
        self._pending: Future[IngestionReport] | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="nutritrack-ingest")

    def get(self) -> RecordStore:
        """Return the shared store, opening it (and scheduling ingestion) on first use."""
        with self._lock:
            if self._store is None:
                self._store = self._open()
            return self._store

    @property
    def ingestion_pending(self) -> bool:
        pending = self._pending
        return pending is not None and not pending.done()

    def wait_for_ingestion(self, timeout: float | None = None) -> IngestionReport | None:
        """Block until the scheduled ingestion finishes; None if none was scheduled."""
        pending = self._pending
        if pending is None:
            return None
        return pending.result(timeout=timeout)

    def reinitialize(self) -> None:
        """Forget the store so the next get() repeats the full two-phase load.

        Serialized with get(); an in-flight ingestion is allowed to finish
        first. Calling it repeatedly leaves the same state.
        """
        with self._lock:
            pending = self._pending
            if pending is not None and not pending.done():
                log.info("Waiting for in-flight ingestion before reinitializing")
                wait([pending])
            self.marker.reset()
            self.readiness.reset()
            self._store = None
            self._pending = None
        log.warning("Store marked not initialized; next access reloads the source")

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> StoreProvider:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- internals ----------------------------------------------------------

    def _open(self) -> RecordStore:
        dsn = self._dsn or self._config.resolve_dsn()
        with psycopg.connect(dsn) as conn:
            result = ensure_schema(conn)
        store = RecordStore(dsn)

        if result.created:
            log.info("Created new store (destructive=%s); loading source", result.destructive)
            self.marker.reset()
            self._schedule_ingestion(store)
        elif not self.marker.is_initialized():
            log.warning("Store not initialized (first run or after reset); loading source")
            self._schedule_ingestion(store)
        else:
            log.info("Using existing store (source import skipped)")
            self.readiness.mark_full_ready()
        return store

    def _schedule_ingestion(self, store: RecordStore) -> None:
        self._pending = self._executor.submit(self._ingest, store)

    def _ingest(self, store: RecordStore) -> IngestionReport:
        rejects = RejectWriter(self._config.rejects_path) if self._config.rejects_path else None
        try:
            report = run_ingestion(
                store,
                self._source,
                self.readiness,
                rejects=rejects,
                min_columns=self._config.min_columns,
            )
        finally:
            if rejects is not None:
                rejects.close()
        self.marker.mark_initialized()
        self.last_report = report
        return report
