"""nutritrack_etl.import_nutrition_csv

Unified CLI entrypoint for the nutrition store.

Modes (--mode):
  ingest        - open the store and load the source CSV if the store is
                  new or not yet initialized (default)
  reinitialize  - mark the store not initialized, then repeat the full
                  two-phase load
  insight       - print the gender-resolved insight view for --user-id
  summary       - print per-gender aggregates and threshold counts

Usage:
    python -m nutritrack_etl.import_nutrition_csv \\
        --mode ingest \\
        --config config/nutritrack.yml \\
        --db-dsn "$DB_DSN" \\
        --csv-path data/user.csv
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click

from nutritrack_etl.config import ConfigValidationError, PipelineConfig, load_config
from nutritrack_etl.insights import describe, project
from nutritrack_etl.record_store import COMPONENT_SCORE_COLUMNS, RecordStore
from nutritrack_etl.store_provider import StoreProvider
from nutritrack_etl.shared import write_run_report


def _summary(store: RecordStore) -> dict[str, Any]:
    by_sex: dict[str, Any] = {}
    for sex in ("Male", "Female"):
        by_sex[sex] = {
            "average_total_score": store.average_total_score(sex),
            "average_component_scores": {
                component: store.average_component_score(sex, component)
                for component in COMPONENT_SCORE_COLUMNS
            },
            "average_vegetable_serves": store.average_vegetable_serves(sex),
            "average_fruit_serves": store.average_fruit_serves(sex),
            "average_protein_serves": store.average_protein_serves(sex),
            "average_water_intake_ml": store.average_water_intake_ml(sex),
        }
    return {
        "patient_count": store.patient_count(),
        "male_patient_count": store.male_patient_count(),
        "female_patient_count": store.female_patient_count(),
        "by_sex": by_sex,
        "high_water_intake": store.count_high_water_intake(),
        "high_sodium_intake": store.count_high_sodium_intake(),
        "male_low_vegetable_variety": store.count_male_low_vegetable_variety(),
        "male_low_unsaturated_fat": store.count_male_low_unsaturated_fat(),
    }


@click.command()
@click.option(
    "--mode",
    type=click.Choice(["ingest", "reinitialize", "insight", "summary"]),
    default="ingest",
    show_default=True,
)
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="YAML pipeline config")
@click.option("--db-dsn", default=None, envvar="DB_DSN", help="PostgreSQL DSN (defaults to $DB_DSN)")
@click.option("--csv-path", default=None, type=click.Path(), help="Source CSV")
@click.option("--init-marker-path", default=None, type=click.Path(), help="JSON init marker file")
@click.option("--rejects-path", default=None, type=click.Path(), help="CSV file for rejected rows")
@click.option("--reports-dir", default=None, type=click.Path(), help="Directory for JSON run reports")
@click.option("--min-columns", default=None, type=int, help="Minimum column count per data row")
@click.option("--user-id", default=None, help="[insight] Patient to project")
@click.option("--rating", default=None, help="[insight] Diet quality rating to describe")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
)
def main(
    mode: str,
    config_path: str | None,
    db_dsn: str | None,
    csv_path: str | None,
    init_marker_path: str | None,
    rejects_path: str | None,
    reports_dir: str | None,
    min_columns: int | None,
    user_id: str | None,
    rating: str | None,
    run_id: str | None,
    log_level: str,
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    try:
        config = load_config(Path(config_path)) if config_path else PipelineConfig()
        config = config.with_overrides(
            db_dsn=db_dsn,
            source_path=csv_path,
            init_marker_path=init_marker_path,
            rejects_path=rejects_path,
            reports_dir=reports_dir,
            min_columns=min_columns,
        )
        dsn = config.resolve_dsn()
    except ConfigValidationError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)

    click.echo(f"[{run_id}] Starting {mode} run")

    with StoreProvider(config, dsn=dsn) as provider:
        if mode == "reinitialize":
            provider.reinitialize()
        store = provider.get()

        if mode in ("ingest", "reinitialize"):
            _finish_ingest(provider, run_id, started_at, mode, config)
            return

        provider.wait_for_ingestion()

        if mode == "insight":
            if not user_id:
                click.echo(f"[{run_id}] FATAL: insight mode requires: --user-id", err=True)
                sys.exit(1)
            view = project(store.get_patient(user_id))
            if view is None:
                click.echo(f"[{run_id}] No patient found for user_id={user_id!r}", err=True)
                sys.exit(1)
            payload: dict[str, Any] = asdict(view)
            if rating:
                payload["description"] = describe(rating)
            click.echo(json.dumps(payload, indent=2))
            return

        click.echo(json.dumps(_summary(store), indent=2, default=str))


def _finish_ingest(
    provider: StoreProvider,
    run_id: str,
    started_at: str,
    mode: str,
    config: PipelineConfig,
) -> None:
    report = provider.wait_for_ingestion()
    if report is None:
        click.echo(
            f"[{run_id}] Store already initialized (CSV import skipped). "
            "Use --mode reinitialize to reload."
        )
        return

    report_path = write_run_report(
        run_id, started_at, mode,
        {"csv_path": str(config.source_path), "init_marker_path": str(config.init_marker_path)},
        {"basic": report.basic, "full": report.full},
        outcome={
            "basic_loaded": report.basic_loaded,
            "full_loaded": report.full_loaded,
            "error": report.error,
        },
        reports_dir=config.reports_dir,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    click.echo(json.dumps(report.to_dict(), indent=2, default=str))

    if report.aborted:
        click.echo(f"[{run_id}] FATAL: {report.error}", err=True)
        sys.exit(1)
    if not report.full_loaded:
        click.echo(
            f"[{run_id}] Run completed without full data ({report.error}) - exiting non-zero",
            err=True,
        )
        sys.exit(1)
    click.echo(f"[{run_id}] Done.")


if __name__ == "__main__":
    main()
