"""Unit tests for nutritrack_etl.schema (no database)."""

from __future__ import annotations

from nutritrack_etl.records import PATIENT_SCORE_COLUMNS
from nutritrack_etl.schema import (
    MIGRATIONS,
    PATIENT_DDL,
    SCHEMA_VERSION,
    Migration,
    migration_path,
)


class TestMigrationPath:
    def test_already_current(self):
        assert migration_path(SCHEMA_VERSION, SCHEMA_VERSION) == []

    def test_v1_to_v2(self):
        path = migration_path(1, 2)
        assert path == [MIGRATIONS[0]]
        assert "CREATE TABLE IF NOT EXISTS food_preferences" in path[0].ddl

    def test_unknown_start_has_no_path(self):
        assert migration_path(0, SCHEMA_VERSION) is None

    def test_downgrade_has_no_path(self):
        assert migration_path(3, 2) is None

    def test_chained_steps(self):
        steps = [Migration(1, 2, "a"), Migration(2, 3, "b"), Migration(3, 4, "c")]
        assert [m.ddl for m in migration_path(1, 4, steps)] == ["a", "b", "c"]

    def test_gap_in_chain(self):
        steps = [Migration(1, 2, "a"), Migration(3, 4, "c")]
        assert migration_path(1, 4, steps) is None

    def test_overshoot(self):
        steps = [Migration(1, 3, "a")]
        assert migration_path(1, 2, steps) is None


class TestPatientDdl:
    def test_every_score_column_is_double_precision(self):
        for col in PATIENT_SCORE_COLUMNS:
            assert f"  {col} DOUBLE PRECISION" in PATIENT_DDL

    def test_password_defaults_empty(self):
        assert "password TEXT NOT NULL DEFAULT ''" in PATIENT_DDL
