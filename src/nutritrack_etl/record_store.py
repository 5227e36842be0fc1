"""nutritrack_etl.record_store

Query surface over the ``patient`` and ``food_preferences`` tables.

Every call opens its own short-lived connection, so one RecordStore can
be shared between the ingestion worker and any number of readers.

Failure policy:
  - replace_all / upsert_all (used by the ingestion phases) raise
    PhaseTransactionFailure after rolling back.
  - Every other query logs the database error and returns an empty
    result (None, [], False or 0). Pass strict=True to raise
    QueryFailure instead.

Component names for the aggregate queries form a closed set
(COMPONENT_SCORE_COLUMNS). An unknown name is not an error: it selects
a constant 0.0 column, so averages come back as 0.0 (also when no rows
match the sex) and threshold counts compare 0.0 against the threshold.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable

import psycopg
from psycopg import sql
from psycopg.rows import class_row

from nutritrack_etl.normalize import FEMALE, MALE, normalize_sex
from nutritrack_etl.records import (
    PATIENT_COLUMNS,
    PREFERENCE_COLUMNS,
    FoodPreferences,
    PatientRecord,
)
from nutritrack_etl.shared import PhaseTransactionFailure, QueryFailure

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

COMPONENT_SCORE_COLUMNS: dict[str, tuple[str, str]] = {
    "vegetables": ("vegetables_heifa_score_male", "vegetables_heifa_score_female"),
    "fruits": ("fruit_heifa_score_male", "fruit_heifa_score_female"),
    "grains": ("grains_and_cereals_heifa_score_male", "grains_and_cereals_heifa_score_female"),
    "protein": ("meat_and_alternatives_heifa_score_male", "meat_and_alternatives_heifa_score_female"),
    "dairy": ("dairy_and_alternatives_heifa_score_male", "dairy_and_alternatives_heifa_score_female"),
    "water": ("water_heifa_score_male", "water_heifa_score_female"),
    "sodium": ("sodium_heifa_score_male", "sodium_heifa_score_female"),
    "unsaturated_fat": ("unsaturated_fat_heifa_score_male", "unsaturated_fat_heifa_score_female"),
}

TOTAL_SCORE_COLUMNS = ("heifa_total_score_male", "heifa_total_score_female")

HIGH_WATER_INTAKE_ML = 2500
HIGH_SODIUM_INTAKE_MG = 2000
LOW_VEGETABLE_VARIETY = 3
LOW_UNSATURATED_FAT_SCORE = 1.0

_ZERO = sql.SQL("0.0")

_SELECT_PATIENT = "SELECT " + ", ".join(PATIENT_COLUMNS) + " FROM patient"
_SELECT_PREFERENCES = "SELECT " + ", ".join(PREFERENCE_COLUMNS) + " FROM food_preferences"

def _upsert_sql(table: str, columns: tuple[str, ...], update_columns: tuple[str, ...]) -> str:
    placeholders = ", ".join(["%s"] * len(columns))
    assignments = ",\n  ".join(f"{col} = EXCLUDED.{col}" for col in update_columns)
    return (
        f"INSERT INTO {table} ({', '.join(columns)})\n"
        f"VALUES ({placeholders})\n"
        f"ON CONFLICT ({columns[0]}) DO UPDATE SET\n  {assignments}"
    )

# Full replace by primary key, credentials included.
_REPLACE_PATIENT = _upsert_sql("patient", PATIENT_COLUMNS, PATIENT_COLUMNS[1:])

# Ingestion upsert: refreshes source-owned columns and keeps any claimed
# name/password.
_INGEST_COLUMNS = tuple(c for c in PATIENT_COLUMNS if c not in ("name", "password"))
_UPSERT_PATIENT_FROM_SOURCE = _upsert_sql("patient", _INGEST_COLUMNS, _INGEST_COLUMNS[1:])

_UPSERT_PREFERENCES = _upsert_sql("food_preferences", PREFERENCE_COLUMNS, PREFERENCE_COLUMNS[1:])

def _ingest_row(record: PatientRecord) -> tuple[Any, ...]:
    return tuple(getattr(record, col) for col in _INGEST_COLUMNS)

def _query(default: Any) -> Callable:
    """Convert psycopg errors into an empty result (or QueryFailure when strict)."""

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(self: RecordStore, *args: Any, **kwargs: Any) -> Any:
            try:
                return fn(self, *args, **kwargs)
            except psycopg.Error as exc:
                log.error("%s failed: %s", fn.__name__, exc)
                if self.strict:
                    raise QueryFailure(f"{fn.__name__}: {exc}") from exc
                return default() if callable(default) else default

        return wrapper

    return decorator

# ---------------------------------------------------------------------------
# RecordStore
# ---------------------------------------------------------------------------

class RecordStore:
    """Synchronous store handle bound to one PostgreSQL DSN."""

    def __init__(self, dsn: str, strict: bool = False) -> None:
        self._dsn = dsn
        self.strict = strict

    @property
    def dsn(self) -> str:
        return self._dsn

    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self._dsn)

    # -- bulk writes used by the ingestion phases ---------------------------

    def replace_all(self, records: list[PatientRecord]) -> int:
        """Delete every patient then insert records, in one transaction."""
        try:
            with self._connect() as conn, conn.transaction():
                conn.execute("DELETE FROM patient")
                with conn.cursor() as cur:
                    cur.executemany(_REPLACE_PATIENT, [r.as_row() for r in records])
        except psycopg.Error as exc:
            raise PhaseTransactionFailure(f"replace_all failed: {exc}") from exc
        return len(records)

    def upsert_all(self, records: list[PatientRecord]) -> int:
        """Insert or update records by user_id, in one transaction."""
        try:
            with self._connect() as conn, conn.transaction():
                with conn.cursor() as cur:
                    cur.executemany(
                        _UPSERT_PATIENT_FROM_SOURCE, [_ingest_row(r) for r in records]
                    )
        except psycopg.Error as exc:
            raise PhaseTransactionFailure(f"upsert_all failed: {exc}") from exc
        return len(records)

    # -- point lookups ------------------------------------------------------

    def _fetch_one(self, where: str, params: tuple[Any, ...]) -> PatientRecord | None:
        with self._connect() as conn:
            cur = conn.cursor(row_factory=class_row(PatientRecord))
            return cur.execute(f"{_SELECT_PATIENT} WHERE {where}", params).fetchone()

    def _fetch_all(self, query: str | sql.Composable, params: tuple[Any, ...] = ()) -> list[PatientRecord]:
        with self._connect() as conn:
            cur = conn.cursor(row_factory=class_row(PatientRecord))
            return cur.execute(query, params).fetchall()

    def _scalar(self, query: str | sql.Composable, params: tuple[Any, ...] = ()) -> Any:
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
            return row[0] if row else None

    @_query(None)
    def get_patient(self, user_id: str) -> PatientRecord | None:
        return self._fetch_one("user_id = %s", (user_id,))

    @_query(None)
    def get_patient_by_id_and_phone(self, user_id: str, phone_number: str) -> PatientRecord | None:
        return self._fetch_one("user_id = %s AND phone_number = %s", (user_id, phone_number))

    @_query(None)
    def get_patient_by_id_and_password(self, user_id: str, password: str) -> PatientRecord | None:
        return self._fetch_one("user_id = %s AND password = %s", (user_id, password))

    @_query(False)
    def patient_exists(self, user_id: str) -> bool:
        return bool(self._scalar(
            "SELECT EXISTS (SELECT 1 FROM patient WHERE user_id = %s)", (user_id,)
        ))

    @_query(False)
    def has_set_password(self, user_id: str) -> bool:
        return bool(self._scalar(
            "SELECT EXISTS (SELECT 1 FROM patient WHERE user_id = %s AND password <> '')",
            (user_id,),
        ))

    @_query(list)
    def all_patients(self) -> list[PatientRecord]:
        return self._fetch_all(f"{_SELECT_PATIENT} ORDER BY user_id")

    @_query(list)
    def patients_by_sex(self, sex: str) -> list[PatientRecord]:
        return self._fetch_all(
            f"{_SELECT_PATIENT} WHERE lower(sex) = lower(%s) ORDER BY user_id", (sex,)
        )

    # -- single-record writes -----------------------------------------------

    @_query(False)
    def insert(self, record: PatientRecord) -> bool:
        with self._connect() as conn:
            conn.execute(_REPLACE_PATIENT, record.as_row())
        return True

    @_query(False)
    def update(self, record: PatientRecord) -> bool:
        assignments = ", ".join(f"{col} = %s" for col in PATIENT_COLUMNS[1:])
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE patient SET {assignments} WHERE user_id = %s",
                (*record.as_row()[1:], record.user_id),
            )
            return cur.rowcount > 0

    @_query(False)
    def delete(self, user_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM patient WHERE user_id = %s", (user_id,))
            return cur.rowcount > 0

    @_query(0)
    def delete_all(self) -> int:
        with self._connect() as conn:
            return conn.execute("DELETE FROM patient").rowcount

    @_query(False)
    def claim_account(self, user_id: str, phone_number: str, name: str, password: str) -> bool:
        """Set name and password on an unclaimed record matching id + phone."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE patient SET name = %s, password = %s
                WHERE user_id = %s AND phone_number = %s AND password = ''
                """,
                (name, password, user_id, phone_number),
            )
            return cur.rowcount > 0

    @_query(False)
    def update_password(self, user_id: str, password: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE patient SET password = %s WHERE user_id = %s", (password, user_id)
            )
            return cur.rowcount > 0

    # -- counts -------------------------------------------------------------

    @_query(0)
    def patient_count(self) -> int:
        return self._scalar("SELECT count(*) FROM patient")

    @_query(0)
    def male_patient_count(self) -> int:
        return self._scalar("SELECT count(*) FROM patient WHERE lower(sex) = %s", (MALE,))

    @_query(0)
    def female_patient_count(self) -> int:
        return self._scalar("SELECT count(*) FROM patient WHERE lower(sex) = %s", (FEMALE,))

    # -- per-gender averages ------------------------------------------------

    def _average(self, expr: sql.Composable, sex: str) -> float | None:
        key = normalize_sex(sex)
        if key is None:
            log.warning("Unrecognised sex %r for average query", sex)
            return None
        # unknown components average to 0.0 even over no rows
        aggregate = sql.SQL("coalesce(avg({}), 0.0)" if expr is _ZERO else "avg({})").format(expr)
        query = sql.SQL("SELECT {} FROM patient WHERE lower(sex) = %s").format(aggregate)
        value = self._scalar(query, (key,))
        return float(value) if value is not None else None

    @_query(None)
    def average_total_score(self, sex: str) -> float | None:
        return self._average(_gendered_column(TOTAL_SCORE_COLUMNS, sex), sex)

    @_query(None)
    def average_component_score(self, sex: str, component: str) -> float | None:
        return self._average(_component_column(component, sex), sex)

    @_query(None)
    def average_vegetable_serves(self, sex: str) -> float | None:
        return self._average(sql.Identifier("vegetables_with_legumes_allocated_serve_size"), sex)

    @_query(None)
    def average_fruit_serves(self, sex: str) -> float | None:
        return self._average(sql.Identifier("fruit_serve_size"), sex)

    @_query(None)
    def average_protein_serves(self, sex: str) -> float | None:
        return self._average(
            sql.Identifier("meat_and_alternatives_with_legumes_allocated_serve_size"), sex
        )

    @_query(None)
    def average_water_intake_ml(self, sex: str) -> float | None:
        return self._average(sql.Identifier("water_total_ml"), sex)

    # -- threshold filters --------------------------------------------------

    @_query(0)
    def count_total_score_above(self, threshold: float) -> int:
        return self._count_gendered(TOTAL_SCORE_COLUMNS, ">", threshold)

    @_query(0)
    def count_total_score_below(self, threshold: float) -> int:
        return self._count_gendered(TOTAL_SCORE_COLUMNS, "<", threshold)

    @_query(0)
    def count_component_score_above(self, component: str, threshold: float) -> int:
        return self._count_gendered(COMPONENT_SCORE_COLUMNS.get(component), ">", threshold)

    @_query(0)
    def count_component_score_below(self, component: str, threshold: float) -> int:
        return self._count_gendered(COMPONENT_SCORE_COLUMNS.get(component), "<", threshold)

    @_query(list)
    def records_with_total_score_above(self, threshold: float) -> list[PatientRecord]:
        where = _gendered_condition(TOTAL_SCORE_COLUMNS, ">")
        query = sql.SQL(_SELECT_PATIENT + " WHERE {} ORDER BY user_id").format(where)
        return self._fetch_all(query, (threshold, threshold))

    @_query(list)
    def records_with_total_score_below(self, threshold: float) -> list[PatientRecord]:
        where = _gendered_condition(TOTAL_SCORE_COLUMNS, "<")
        query = sql.SQL(_SELECT_PATIENT + " WHERE {} ORDER BY user_id").format(where)
        return self._fetch_all(query, (threshold, threshold))

    def _count_gendered(self, columns: tuple[str, str] | None, op: str, threshold: float) -> int:
        where = _gendered_condition(columns, op)
        query = sql.SQL("SELECT count(*) FROM patient WHERE {}").format(where)
        return self._scalar(query, (threshold, threshold))

    # -- fixed threshold counts ---------------------------------------------

    @_query(0)
    def count_high_water_intake(self) -> int:
        return self._scalar(
            "SELECT count(*) FROM patient WHERE water_total_ml > %s", (HIGH_WATER_INTAKE_ML,)
        )

    @_query(0)
    def count_high_sodium_intake(self) -> int:
        return self._scalar(
            "SELECT count(*) FROM patient WHERE sodium_mg_milligrams > %s",
            (HIGH_SODIUM_INTAKE_MG,),
        )

    @_query(0)
    def count_male_low_vegetable_variety(self) -> int:
        return self._scalar(
            "SELECT count(*) FROM patient WHERE lower(sex) = %s AND vegetables_variations_score < %s",
            (MALE, LOW_VEGETABLE_VARIETY),
        )

    @_query(0)
    def count_male_low_unsaturated_fat(self) -> int:
        return self._scalar(
            "SELECT count(*) FROM patient WHERE lower(sex) = %s AND unsaturated_fat_heifa_score_male < %s",
            (MALE, LOW_UNSATURATED_FAT_SCORE),
        )

    # -- food preferences ---------------------------------------------------

    @_query(False)
    def save_preferences(self, preferences: FoodPreferences) -> bool:
        with self._connect() as conn:
            conn.execute(_UPSERT_PREFERENCES, preferences.as_row())
        return True

    @_query(None)
    def get_preferences(self, user_id: str) -> FoodPreferences | None:
        with self._connect() as conn:
            cur = conn.cursor(row_factory=class_row(FoodPreferences))
            return cur.execute(f"{_SELECT_PREFERENCES} WHERE user_id = %s", (user_id,)).fetchone()

    @_query(False)
    def has_completed_questionnaire(self, user_id: str) -> bool:
        return bool(self._scalar(
            "SELECT EXISTS (SELECT 1 FROM food_preferences WHERE user_id = %s)", (user_id,)
        ))

    @_query(False)
    def delete_preferences(self, user_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM food_preferences WHERE user_id = %s", (user_id,))
            return cur.rowcount > 0

# ---------------------------------------------------------------------------
# SQL fragment helpers
# ---------------------------------------------------------------------------

def _gendered_column(columns: tuple[str, str] | None, sex: str) -> sql.Composable:
    if columns is None:
        return _ZERO
    male_col, female_col = columns
    return sql.Identifier(male_col if normalize_sex(sex) == MALE else female_col)

def _component_column(component: str, sex: str) -> sql.Composable:
    return _gendered_column(COMPONENT_SCORE_COLUMNS.get(component), sex)

def _gendered_condition(columns: tuple[str, str] | None, op: str) -> sql.Composable:
    """Compare each row's own-gender column against a threshold (two %s params)."""
    if op not in ("<", ">"):
        raise ValueError(f"unsupported comparison: {op!r}")
    male_expr, female_expr = (
        (sql.Identifier(columns[0]), sql.Identifier(columns[1])) if columns else (_ZERO, _ZERO)
    )
    return sql.SQL(
        "((lower(sex) = 'male' AND {male} {op} %s) OR "
        "(lower(sex) = 'female' AND {female} {op} %s))"
    ).format(male=male_expr, female=female_expr, op=sql.SQL(op))

# ---------------------------------------------------------------------------
# AsyncRecordStore
# ---------------------------------------------------------------------------

class AsyncRecordStore:
    """Awaitable facade: each RecordStore call runs on a worker thread.

    Usage:
        store = AsyncRecordStore(RecordStore(dsn))
        patient = await store.get_patient("1")
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    @property
    def sync(self) -> RecordStore:
        return self._store

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._store, name)
        if not callable(attr):
            return attr

        @functools.wraps(attr)
        async def call(*args: Any, **kwargs: Any) -> Any:
            return await asyncio.to_thread(attr, *args, **kwargs)

        return call

