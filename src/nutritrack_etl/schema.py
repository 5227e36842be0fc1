"""nutritrack_etl.schema

Versioned table definitions and the upgrade path between versions.

Version history:
  1 - patient table
  2 - food_preferences table (pure DDL, no data transformation)

When the stored version has no migration path to SCHEMA_VERSION the
store is dropped and recreated. That loses every patient row, the
claimed credentials and the saved preferences; the caller treats the
result as a fresh store and re-ingests the source CSV.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import psycopg

from nutritrack_etl.records import PATIENT_SCORE_COLUMNS

log = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

SCHEMA_VERSION_DDL = """
CREATE TABLE IF NOT EXISTS schema_version (
  version INTEGER NOT NULL
)
"""

PATIENT_DDL = (
    "CREATE TABLE IF NOT EXISTS patient (\n"
    "  user_id TEXT PRIMARY KEY,\n"
    "  phone_number TEXT NOT NULL,\n"
    "  sex TEXT NOT NULL,\n"
    "  name TEXT NOT NULL DEFAULT '',\n"
    "  password TEXT NOT NULL DEFAULT '',\n"
    + ",\n".join(f"  {col} DOUBLE PRECISION" for col in PATIENT_SCORE_COLUMNS)
    + "\n)"
)

FOOD_PREFERENCES_DDL = """
CREATE TABLE IF NOT EXISTS food_preferences (
  user_id TEXT PRIMARY KEY,
  fruits BOOLEAN NOT NULL DEFAULT false,
  vegetables BOOLEAN NOT NULL DEFAULT false,
  grains BOOLEAN NOT NULL DEFAULT false,
  red_meat BOOLEAN NOT NULL DEFAULT false,
  seafood BOOLEAN NOT NULL DEFAULT false,
  poultry BOOLEAN NOT NULL DEFAULT false,
  fish BOOLEAN NOT NULL DEFAULT false,
  eggs BOOLEAN NOT NULL DEFAULT false,
  nuts_seeds BOOLEAN NOT NULL DEFAULT false,
  persona_id INTEGER NOT NULL DEFAULT 0,
  persona_name TEXT NOT NULL DEFAULT '',
  biggest_meal_time TEXT NOT NULL DEFAULT '',
  sleep_time TEXT NOT NULL DEFAULT '',
  wake_up_time TEXT NOT NULL DEFAULT ''
)
"""

# Tables created for a fresh store at SCHEMA_VERSION, in creation order.
CURRENT_TABLES: tuple[tuple[str, str], ...] = (
    ("patient", PATIENT_DDL),
    ("food_preferences", FOOD_PREFERENCES_DDL),
)

MANAGED_TABLES = ("food_preferences", "patient", "schema_version")


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Migration:
    from_version: int
    to_version: int
    ddl: str


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, 2, FOOD_PREFERENCES_DDL),
)


@dataclass(frozen=True)
class SchemaOpenResult:
    created: bool
    from_version: int | None
    to_version: int
    destructive: bool = False


def migration_path(
    current: int,
    target: int,
    migrations: tuple[Migration, ...] | list[Migration] = MIGRATIONS,
) -> list[Migration] | None:
    """Return the ordered migrations leading from current to target.

    Returns [] when already at target and None when no chain exists
    (including downgrades).
    """
    if current == target:
        return []
    by_start = {m.from_version: m for m in migrations}
    path: list[Migration] = []
    version = current
    while version != target:
        step = by_start.get(version)
        if step is None or step.to_version <= version:
            return None
        path.append(step)
        version = step.to_version
        if version > target:
            return None
    return path


# ---------------------------------------------------------------------------
# DB helpers
# ---------------------------------------------------------------------------

def _table_exists(conn: psycopg.Connection, table: str) -> bool:
    row = conn.execute("SELECT to_regclass(%s)", (table,)).fetchone()
    return row is not None and row[0] is not None


def read_schema_version(conn: psycopg.Connection) -> int | None:
    if not _table_exists(conn, "schema_version"):
        return None
    row = conn.execute("SELECT max(version) FROM schema_version").fetchone()
    return row[0] if row else None


def _write_schema_version(conn: psycopg.Connection, version: int) -> None:
    conn.execute("DELETE FROM schema_version")
    conn.execute("INSERT INTO schema_version (version) VALUES (%s)", (version,))


def _create_all(conn: psycopg.Connection, version: int = SCHEMA_VERSION) -> None:
    conn.execute(SCHEMA_VERSION_DDL)
    for _table, ddl in CURRENT_TABLES:
        conn.execute(ddl)
    _write_schema_version(conn, version)


def drop_all(conn: psycopg.Connection) -> None:
    """Drop every managed table. Caller manages the transaction."""
    for table in MANAGED_TABLES:
        conn.execute(f"DROP TABLE IF EXISTS {table} CASCADE")


def ensure_schema(
    conn: psycopg.Connection,
    target: int = SCHEMA_VERSION,
    migrations: tuple[Migration, ...] | list[Migration] = MIGRATIONS,
) -> SchemaOpenResult:
    """Bring the store to the target schema version in one transaction."""
    with conn.transaction():
        current = read_schema_version(conn)

        if current is None and not _table_exists(conn, "patient"):
            _create_all(conn, target)
            log.info("Created fresh store at schema version %d", target)
            return SchemaOpenResult(created=True, from_version=None, to_version=target)

        path = migration_path(current, target, migrations) if current is not None else None
        if path is None:
            log.warning(
                "No migration path from schema version %s to %d; "
                "dropping and recreating all tables",
                current, target,
            )
            drop_all(conn)
            _create_all(conn, target)
            return SchemaOpenResult(
                created=True, from_version=current, to_version=target, destructive=True,
            )

        for step in path:
            log.info("Migrating schema %d -> %d", step.from_version, step.to_version)
            conn.execute(step.ddl)
        if path:
            _write_schema_version(conn, target)
        return SchemaOpenResult(created=False, from_version=current, to_version=target)
