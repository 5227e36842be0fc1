"""Integration test fixtures.

Brings an ephemeral PostgreSQL database provided by pytest-postgresql to
the current schema version before each integration test.
"""

from __future__ import annotations

import psycopg
import pytest
from pytest_postgresql import factories

from nutritrack_etl.record_store import RecordStore
from nutritrack_etl.schema import ensure_schema

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


def _dsn(postgresql) -> str:
    return (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )


# ---------------------------------------------------------------------------
# Schema fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def empty_db(postgresql):
    """Return (conn, dsn) for a database with no tables at all."""
    dsn = _dsn(postgresql)
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        yield conn, dsn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def db_conn(empty_db):
    """Return (conn, dsn) with the current schema applied.

    Each test gets a fresh schema via function scope so tests are isolated.
    """
    conn, dsn = empty_db
    ensure_schema(conn)
    yield conn, dsn


@pytest.fixture
def store(db_conn) -> RecordStore:
    _, dsn = db_conn
    return RecordStore(dsn)
