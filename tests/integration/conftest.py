"""Integration test fixtures.

Creates the sipin_sips fixture table in an ephemeral PostgreSQL database
provided by pytest-postgresql before each integration test.
"""

from __future__ import annotations

from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

SCHEMA = Path(__file__).parent / "sql" / "sipin_sips.sql"

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return a psycopg connection with the fixture schema applied.

    Each test gets a fresh database via function scope so tests are isolated.
    """
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        conn.execute(SCHEMA.read_text(encoding="utf-8"))
        conn.autocommit = False
        yield conn, dsn
    finally:
        conn.close()

