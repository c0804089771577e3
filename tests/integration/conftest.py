"""
Shared fixtures for integration tests.

Tests that need PostgreSQL (DATABASE_URL) request the `pool` and
`clean_database` fixtures; they are skipped when the database is not
reachable. Schema-only tests such as test_openapi need neither.
"""

from collections.abc import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import run_migrations
from src.config.settings import get_settings


def open_test_pool() -> ConnectionPool:
    """Open a migrated pool against DATABASE_URL, or skip the calling test."""
    settings = get_settings()
    try:
        psycopg.connect(settings.database_url, connect_timeout=2).close()
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not reachable: {e}")

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=True,
    )
    run_migrations(pool)
    return pool


def truncate_tables(pool: ConnectionPool) -> None:
    with pool.connection() as conn:
        conn.execute("DELETE FROM pending_registrations")
        conn.execute("DELETE FROM accounts")
        conn.commit()


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests."""
    pool = open_test_pool()
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty both tables before each test."""
    truncate_tables(pool)
    yield
