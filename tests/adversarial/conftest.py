"""
Shared fixtures for adversarial tests.

Provides PostgreSQL-backed services for race condition tests. Tests are
skipped when the database is not reachable.
"""

from collections.abc import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import (
    PostgresAccountRepository,
    PostgresPendingRegistrationRepository,
    run_migrations,
)
from src.adapters.tokens import JwtSessionIssuer
from src.config.settings import get_settings
from src.domain.registration import RegistrationService

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests."""
    settings = get_settings()
    try:
        psycopg.connect(settings.database_url, connect_timeout=2).close()
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not reachable: {e}")

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=20,
        open=True,
    )
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty both tables before each test."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM pending_registrations")
        conn.execute("DELETE FROM accounts")
        conn.commit()
    yield


@pytest.fixture
def postgres_service(pool: ConnectionPool, mailer) -> RegistrationService:
    """RegistrationService over the real repositories; mail is recorded."""
    return RegistrationService(
        pending_repository=PostgresPendingRegistrationRepository(pool),
        account_repository=PostgresAccountRepository(pool),
        mail_dispatcher=mailer,
        session_issuer=JwtSessionIssuer("adversarial-test-secret-key-long-enough"),
        bcrypt_rounds=4,
    )
