"""
Application entry point.

Builds the FastAPI app for the marketplace account service: the v1 auth
router, the error handlers, and a lifespan that owns the database pool and
the expired-registration sweeper.

Run with: uvicorn src.api.main:app
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresPendingRegistrationRepository, run_migrations
from src.api.errors import register_exception_handlers
from src.api.v1 import router as v1_router
from src.config.settings import get_settings
from src.domain.exceptions import InternalError

logger = logging.getLogger(__name__)

tags_metadata = [
    {
        "name": "v1",
        "description": "Accounts v1 - signup, email verification, login and profile",
    },
]


async def purge_expired_registrations(pool: ConnectionPool, interval_seconds: float) -> None:
    """
    Delete expired pending registrations every interval_seconds.

    PostgreSQL has no TTL index; this sweep only reclaims space. Reads
    already treat expired rows as absent.
    """
    repository = PostgresPendingRegistrationRepository(pool)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(
                repository.purge_expired, datetime.now(timezone.utc)
            )
        except InternalError:
            logger.warning("Expired registration purge failed; retrying next interval")
            continue
        if removed:
            logger.info("Purged %d expired pending registration(s)", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the pool, migrate, start the sweeper; undo all three on shutdown."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )
    logger.info("Database pool open (%d-%d connections)", pool.min_size, pool.max_size)
    run_migrations(pool)

    # Repositories are built per request from app.state.pool
    app.state.pool = pool
    sweeper = asyncio.create_task(
        purge_expired_registrations(pool, settings.purge_interval_seconds)
    )
    logger.info("marketplace-accounts ready")

    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        pool.close()
        logger.info("Database pool closed")


app = FastAPI(
    title="marketplace-accounts",
    description="Account service for the services marketplace - "
    "pending registrations, email verification, and sessions",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

register_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """Liveness plus a SELECT 1 round trip; a database failure surfaces as 500."""
    with request.app.state.pool.connection() as conn:
        conn.execute("SELECT 1")
    return {"status": "healthy"}
