"""Health check endpoint.

The database probe only runs when the SQL-backed collaborators are enabled.
A "disconnected" database does not change the overall status ("ok"): the
endpoint always returns 200 so load balancers keep routing, and generation
still works in placeholder mode.
"""

from __future__ import annotations

import asyncio

import asyncpg
import structlog
from fastapi import APIRouter

from studio import __version__
from studio.config import settings

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

_CHECK_TIMEOUT = 3.0  # seconds


async def _check_postgres() -> str:
    """Ping PostgreSQL with SELECT 1."""
    # asyncpg wants a plain DSN, not the SQLAlchemy driver URL
    url = settings.database_url.replace("postgresql+asyncpg://", "postgresql://")
    try:
        conn = await asyncio.wait_for(asyncpg.connect(url), timeout=_CHECK_TIMEOUT)
        try:
            await conn.fetchval("SELECT 1")
        finally:
            await conn.close()
        return "connected"
    except (
        OSError,
        ValueError,
        asyncio.TimeoutError,
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
    ) as exc:
        logger.debug("health_postgres_failed", error=str(exc))
        return "disconnected"


@router.get("/health")
async def health_check() -> dict:
    database = await _check_postgres() if settings.use_database else "disabled"
    return {
        "status": "ok",
        "version": __version__,
        "environment": settings.environment,
        "database": database,
    }
