"""Health check endpoint for the Payment Gateway."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import psycopg
from fastapi import APIRouter, Depends

from apps.payment_gateway.app_context import AppContext
from apps.payment_gateway.dependencies import get_context
from apps.payment_gateway.schemas import HealthResponse
from libs.common.db import acquire_connection

logger = logging.getLogger(__name__)

router = APIRouter()


async def _check_database(db_pool: object) -> bool:
    try:
        async with acquire_connection(db_pool) as conn:
            await conn.execute("SELECT 1")
    except (psycopg.Error, OSError, TimeoutError) as exc:
        logger.warning("health_db_check_failed", extra={"error": str(exc)})
        return False
    return True


@router.get("/health", tags=["health"])
async def health_check(ctx: AppContext = Depends(get_context)) -> HealthResponse:
    """
    Liveness plus a database ping when a pool is configured.

    Returns ``degraded`` (still HTTP 200) when the database is unreachable.
    """
    database_connected: bool | None = None
    if ctx.db_pool is not None:
        database_connected = await _check_database(ctx.db_pool)

    return HealthResponse(
        status="degraded" if database_connected is False else "healthy",
        service=ctx.settings.service_name,
        database_connected=database_connected,
        timestamp=datetime.now(UTC),
    )
