"""
Payment Gateway - FastAPI Application

Hosts identity management, order lifecycle and RBAC diagnostics behind a
bearer-token gateway. All state lives in PostgreSQL.

Usage:
    uvicorn apps.payment_gateway.main:app --host 0.0.0.0 --port 8000

    # In tests
    app = create_app(context=build_context(settings, identities=..., orders=..., ...))
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from apps.payment_gateway.app_context import AppContext, build_postgres_context
from apps.payment_gateway.errors import register_exception_handlers
from apps.payment_gateway.routes import auth, dashboard, debug, health, orders, users
from config.settings import Settings, get_settings
from libs.common.db import create_db_pool
from libs.common.logging import configure_logging
from libs.common.logging.middleware import add_trace_id_middleware

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


def create_app(context: AppContext | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        context: Pre-built context (tests inject in-memory stores here). When
            None, the lifespan opens a connection pool and wires Postgres stores.
        settings: Settings for the production path; defaults to ``get_settings()``

    Returns:
        FastAPI: Configured application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if context is not None:
            app.state.context = context
            yield
            return

        resolved = settings or get_settings()
        configure_logging(service_name=resolved.service_name, log_level=resolved.log_level)
        db_pool = create_db_pool(
            resolved.database_url,
            min_size=resolved.db_pool_min_size,
            max_size=resolved.db_pool_max_size,
            timeout=resolved.db_pool_timeout,
        )
        await db_pool.open()
        app.state.context = build_postgres_context(resolved, db_pool)
        logger.info(
            "service_started",
            extra={"service": resolved.service_name, "rbac_debug": resolved.rbac_debug},
        )
        try:
            yield
        finally:
            await db_pool.close()
            logger.info("service_stopped", extra={"service": resolved.service_name})

    app = FastAPI(
        title="Payment Gateway",
        description="Payment orders with owner/merchant/member access control",
        version=__version__,
        lifespan=lifespan,
    )

    add_trace_id_middleware(app)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(orders.router)
    app.include_router(dashboard.router)
    app.include_router(debug.router)

    return app


app = create_app()
