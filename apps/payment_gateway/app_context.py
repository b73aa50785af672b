"""Application context for dependency injection in the Payment Gateway.

``AppContext`` holds every dependency route handlers need, so tests can
inject in-memory stores through ``create_app(context=...)`` instead of
patching module globals.

Usage:
    async def my_route(ctx: AppContext = Depends(get_context)):
        await ctx.order_service.list_orders(principal, raw_filter)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from config.settings import Settings
from libs.gateway_auth import AuthConfig, GatewayAuthenticator, JWTManager
from libs.identity.passwords import hash_password
from libs.identity.service import IdentityService
from libs.identity.store import IdentityStore, PostgresIdentityStore
from libs.orders.service import OrderService, utcnow
from libs.orders.store import OrderStore, PostgresOrderStore
from libs.rbac.diagnostics import DiagnosticsContext


@dataclass
class AppContext:
    """Central container for application dependencies.

    Attributes:
        settings: Service settings
        identities: Identity persistence
        orders: Order persistence
        identity_service: Account operations
        order_service: Order operations
        authenticator: Bearer token -> live ``Principal``
        diagnostics: RBAC decision logging switch
        db_pool: Connection pool owned by the app lifespan (None in tests)
    """

    settings: Settings
    identities: IdentityStore
    orders: OrderStore
    identity_service: IdentityService
    order_service: OrderService
    authenticator: GatewayAuthenticator
    diagnostics: DiagnosticsContext
    db_pool: Any | None = None


def build_context(
    settings: Settings,
    *,
    identities: IdentityStore,
    orders: OrderStore,
    auth_config: AuthConfig,
    db_pool: Any | None = None,
    clock: Callable[[], datetime] = utcnow,
    hasher: Callable[[str], str] = hash_password,
) -> AppContext:
    """Wire services around the given stores; tests pass in-memory stores."""
    diagnostics = DiagnosticsContext(enabled=settings.rbac_debug)
    jwt_manager = JWTManager(auth_config)
    page_bounds = {
        "default_page_size": settings.default_page_size,
        "max_page_size": settings.max_page_size,
        "max_page": settings.max_page,
    }

    identity_service = IdentityService(
        identities,
        jwt_manager=jwt_manager,
        diagnostics=diagnostics,
        hasher=hasher,
        **page_bounds,
    )
    order_service = OrderService(
        orders,
        identities,
        app_base_url=settings.app_base_url,
        default_ttl=settings.order_default_ttl_seconds,
        min_ttl=settings.order_min_ttl_seconds,
        max_ttl=settings.order_max_ttl_seconds,
        diagnostics=diagnostics,
        clock=clock,
        **page_bounds,
    )
    return AppContext(
        settings=settings,
        identities=identities,
        orders=orders,
        identity_service=identity_service,
        order_service=order_service,
        authenticator=GatewayAuthenticator(jwt_manager, identities),
        diagnostics=diagnostics,
        db_pool=db_pool,
    )


def build_postgres_context(
    settings: Settings, db_pool: Any, auth_config: AuthConfig | None = None
) -> AppContext:
    """Production wiring over a psycopg connection pool."""
    return build_context(
        settings,
        identities=PostgresIdentityStore(db_pool),
        orders=PostgresOrderStore(db_pool),
        auth_config=auth_config or AuthConfig.from_env(),
        db_pool=db_pool,
    )


__all__ = ["AppContext", "build_context", "build_postgres_context"]
