"""Fixtures for Payment Gateway HTTP tests.

The app is built with ``create_app(context=...)`` over the in-memory stores
from ``tests/conftest.py``, so no database or lifespan pool is involved.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from apps.payment_gateway.app_context import AppContext, build_context
from apps.payment_gateway.main import create_app
from config.settings import Settings
from libs.gateway_auth import AuthConfig, JWTManager
from tests.fixtures.stores import (
    AuthHeaders,
    FrozenClock,
    Hierarchy,
    InMemoryIdentityStore,
    InMemoryOrderStore,
    fast_hasher,
    fast_verifier,
)


@pytest.fixture()
def app_context(
    settings: Settings,
    identity_store: InMemoryIdentityStore,
    order_store: InMemoryOrderStore,
    auth_config: AuthConfig,
    clock: FrozenClock,
    hierarchy: Hierarchy,
) -> AppContext:
    ctx = build_context(
        settings,
        identities=identity_store,
        orders=order_store,
        auth_config=auth_config,
        clock=clock,
        hasher=fast_hasher,
    )
    ctx.identity_service.verifier = fast_verifier
    return ctx


@pytest.fixture()
def client(app_context: AppContext) -> Iterator[TestClient]:
    with TestClient(create_app(context=app_context)) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers(jwt_manager: JWTManager, hierarchy: Hierarchy) -> AuthHeaders:
    """Bearer headers for a named hierarchy member (``"owner"``, ``"shop1"`` ...)."""

    def _headers(name: str) -> dict[str, str]:
        identity = getattr(hierarchy, name)
        token = jwt_manager.generate_access_token(identity.id, identity.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
