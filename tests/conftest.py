"""
Shared fixtures for gateway tests.

Provides:
1. An in-memory owner -> merchant -> member hierarchy
2. Services wired to in-memory stores with a controllable clock
3. JWT configuration with a fixed HS256 secret
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from config.settings import Settings
from libs.gateway_auth import AuthConfig, JWTManager
from libs.identity.service import IdentityService
from libs.orders.service import OrderService
from libs.rbac.diagnostics import DiagnosticsContext
from libs.rbac.permissions import Role
from tests.fixtures.stores import (
    BASE_TIME,
    FrozenClock,
    Hierarchy,
    InMemoryIdentityStore,
    InMemoryOrderStore,
    fast_hasher,
    fast_verifier,
)

TEST_JWT_SECRET = "test-secret-key-for-hs256-signing-0123456789"
APP_BASE_URL = "https://pay.example.com"


@pytest.fixture()
def settings() -> Settings:
    return Settings(app_base_url=APP_BASE_URL, rbac_debug=True)


@pytest.fixture()
def auth_config() -> AuthConfig:
    return AuthConfig(jwt_secret=TEST_JWT_SECRET)


@pytest.fixture()
def jwt_manager(auth_config: AuthConfig) -> JWTManager:
    return JWTManager(auth_config)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(BASE_TIME + timedelta(days=30))


@pytest.fixture()
def identity_store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture()
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture()
def hierarchy(identity_store: InMemoryIdentityStore) -> Hierarchy:
    owner = identity_store.seed("root", Role.OWNER)
    shop1 = identity_store.seed("shop1", Role.MERCHANT, created_by=owner.id)
    alice = identity_store.seed("alice", Role.MEMBER, shop1.id, created_by=shop1.id)
    shop2 = identity_store.seed("shop2", Role.MERCHANT, created_by=owner.id)
    bob = identity_store.seed("bob", Role.MEMBER, shop2.id, created_by=shop2.id)
    return Hierarchy(owner=owner, shop1=shop1, alice=alice, shop2=shop2, bob=bob)


@pytest.fixture()
def identity_service(
    identity_store: InMemoryIdentityStore, jwt_manager: JWTManager
) -> IdentityService:
    return IdentityService(
        identity_store,
        jwt_manager=jwt_manager,
        diagnostics=DiagnosticsContext(enabled=True),
        hasher=fast_hasher,
        verifier=fast_verifier,
    )


@pytest.fixture()
def order_service(
    order_store: InMemoryOrderStore,
    identity_store: InMemoryIdentityStore,
    clock: FrozenClock,
) -> OrderService:
    return OrderService(
        order_store,
        identity_store,
        app_base_url=APP_BASE_URL,
        diagnostics=DiagnosticsContext(enabled=True),
        clock=clock,
    )
