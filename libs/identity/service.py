"""Identity operations: create, update, deactivate, list, login, bootstrap.

Every read goes through ``identity_filter`` so an out-of-scope identity is
reported exactly like a missing one (``NotFoundError``). Every write goes
through ``validate_and_prepare`` inside the store's transaction.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from libs.common.exceptions import (
    InsufficientPrivilegeError,
    InvalidHierarchyError,
    NotFoundError,
    ValidationError,
)
from libs.gateway_auth.authenticator import Principal
from libs.gateway_auth.exceptions import InvalidCredentialsError
from libs.gateway_auth.jwt_manager import JWTManager
from libs.identity.hierarchy import validate_and_prepare
from libs.identity.models import Identity, IdentityCandidate, IdentityChanges
from libs.identity.passwords import burn_verification, hash_password, verify_password
from libs.identity.store import IdentityStore
from libs.rbac.diagnostics import DiagnosticsContext
from libs.rbac.permissions import (
    Role,
    can_change_role,
    can_create_role,
    can_delete_user,
    can_manage_identity,
    normalize_role,
)
from libs.rbac.predicates import eq
from libs.rbac.scoping import ACTIVE, identity_filter, scoped
from libs.security.sanitization import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MAX_PAGE,
    sanitize_identifier,
    sanitize_identity_filter,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityPage:
    items: list[Identity]
    page: int
    page_size: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in: int
    identity: Identity


class IdentityService:
    """Account management bound to the owner -> merchant -> member hierarchy."""

    def __init__(
        self,
        store: IdentityStore,
        *,
        jwt_manager: JWTManager | None = None,
        diagnostics: DiagnosticsContext | None = None,
        hasher: Callable[[str], str] = hash_password,
        verifier: Callable[[str, str], bool] = verify_password,
        default_page_size: int = DEFAULT_LIMIT,
        max_page_size: int = MAX_LIMIT,
        max_page: int = MAX_PAGE,
    ) -> None:
        self.store = store
        self.jwt_manager = jwt_manager
        self.diagnostics = diagnostics or DiagnosticsContext()
        self.verifier = verifier
        self._prepare = functools.partial(validate_and_prepare, hasher=hasher)
        self._page_bounds = {
            "default_limit": default_page_size,
            "max_limit": max_page_size,
            "max_page": max_page,
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _scoped_lookup(self, actor: Principal, target_id: Any) -> Identity:
        identity_id = sanitize_identifier(target_id)
        if identity_id is None:
            raise NotFoundError("User not found")
        predicate = scoped(identity_filter(actor.role, actor.id), eq("id", identity_id))
        identity = await self.store.find_one(predicate)
        self.diagnostics.log_data_filter(actor, "identity", predicate, 1 if identity else 0)
        if identity is None:
            raise NotFoundError("User not found")
        return identity

    async def get_identity(self, actor: Principal, identity_id: Any) -> Identity:
        return await self._scoped_lookup(actor, identity_id)

    async def list_identities(self, actor: Principal, raw_filter: Any = None) -> IdentityPage:
        """Scoped, sanitized and paginated identity listing."""
        sanitized = sanitize_identity_filter(raw_filter, **self._page_bounds)
        predicate = scoped(identity_filter(actor.role, actor.id), *sanitized.terms)
        page = sanitized.page
        items = await self.store.find(predicate, limit=page.limit, offset=page.offset)
        total = await self.store.count(predicate)
        self.diagnostics.log_data_filter(actor, "identity", predicate, total)
        return IdentityPage(items=items, page=page.page, page_size=page.limit, total=total)

    async def list_merchants(self, actor: Principal, raw_filter: Any = None) -> IdentityPage:
        """Owner-only listing of active merchants."""
        allowed = actor.role is Role.OWNER
        self.diagnostics.log_permission_check(actor, "list_merchants", allowed)
        if not allowed:
            raise InsufficientPrivilegeError("Only the owner can list merchants")
        sanitized = sanitize_identity_filter(raw_filter, **self._page_bounds)
        predicate = scoped(
            identity_filter(actor.role, actor.id), eq("role", Role.MERCHANT.value), *sanitized.terms
        )
        page = sanitized.page
        items = await self.store.find(predicate, limit=page.limit, offset=page.offset)
        total = await self.store.count(predicate)
        return IdentityPage(items=items, page=page.page, page_size=page.limit, total=total)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_identity(
        self,
        actor: Principal,
        handle: str,
        secret: str,
        role: Any = Role.MEMBER,
        parent_id: Any = None,
    ) -> Identity:
        """Create an account.

        Merchants create members only, always parented to themselves. The
        owner creates any role and must name the parent merchant for members.

        Raises:
            ValidationError: Unknown role or malformed parent id
            InsufficientPrivilegeError: Actor may not create this role
            InvalidHierarchyError: Missing or invalid parent
            DuplicateHandleError: Handle already taken
        """
        target_role = normalize_role(role)
        if target_role is None:
            raise ValidationError("Unknown role", details={"role": str(role)})

        allowed = can_create_role(actor.role, target_role)
        self.diagnostics.log_permission_check(
            actor, "create_identity", allowed, target_role=target_role.value
        )
        if not allowed:
            raise InsufficientPrivilegeError(f"Cannot create {target_role.value} accounts")

        resolved_parent: str | None = None
        if parent_id is not None:
            resolved_parent = sanitize_identifier(parent_id)
            if resolved_parent is None:
                raise ValidationError("Malformed parent id")

        if actor.role is Role.MERCHANT:
            resolved_parent = actor.id
        elif target_role is Role.MEMBER and resolved_parent is None:
            raise InvalidHierarchyError("A merchant parent is required for members")

        candidate = IdentityCandidate(
            handle=handle, role=target_role, parent_id=resolved_parent, secret=secret
        )
        identity = await self.store.insert(candidate, created_by=actor.id, prepare=self._prepare)
        logger.info(
            "identity_created",
            extra={
                "identity_id": identity.id,
                "role": identity.role.value,
                "parent_id": identity.parent_id,
                "created_by": actor.id,
            },
        )
        return identity

    async def update_identity(
        self, actor: Principal, target_id: Any, changes: IdentityChanges
    ) -> Identity:
        """Apply a partial update.

        Raises:
            NotFoundError: Target missing or out of scope
            ValidationError: Empty update
            InsufficientPrivilegeError: Actor may not make this change
            InvalidHierarchyError: Result would break the hierarchy
            DuplicateHandleError: Handle already taken
        """
        target = await self._scoped_lookup(actor, target_id)
        if changes.is_empty():
            raise ValidationError("No changes supplied")

        allowed = can_manage_identity(actor, target)
        self.diagnostics.log_permission_check(
            actor, "manage_identity", allowed, target_id=target.id
        )
        if not allowed:
            raise InsufficientPrivilegeError("Cannot modify this user")

        if changes.role is not None and changes.role is not target.role:
            role_allowed = can_change_role(actor.role, target.role, changes.role)
            self.diagnostics.log_permission_check(
                actor,
                "change_role",
                role_allowed,
                from_role=target.role.value,
                to_role=changes.role.value,
            )
            if not role_allowed:
                raise InsufficientPrivilegeError("Only the owner can change roles")

        if changes.set_parent and changes.parent_id is not None:
            canonical_parent = sanitize_identifier(changes.parent_id)
            if canonical_parent is None:
                raise ValidationError("Malformed parent id")
            changes = replace(changes, parent_id=canonical_parent)

        if changes.set_parent and changes.parent_id != target.parent_id:
            if actor.role is not Role.OWNER:
                raise InsufficientPrivilegeError("Only the owner can reassign parents")

        if changes.is_active is not None and changes.is_active != target.is_active:
            if not self._may_change_activation(actor, target):
                raise InsufficientPrivilegeError("Cannot change activation of this user")

        updated = await self.store.update(
            target.id, changes, actor_id=actor.id, prepare=self._prepare
        )
        logger.info(
            "identity_updated",
            extra={
                "identity_id": updated.id,
                "updated_by": actor.id,
                "role": updated.role.value,
                "is_active": updated.is_active,
                "secret_changed": changes.secret is not None,
            },
        )
        return updated

    @staticmethod
    def _may_change_activation(actor: Principal, target: Identity) -> bool:
        if actor.role is Role.OWNER:
            return True
        return (
            actor.role is Role.MERCHANT
            and target.role is Role.MEMBER
            and target.parent_id == actor.id
        )

    async def deactivate_identity(self, actor: Principal, target_id: Any) -> Identity:
        """Soft-delete an account.

        Raises:
            NotFoundError: Target missing, out of scope or already inactive
            InsufficientPrivilegeError: Actor may not delete the target
        """
        target = await self._scoped_lookup(actor, target_id)
        is_self = target.id == actor.id
        allowed = (actor.role is Role.OWNER or can_manage_identity(actor, target)) and (
            can_delete_user(actor.role, target.role, is_self)
        )
        self.diagnostics.log_permission_check(
            actor, "delete_identity", allowed, target_id=target.id, is_self=is_self
        )
        if not allowed:
            raise InsufficientPrivilegeError("Cannot delete this user")

        deactivated = await self.store.deactivate(target.id, actor_id=actor.id)
        if deactivated is None:
            raise NotFoundError("User not found")
        logger.info(
            "identity_deactivated",
            extra={"identity_id": deactivated.id, "deleted_by": actor.id},
        )
        return deactivated

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def authenticate_credentials(self, handle: Any, secret: Any) -> Identity:
        """Check a handle/secret pair.

        Unknown handle, wrong secret and inactive account raise the same
        error so callers cannot probe which accounts exist.

        Raises:
            InvalidCredentialsError: On any failure
        """
        if not isinstance(handle, str) or not isinstance(secret, str) or not secret:
            raise InvalidCredentialsError("Invalid credentials")

        identity = await self.store.get_by_handle(handle.strip())
        if identity is None:
            await asyncio.to_thread(burn_verification, secret)
            logger.info("login_failed", extra={"reason": "unknown_handle"})
            raise InvalidCredentialsError("Invalid credentials")

        verified = await asyncio.to_thread(self.verifier, secret, identity.password_hash)
        if not verified or not identity.is_active:
            logger.info(
                "login_failed",
                extra={
                    "identity_id": identity.id,
                    "reason": "inactive" if verified else "bad_secret",
                },
            )
            raise InvalidCredentialsError("Invalid credentials")
        return identity

    async def login(self, handle: Any, secret: Any) -> IssuedToken:
        """Authenticate and issue a bearer token."""
        if self.jwt_manager is None:
            raise RuntimeError("IdentityService was created without a JWTManager")
        identity = await self.authenticate_credentials(handle, secret)
        token = self.jwt_manager.generate_access_token(identity.id, identity.role.value)
        logger.info("login_succeeded", extra={"identity_id": identity.id})
        return IssuedToken(
            token=token,
            expires_in=self.jwt_manager.config.access_token_ttl,
            identity=identity,
        )

    async def bootstrap_owner(self, handle: str, secret: str) -> Identity:
        """Create the first owner; refused once an active owner exists.

        Raises:
            InsufficientPrivilegeError: An active owner already exists
        """
        existing = await self.store.count(scoped(ACTIVE, eq("role", Role.OWNER.value)))
        if existing:
            raise InsufficientPrivilegeError("An active owner already exists")
        candidate = IdentityCandidate(handle=handle, role=Role.OWNER, secret=secret)
        identity = await self.store.insert(candidate, created_by=None, prepare=self._prepare)
        logger.info("owner_bootstrapped", extra={"identity_id": identity.id})
        return identity


__all__ = ["IdentityService", "IdentityPage", "IssuedToken"]
