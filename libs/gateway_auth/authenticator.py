"""Bearer-token authentication for gateway requests."""

from __future__ import annotations

import contextvars
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from libs.common.exceptions import PrincipalInactiveError
from libs.common.logging.context import bind_principal_id
from libs.gateway_auth.exceptions import InvalidTokenError, MissingCredentialError
from libs.gateway_auth.jwt_manager import JWTManager
from libs.rbac.permissions import Role, normalize_role

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, built from the live identity record."""

    id: str
    role: Role
    parent_id: str | None
    is_active: bool
    handle: str


class IdentityLookup(Protocol):
    async def get(self, identity_id: str) -> Any | None: ...


_current_principal: contextvars.ContextVar[Principal | None] = contextvars.ContextVar(
    "current_principal", default=None
)


def set_current_principal(principal: Principal | None) -> None:
    _current_principal.set(principal)
    bind_principal_id(principal.id if principal else None)


def get_current_principal() -> Principal | None:
    return _current_principal.get()


def clear_current_principal() -> None:
    set_current_principal(None)


def extract_bearer_token(authorization_header: str | None) -> str:
    """Return the token from ``Authorization: Bearer <token>``.

    Raises:
        MissingCredentialError: Header missing, empty or not a Bearer credential
    """
    if not authorization_header:
        raise MissingCredentialError("Missing Authorization header")
    if not authorization_header.lower().startswith(BEARER_PREFIX):
        raise MissingCredentialError("Authorization header must use the Bearer scheme")
    token = authorization_header[len(BEARER_PREFIX) :].strip()
    if not token:
        raise MissingCredentialError("Empty bearer token")
    return token


class GatewayAuthenticator:
    """Resolves a bearer credential to a live, active principal."""

    def __init__(self, jwt_manager: JWTManager, identities: IdentityLookup) -> None:
        self.jwt_manager = jwt_manager
        self.identities = identities

    async def authenticate(self, authorization_header: str | None) -> Principal:
        """Validate the credential and return the current principal.

        The role comes from the stored identity, never from token claims, so
        role changes and deactivation take effect on the next request.

        Raises:
            UnauthenticatedError (subclasses): Missing/invalid/expired credential
            PrincipalInactiveError: Identity missing or deactivated
        """
        token = extract_bearer_token(authorization_header)
        claims = self.jwt_manager.decode_token(token)

        subject_id = claims.get("sub")
        if not isinstance(subject_id, str) or not subject_id:
            raise InvalidTokenError("Token missing subject")

        identity = await self.identities.get(subject_id)
        if identity is None or not identity.is_active:
            logger.warning(
                "principal_inactive",
                extra={"subject_id": subject_id, "jti": claims.get("jti")},
            )
            raise PrincipalInactiveError("Account is inactive or no longer exists")

        role = normalize_role(identity.role)
        if role is None:
            logger.warning(
                "unknown_role_value", extra={"subject_id": subject_id, "role": identity.role}
            )
            raise PrincipalInactiveError("Account has no usable role")

        return Principal(
            id=identity.id,
            role=role,
            parent_id=identity.parent_id,
            is_active=identity.is_active,
            handle=identity.handle,
        )


__all__ = [
    "Principal",
    "GatewayAuthenticator",
    "extract_bearer_token",
    "set_current_principal",
    "get_current_principal",
    "clear_current_principal",
]
