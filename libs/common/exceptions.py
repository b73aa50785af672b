"""
Exception hierarchy for the payment gateway.

Every error surfaced to a caller carries a stable machine-readable ``code``.
HTTP status mapping is owned by the application layer, not by this module.

Scoping denials are reported as ``NotFoundError`` on purpose, so a caller can
never distinguish "does not exist" from "not yours".
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    Example:
        >>> try:
        ...     raise NotFoundError("Order not found")
        ... except GatewayError as e:
        ...     e.code
        'not_found'
    """

    code = "internal_error"

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        default = (self.__class__.__doc__ or self.code).strip().splitlines()[0]
        self.message = message or default
        self.details = details or {}
        super().__init__(self.message)


class UnauthenticatedError(GatewayError):
    """Missing, malformed, invalid or expired credential."""

    code = "unauthenticated"


class PrincipalInactiveError(GatewayError):
    """Credential was valid but the identity is missing or deactivated."""

    code = "principal_inactive"


class InvalidHierarchyError(GatewayError):
    """
    Raised when a write would break the role/parent invariant.

    Example:
        >>> raise InvalidHierarchyError("Members must have a merchant parent")
    """

    code = "invalid_hierarchy"


class InsufficientPrivilegeError(GatewayError):
    """The permission evaluator denied the operation."""

    code = "insufficient_privilege"


class NotFoundError(GatewayError):
    """Record absent or outside the caller's scope."""

    code = "not_found"


class InvalidTransitionError(GatewayError):
    """Order status does not allow the requested transition."""

    code = "invalid_transition"


class OrderExpiredError(InvalidTransitionError):
    """Order passed its expiry before the transition could be applied."""

    code = "order_expired"


class AlreadyInvalidatedError(InvalidTransitionError):
    """Order has already been invalidated."""

    code = "already_invalidated"


class DuplicateHandleError(GatewayError):
    """Identity handle already taken."""

    code = "duplicate_handle"


class ValidationError(GatewayError):
    """Malformed input."""

    code = "validation_error"


__all__ = [
    "GatewayError",
    "UnauthenticatedError",
    "PrincipalInactiveError",
    "InvalidHierarchyError",
    "InsufficientPrivilegeError",
    "NotFoundError",
    "InvalidTransitionError",
    "OrderExpiredError",
    "AlreadyInvalidatedError",
    "DuplicateHandleError",
    "ValidationError",
]
