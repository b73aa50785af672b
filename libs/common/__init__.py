"""Common utilities and exceptions."""

from libs.common.exceptions import (
    AlreadyInvalidatedError,
    DuplicateHandleError,
    GatewayError,
    InsufficientPrivilegeError,
    InvalidHierarchyError,
    InvalidTransitionError,
    NotFoundError,
    OrderExpiredError,
    PrincipalInactiveError,
    UnauthenticatedError,
    ValidationError,
)

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
