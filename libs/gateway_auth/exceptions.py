"""Authentication exceptions for the payment gateway.

All credential failures are ``UnauthenticatedError`` subclasses so the HTTP
layer maps them to one status code.
"""

from libs.common.exceptions import PrincipalInactiveError, UnauthenticatedError


class MissingCredentialError(UnauthenticatedError):
    """Authorization header missing or not a Bearer credential."""


class InvalidTokenError(UnauthenticatedError):
    """Token is malformed, has a bad signature or the wrong type."""


class InvalidIssuerError(InvalidTokenError):
    """Token issuer is not trusted."""


class InvalidAudienceError(InvalidTokenError):
    """Token audience does not match this service."""


class TokenExpiredError(UnauthenticatedError):
    """Token has expired."""


class InvalidCredentialsError(UnauthenticatedError):
    """Invalid handle or secret."""


__all__ = [
    "MissingCredentialError",
    "InvalidTokenError",
    "InvalidIssuerError",
    "InvalidAudienceError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    "PrincipalInactiveError",
    "UnauthenticatedError",
]
