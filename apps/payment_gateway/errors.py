"""Exception -> HTTP mapping for the Payment Gateway.

Domain errors carry a stable ``code``; this module owns the status codes.
Lookup walks the exception's MRO so subclasses (``TokenExpiredError``,
``OrderExpiredError`` ...) inherit their parent's status unless listed.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

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

logger = logging.getLogger(__name__)

EXCEPTION_STATUS_MAP: dict[type[GatewayError], int] = {
    UnauthenticatedError: status.HTTP_401_UNAUTHORIZED,
    PrincipalInactiveError: status.HTTP_401_UNAUTHORIZED,
    InvalidHierarchyError: status.HTTP_400_BAD_REQUEST,
    InsufficientPrivilegeError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    OrderExpiredError: status.HTTP_409_CONFLICT,
    AlreadyInvalidatedError: status.HTTP_409_CONFLICT,
    DuplicateHandleError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def error_detail(error: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build consistent error payload with timestamp."""

    detail: dict[str, Any] = {
        "error": error,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if details:
        detail["details"] = details
    return detail


def status_for(exc: GatewayError) -> int:
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_MAP:
            return EXCEPTION_STATUS_MAP[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            "gateway_error",
            extra={"code": exc.code, "path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status_code,
            content=error_detail("internal_error", "Internal server error"),
        )

    logger.info(
        "request_rejected",
        extra={"code": exc.code, "status_code": status_code, "path": request.url.path},
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=error_detail(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic request validation errors."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")} for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_detail("validation_error", "Request validation failed", {"errors": errors}),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_exception",
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_detail("internal_error", "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, request_validation_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "EXCEPTION_STATUS_MAP",
    "error_detail",
    "status_for",
    "register_exception_handlers",
]
