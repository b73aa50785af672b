"""Bearer-token authentication for the payment gateway."""

from libs.gateway_auth.authenticator import (
    GatewayAuthenticator,
    Principal,
    clear_current_principal,
    extract_bearer_token,
    get_current_principal,
    set_current_principal,
)
from libs.gateway_auth.config import AuthConfig
from libs.gateway_auth.jwt_manager import JWTManager

__all__ = [
    "AuthConfig",
    "JWTManager",
    "GatewayAuthenticator",
    "Principal",
    "extract_bearer_token",
    "set_current_principal",
    "get_current_principal",
    "clear_current_principal",
]
