"""JWT access token generation and validation."""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, cast

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from libs.gateway_auth.config import AuthConfig
from libs.gateway_auth.exceptions import (
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
    TokenExpiredError,
)

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"


def _key_types(algorithm: str) -> tuple[type, type]:
    """(private, public) key classes accepted for an asymmetric algorithm."""
    if algorithm.upper().startswith("ES"):
        return ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey
    return rsa.RSAPrivateKey, rsa.RSAPublicKey


def _read_signing_key(path: Path, *, private: bool, algorithm: str) -> Any:
    """Read a PEM key (unencrypted when private) matching ``algorithm``'s family."""
    kind = "private" if private else "public"
    if not path.is_file():
        raise FileNotFoundError(f"JWT {kind} key not found: {path}")
    pem = path.read_bytes()
    key = (
        serialization.load_pem_private_key(pem, password=None)
        if private
        else serialization.load_pem_public_key(pem)
    )
    expected = _key_types(algorithm)[0 if private else 1]
    if not isinstance(key, expected):
        raise ValueError(f"JWT {kind} key at {path} does not suit {algorithm}")
    return key


class JWTManager:
    """Issues and verifies bearer access tokens.

    HS256 with a shared secret by default; RS*, PS* and ES* algorithms sign
    with PEM key pairs from disk (EC keys for ES*, RSA otherwise). Tokens are
    never logged, only their ``jti``. Issuer and audience are always checked,
    with ``clock_skew_seconds`` of leeway on time claims.
    """

    def __init__(self, config: AuthConfig) -> None:
        """Initialize the manager and load signing material.

        Raises:
            FileNotFoundError: If configured JWT key files don't exist
            ValueError: If no usable signing secret or key is configured
        """
        self.config = config
        self.signing_key: Any
        self.verification_key: Any

        if config.uses_key_pair:
            if config.jwt_private_key_path is None or config.jwt_public_key_path is None:
                raise ValueError(f"{config.jwt_algorithm} requires JWT key paths")
            self.signing_key = _read_signing_key(
                config.jwt_private_key_path, private=True, algorithm=config.jwt_algorithm
            )
            self.verification_key = _read_signing_key(
                config.jwt_public_key_path, private=False, algorithm=config.jwt_algorithm
            )
        else:
            if not config.jwt_secret:
                raise ValueError("JWT_SECRET must be set for HMAC token signing")
            self.signing_key = config.jwt_secret
            self.verification_key = config.jwt_secret

        logger.info(
            "jwt_manager_initialized",
            extra={"algorithm": config.jwt_algorithm, "access_ttl": config.access_token_ttl},
        )

    def generate_access_token(
        self, subject_id: str, role: str, *, now: datetime | None = None
    ) -> str:
        """Generate a signed access token.

        The role claim is informational only; authorization always uses the
        role stored on the live identity record.
        """
        issued_at = now or datetime.now(UTC)
        expires_at = issued_at + timedelta(seconds=self.config.access_token_ttl)
        claims = {
            "sub": subject_id,
            "role": role,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
            "iss": self.config.jwt_issuer,
            "aud": self.config.jwt_audience,
            "type": ACCESS_TOKEN_TYPE,
        }

        logger.debug("access_token_issued", extra={"subject_id": subject_id, "jti": claims["jti"]})
        return jwt.encode(claims, self.signing_key, algorithm=self.config.jwt_algorithm)

    def decode_token(self, token: str) -> dict[str, Any]:
        """Verify signature, expiry, issuer, audience and token type.

        Raises:
            TokenExpiredError: Token past ``exp`` (beyond clock skew)
            InvalidIssuerError / InvalidAudienceError: Claim mismatch
            InvalidTokenError: Any other verification failure
        """
        config = self.config
        try:
            claims = cast(
                dict[str, Any],
                jwt.decode(
                    token,
                    self.verification_key,
                    algorithms=[config.jwt_algorithm],
                    issuer=config.jwt_issuer,
                    audience=config.jwt_audience,
                    options={
                        "verify_signature": True,
                        "verify_exp": True,
                        "verify_iss": True,
                        "verify_aud": True,
                        "require": ["sub", "exp", "iat", "jti"],
                    },
                    leeway=config.clock_skew_seconds,
                ),
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidIssuerError as exc:
            raise InvalidIssuerError("Token issuer not trusted") from exc
        except jwt.InvalidAudienceError as exc:
            raise InvalidAudienceError("Token not intended for this service") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError("Token verification failed") from exc

        if claims.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidTokenError(f"Expected access token, got {claims.get('type')}")

        return claims
