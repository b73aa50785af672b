"""Authentication configuration for the payment gateway."""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class AuthConfig:
    """Bearer-token configuration with secure defaults.

    HS256 with a shared secret unless ``jwt_algorithm`` is RS*, PS* or ES*,
    in which case the PEM key paths are used. All settings can be overridden
    via environment variables using from_env().
    """

    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_private_key_path: Path | None = None
    jwt_public_key_path: Path | None = None
    jwt_issuer: str = "payment-gateway"  # Issuer claim (prevents token confusion)
    jwt_audience: str = "payment-gateway-api"  # Audience claim (prevents cross-service replay)

    access_token_ttl: int = 86400  # 1 day

    # Accept tokens up to 30s in the future
    clock_skew_seconds: int = 30

    @property
    def uses_key_pair(self) -> bool:
        return self.jwt_algorithm.upper().startswith(("RS", "ES", "PS"))

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Load configuration from environment variables.

        Environment variable mapping:
        - JWT_SECRET: Shared secret for HS* algorithms
        - JWT_ALGORITHM: Signing algorithm (HS256, RS256, ...)
        - JWT_PRIVATE_KEY_PATH / JWT_PUBLIC_KEY_PATH: PEM files for RS* algorithms
        - JWT_ISSUER / JWT_AUDIENCE: Expected iss/aud claims
        - ACCESS_TOKEN_TTL: Access token expiration in seconds
        - CLOCK_SKEW_SECONDS: Leeway applied when checking exp/iat
        """
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_private_key_path=(
                Path(private_path) if (private_path := os.getenv("JWT_PRIVATE_KEY_PATH")) else None
            ),
            jwt_public_key_path=(
                Path(public_path) if (public_path := os.getenv("JWT_PUBLIC_KEY_PATH")) else None
            ),
            jwt_issuer=os.getenv("JWT_ISSUER", "payment-gateway"),
            jwt_audience=os.getenv("JWT_AUDIENCE", "payment-gateway-api"),
            access_token_ttl=int(os.getenv("ACCESS_TOKEN_TTL", "86400")),
            clock_skew_seconds=int(os.getenv("CLOCK_SKEW_SECONDS", "30")),
        )
