"""Password hashing (argon2 via passlib)."""

from __future__ import annotations

import logging
from functools import lru_cache

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(secret: str) -> str:
    return pwd_context.hash(secret)


def verify_password(secret: str, password_hash: str) -> bool:
    """Constant-time verification; malformed hashes verify as False."""
    try:
        return bool(pwd_context.verify(secret, password_hash))
    except ValueError:
        logger.warning("password_hash_unreadable")
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return pwd_context.hash("dummy-secret-for-timing")


def burn_verification(secret: str) -> None:
    """Spend one verification on a throwaway hash.

    Used when the handle is unknown so the response time does not reveal
    whether the account exists.
    """
    verify_password(secret, _dummy_hash())


__all__ = ["hash_password", "verify_password", "burn_verification"]
