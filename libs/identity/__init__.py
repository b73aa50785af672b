"""Accounts and the owner -> merchant -> member hierarchy.

The service and store are imported from ``libs.identity.service`` and
``libs.identity.store`` directly.
"""

from libs.identity.hierarchy import validate_and_prepare, validate_identity_write
from libs.identity.models import Identity, IdentityCandidate, IdentityChanges, PreparedIdentity
from libs.identity.passwords import hash_password, verify_password

__all__ = [
    "Identity",
    "IdentityCandidate",
    "IdentityChanges",
    "PreparedIdentity",
    "validate_identity_write",
    "validate_and_prepare",
    "hash_password",
    "verify_password",
]
