"""Keyed hashing for values that are matched but never displayed (employee keys)."""

import hashlib
import hmac

from rentalsync.config import get_settings


def hash_value(value: str, secret: str | None = None) -> str:
    """SHA-256 hex of value + secret.

    The concatenation (rather than an HMAC) matches the hashes already stored
    in ``users.employee_key``.
    """
    if secret is None:
        secret = get_settings().jwt_secret
    return hashlib.sha256((value + secret).encode("utf-8")).hexdigest()


def verify_hash(value: str, hashed: str, secret: str | None = None) -> bool:
    return hmac.compare_digest(hash_value(value, secret), hashed)


def hash_employee_key(raw_key: str) -> str:
    return hash_value(raw_key)


def verify_employee_key(raw_key: str, stored_hash: str) -> bool:
    """Check a login attempt against ``users.employee_key``."""
    return verify_hash(raw_key, stored_hash)
