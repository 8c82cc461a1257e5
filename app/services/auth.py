# =============================================================================
# Auth Service — Password Hashing
# =============================================================================
#
# Pure functions for user credential storage. No FastAPI dependency — this
# module is used by the users router and by tests.
#
# DESIGN DECISION: PBKDF2-HMAC-SHA256 with a per-password random salt.
# User passwords are low-entropy human secrets, so the hash must be salted
# (no rainbow tables) and deliberately slow (brute-force cost). PBKDF2 ships
# with hashlib, and the iteration count is configurable.
#
# Encoded format (self-describing, so the work factor can be raised later
# without invalidating existing hashes):
#   pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>
# =============================================================================

from __future__ import annotations

import hashlib
import hmac
import secrets

from app.config import settings

_ALGORITHM = "pbkdf2_sha256"
_SALT_BYTES = 16


def hash_password(raw_password: str, iterations: int | None = None) -> str:
    """Hash a password for storage. Returns the encoded hash string."""
    rounds = iterations or settings.password_hash_iterations
    salt = secrets.token_bytes(_SALT_BYTES)
    digest = _derive(raw_password, salt, rounds)
    return f"{_ALGORITHM}${rounds}${salt.hex()}${digest.hex()}"


def verify_password(raw_password: str, encoded: str) -> bool:
    """Check a password against an encoded hash. Malformed hashes never match."""
    try:
        algorithm, rounds, salt_hex, digest_hex = encoded.split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        iterations = int(rounds)
    except ValueError:
        return False

    if algorithm != _ALGORITHM:
        return False

    return hmac.compare_digest(_derive(raw_password, salt, iterations), expected)


def _derive(raw_password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", raw_password.encode(), salt, iterations)
