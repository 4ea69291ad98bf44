"""
Password hashing and verification.

Stored hashes use the format ``iterations$salt$hash`` where salt and hash
are base64 and the key is PBKDF2-HMAC-SHA256. Credential records carry
either a hashed secret or a legacy plaintext one.
"""

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional, Union

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_ITERATIONS = 100_000
HASH_LENGTH = 32
SALT_LENGTH = 16


def hash_password(
    password: str,
    iterations: int = DEFAULT_ITERATIONS,
    salt: Optional[bytes] = None,
) -> str:
    """Hash a password into the ``iterations$salt$hash`` storage format."""
    if iterations < 1:
        raise ValueError("iterations must be positive")
    if salt is None:
        salt = secrets.token_bytes(SALT_LENGTH)

    derived = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, iterations, HASH_LENGTH
    )
    salt_b64 = base64.b64encode(salt).decode("ascii")
    hash_b64 = base64.b64encode(derived).decode("ascii")
    return f"{iterations}${salt_b64}${hash_b64}"


def constant_time_equals(left: bytes, right: bytes) -> bool:
    """Compare two equal-length byte strings without an early exit."""
    if len(left) != len(right):
        return False

    diff = 0
    for a, b in zip(left, right):
        diff |= a ^ b
    return diff == 0


def verify_password(candidate: str, stored_hash: str) -> bool:
    """
    Verify a plaintext password against a stored PBKDF2 hash.

    Never raises: malformed hashes (wrong part count, non-numeric
    iteration count, bad base64) simply fail verification.
    """
    try:
        parts = stored_hash.split("$")
        if len(parts) != 3:
            return False

        iterations_str, salt_b64, hash_b64 = parts
        iterations = int(iterations_str, 10)
        if iterations < 1:
            return False

        salt = base64.b64decode(salt_b64, validate=True)
        expected = base64.b64decode(hash_b64, validate=True)
        if not expected:
            return False

        derived = hashlib.pbkdf2_hmac(
            "sha256", candidate.encode("utf-8"), salt, iterations, len(expected)
        )
        return constant_time_equals(derived, expected)

    except (ValueError, TypeError, AttributeError, binascii.Error, OverflowError) as e:
        logger.debug("Password verification failed on malformed input", error_type=type(e).__name__)
        return False


@dataclass(frozen=True)
class HashedSecret:
    """PBKDF2 hash in storage format."""
    value: str


@dataclass(frozen=True)
class PlaintextSecret:
    """Legacy plaintext password kept only until the record is migrated."""
    value: str


Secret = Union[HashedSecret, PlaintextSecret]


@dataclass(frozen=True)
class CredentialMatch:
    """Outcome of checking one record against a candidate password."""
    matched: bool
    used_legacy_plaintext: bool = False


@dataclass(frozen=True)
class CredentialRecord:
    """A stored identity allowed to access the dashboard."""
    id: str
    name: Optional[str]
    is_management: bool
    secret: Optional[Secret]

    @classmethod
    def from_row(
        cls,
        id: str,
        name: Optional[str],
        is_management: Optional[bool],
        password_hash: Optional[str],
        password: Optional[str],
    ) -> "CredentialRecord":
        """Build a record from table columns, preferring the hash."""
        secret: Optional[Secret] = None
        if password_hash:
            secret = HashedSecret(password_hash)
        elif password:
            secret = PlaintextSecret(password)
        return cls(id=id, name=name, is_management=bool(is_management), secret=secret)

    def matches(self, candidate: str) -> CredentialMatch:
        if isinstance(self.secret, HashedSecret):
            return CredentialMatch(matched=verify_password(candidate, self.secret.value))
        if isinstance(self.secret, PlaintextSecret):
            matched = hmac.compare_digest(
                self.secret.value.encode("utf-8"), candidate.encode("utf-8")
            )
            return CredentialMatch(matched=matched, used_legacy_plaintext=matched)
        return CredentialMatch(matched=False)
