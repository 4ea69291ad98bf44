"""
Tests for PBKDF2 password hashing and verification.

Covers the storage format, round trips, tampering and malformed hashes.
"""

import base64

import pytest

from src.kpigate.core.credentials import (
    HASH_LENGTH,
    SALT_LENGTH,
    constant_time_equals,
    hash_password,
    verify_password,
)

FAST_ITERATIONS = 1000


def _flip_bit(stored: str, part_index: int) -> str:
    parts = stored.split("$")
    raw = bytearray(base64.b64decode(parts[part_index]))
    raw[0] ^= 0x01
    parts[part_index] = base64.b64encode(bytes(raw)).decode("ascii")
    return "$".join(parts)


class TestHashPassword:
    """Test the iterations$salt$hash storage format."""

    def test_format_has_three_parts(self) -> None:
        """Test the stored hash carries iterations, salt and key."""

        stored = hash_password("s3cret", iterations=FAST_ITERATIONS)
        iterations, salt_b64, hash_b64 = stored.split("$")

        assert iterations == str(FAST_ITERATIONS)
        assert len(base64.b64decode(salt_b64)) == SALT_LENGTH
        assert len(base64.b64decode(hash_b64)) == HASH_LENGTH

    def test_default_iterations(self) -> None:
        """Test the default work factor is 100000."""

        stored = hash_password("s3cret")
        assert stored.startswith("100000$")

    def test_random_salt_per_call(self) -> None:
        """Test two hashes of the same password differ."""

        first = hash_password("s3cret", iterations=FAST_ITERATIONS)
        second = hash_password("s3cret", iterations=FAST_ITERATIONS)
        assert first != second

    def test_fixed_salt_is_deterministic(self) -> None:
        """Test an explicit salt gives a reproducible hash."""

        salt = b"\x00" * SALT_LENGTH
        assert hash_password("pw", FAST_ITERATIONS, salt) == hash_password("pw", FAST_ITERATIONS, salt)

    def test_rejects_non_positive_iterations(self) -> None:
        with pytest.raises(ValueError):
            hash_password("pw", iterations=0)


class TestVerifyPassword:
    """Test verification against stored hashes."""

    def test_round_trip(self) -> None:
        """Test a password verifies against its own hash."""

        stored = hash_password("correct horse", iterations=FAST_ITERATIONS)
        assert verify_password("correct horse", stored) is True

    def test_wrong_password(self) -> None:
        stored = hash_password("correct horse", iterations=FAST_ITERATIONS)
        assert verify_password("correct horsf", stored) is False

    def test_unicode_password(self) -> None:
        """Test non-ASCII passwords are encoded as UTF-8."""

        stored = hash_password("pässwörd-日本", iterations=FAST_ITERATIONS)
        assert verify_password("pässwörd-日本", stored) is True
        assert verify_password("passwort-日本", stored) is False

    def test_flipped_hash_bit_fails(self) -> None:
        """Test a single flipped bit in the stored key fails verification."""

        stored = hash_password("correct horse", iterations=FAST_ITERATIONS)
        assert verify_password("correct horse", _flip_bit(stored, 2)) is False

    def test_flipped_salt_bit_fails(self) -> None:
        """Test a single flipped bit in the salt fails verification."""

        stored = hash_password("correct horse", iterations=FAST_ITERATIONS)
        assert verify_password("correct horse", _flip_bit(stored, 1)) is False

    def test_changed_iterations_fail(self) -> None:
        stored = hash_password("correct horse", iterations=FAST_ITERATIONS)
        _, salt_b64, hash_b64 = stored.split("$")
        assert verify_password("correct horse", f"{FAST_ITERATIONS + 1}${salt_b64}${hash_b64}") is False

    @pytest.mark.parametrize(
        "stored",
        [
            "",
            "no-dollars-here",
            "1000$onlytwo",
            "1000$a$b$c",
            "abc$c2FsdA==$aGFzaA==",
            "0$c2FsdA==$aGFzaA==",
            "-5$c2FsdA==$aGFzaA==",
            "1000$not*base64$aGFzaA==",
            "1000$c2FsdA==$not*base64",
            "1000$c2FsdA==$",
        ],
    )
    def test_malformed_hash_returns_false(self, stored: str) -> None:
        """Test malformed stored hashes fail without raising."""

        assert verify_password("anything", stored) is False


class TestConstantTimeEquals:
    """Test the byte comparison helper."""

    def test_equal(self) -> None:
        assert constant_time_equals(b"abc", b"abc") is True

    def test_different_content(self) -> None:
        assert constant_time_equals(b"abc", b"abd") is False

    def test_different_length(self) -> None:
        assert constant_time_equals(b"abc", b"abcd") is False

    def test_empty(self) -> None:
        assert constant_time_equals(b"", b"") is True
