"""
Credential helpers shared by the domain services.

Email normalization, single-use token generation, token hashing at rest,
and bcrypt password hashing.
"""

import hashlib
import secrets

import bcrypt

from .exceptions import ValidationError

MIN_PASSWORD_LENGTH = 6

# bcrypt only looks at the first 72 bytes of input
_BCRYPT_MAX_BYTES = 72

# Pre-computed hash compared against when an email has no password on file,
# so response time does not reveal whether an account exists.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10)).decode()


def normalize_email(email: str) -> str:
    """Strip whitespace and lowercase."""
    return email.strip().lower()


def generate_token() -> str:
    """256 bits of randomness, hex-encoded."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 of a single-use token. Only the digest is ever persisted."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def check_password_length(password: str | None) -> None:
    """
    Raises:
        ValidationError: If password is missing or shorter than MIN_PASSWORD_LENGTH
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Constant-time password check.

    Always runs bcrypt, falling back to a dummy hash when password_hash
    is None, and returns False for that case.
    """
    stored = password_hash if password_hash is not None else _DUMMY_BCRYPT_HASH
    try:
        matched = bcrypt.checkpw(_password_bytes(password), stored.encode())
    except ValueError:
        # Corrupt hash on file
        return False
    return matched and password_hash is not None
