"""Password policy and bcrypt hashing helpers."""

import re

import bcrypt

from wbs_tracker.config import DEFAULT_BCRYPT_ROUNDS

MIN_PASSWORD_LENGTH = 8

# bcrypt only looks at the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"[0-9]")


def validate_password_policy(password: str) -> bool:
    """At least 8 characters with one ASCII letter and one ASCII digit."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return False
    if not _LETTER.search(password):
        return False
    if not _DIGIT.search(password):
        return False
    return True


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash a password with a fresh bcrypt salt."""
    password_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a plaintext password against a stored bcrypt hash."""
    password_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False
