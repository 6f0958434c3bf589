"""Password hashing, verification and invite-password generation.

Hash records have the form ``base64(salt):base64(key)`` where the key is a
PBKDF2-HMAC-SHA256 derivation with a fixed iteration count.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import re
import secrets
import string
from typing import Optional

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000
SALT_BYTES = 16
KEY_BYTES = 32

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
GENERATED_PASSWORD_LENGTH = 16

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*"
ALPHABET = LOWERCASE + UPPERCASE + DIGITS + SYMBOLS

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"[0-9]")


def _derive(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS, dklen=KEY_BYTES
    )


def hash_password(password: str) -> str:
    """Hash ``password`` with a fresh random salt."""

    salt = secrets.token_bytes(SALT_BYTES)
    key = _derive(password, salt)
    return "{}:{}".format(
        base64.b64encode(salt).decode("ascii"), base64.b64encode(key).decode("ascii")
    )


def verify_password(password: str, hash_record: Optional[str]) -> bool:
    """Check ``password`` against a stored record. Never raises."""

    if not hash_record:
        return False
    salt_b64, sep, key_b64 = hash_record.partition(":")
    if not sep or not salt_b64 or not key_b64:
        logger.warning("Malformed password hash record")
        return False
    try:
        salt = base64.b64decode(salt_b64, validate=True)
        expected = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Malformed password hash record")
        return False
    if not salt or len(expected) != KEY_BYTES:
        return False
    return hmac.compare_digest(_derive(password, salt), expected)


def validate_password_strength(password: str) -> Optional[str]:
    """Return a human-readable problem with ``password``, or None if acceptable."""

    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if len(password) > MAX_PASSWORD_LENGTH:
        return f"Password must be at most {MAX_PASSWORD_LENGTH} characters long"
    if not _LETTER.search(password):
        return "Password must contain at least one letter"
    if not _DIGIT.search(password):
        return "Password must contain at least one digit"
    return None


def generate_random_password() -> str:
    """Generate a 16 character password containing every character class."""

    chars = [
        secrets.choice(LOWERCASE),
        secrets.choice(UPPERCASE),
        secrets.choice(DIGITS),
        secrets.choice(SYMBOLS),
    ]
    chars.extend(
        secrets.choice(ALPHABET) for _ in range(GENERATED_PASSWORD_LENGTH - len(chars))
    )
    # Fisher-Yates
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


__all__ = [
    "PBKDF2_ITERATIONS",
    "generate_random_password",
    "hash_password",
    "validate_password_strength",
    "verify_password",
]
