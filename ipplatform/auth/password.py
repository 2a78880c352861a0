"""
IP Platform - Password Hashing Utilities

Password hashing using bcrypt plus the password strength policy.
Work factor is configurable (BCRYPT_ROUNDS) and defaults to 12, which keeps
a hash within a few hundred milliseconds.

Security:
- Never log or expose plaintext passwords
- bcrypt includes salt automatically
- Supports hash upgrades on login
"""

import re

import bcrypt

from ipplatform.auth.errors import WeakPasswordError
from ipplatform.config import settings


PASSWORD_MIN_LENGTH = 8

# bcrypt only looks at the first 72 bytes of input
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password

    Returns:
        bcrypt hash string (includes salt)

    Example:
        >>> hashed = hash_password("SecureP@ss123")
        >>> hashed.startswith("$2b$")
        True
    """
    password_bytes = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Uses constant-time comparison to prevent timing attacks.

    Args:
        plain_password: Plaintext password to verify
        hashed_password: bcrypt hash to check against

    Returns:
        True if password matches, False otherwise
    """
    try:
        password_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except (ValueError, TypeError, AttributeError):
        # Invalid or missing hash
        return False


def needs_rehash(hashed_password: str, target_work_factor: int = None) -> bool:
    """
    Check if a password hash needs to be upgraded.

    Args:
        hashed_password: Existing bcrypt hash
        target_work_factor: Desired work factor (defaults to BCRYPT_ROUNDS)

    Returns:
        True if hash should be regenerated
    """
    if target_work_factor is None:
        target_work_factor = settings.BCRYPT_ROUNDS
    try:
        # bcrypt hash format: $2b$XX$...
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str) < target_work_factor
    except (ValueError, IndexError, AttributeError):
        # Not a valid bcrypt hash, definitely needs rehash
        return True


def validate_password_strength(password: str) -> None:
    """
    Enforce the password policy.

    Rules: at least 8 characters, one uppercase letter, one digit.

    Raises:
        WeakPasswordError: naming the first violated rule
    """
    if password is None or len(password) < PASSWORD_MIN_LENGTH:
        raise WeakPasswordError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
        )
    if not re.search(r"[A-Z]", password):
        raise WeakPasswordError("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password):
        raise WeakPasswordError("Password must contain at least one number")
