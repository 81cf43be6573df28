"""
Password utilities.

This module provides functionality for:
- Generating initial/reset passwords for workers
- Hashing and verifying passwords with bcrypt
- Checking passwords against the strength rules
"""
import os
import re
import secrets
from typing import List, NamedTuple
import bcrypt

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# Look-alike characters (I, O, l, o, 0, 1) are left out
UPPERCASE = "ABCDEFGHJKLMNPQRSTUVWXYZ"
LOWERCASE = "abcdefghijkmnpqrstuvwxyz"
DIGITS = "23456789"
SPECIAL = "!@#$%^&*"
ALL_CHARACTERS = UPPERCASE + LOWERCASE + DIGITS + SPECIAL

MIN_PASSWORD_LENGTH = 8

_random = secrets.SystemRandom()


class PasswordValidation(NamedTuple):
    is_valid: bool
    errors: List[str]


def generate_secure_password(length: int = 12) -> str:
    """
    Generate a random password containing every character class.

    Lengths between 4 and MIN_PASSWORD_LENGTH are raised to
    MIN_PASSWORD_LENGTH so the result always passes validate_password.

    Args:
        length: Requested password length, at least 4

    Returns:
        Generated password

    Raises:
        ValueError: If length is below 4
    """
    if length < 4:
        raise ValueError("Password length must be at least 4")
    length = max(length, MIN_PASSWORD_LENGTH)

    characters = [
        secrets.choice(UPPERCASE),
        secrets.choice(LOWERCASE),
        secrets.choice(DIGITS),
        secrets.choice(SPECIAL),
    ]
    characters.extend(secrets.choice(ALL_CHARACTERS) for _ in range(length - 4))
    _random.shuffle(characters)
    return "".join(characters)


def hash_password(password: str) -> str:
    """Generate password hash using bcrypt."""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    ).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check if provided password matches the stored hash."""
    if not password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            hashed_password.encode("utf-8")
        )
    except ValueError:
        # Not a bcrypt hash
        return False


def validate_password(password: str) -> PasswordValidation:
    """
    Check a password against every strength rule.

    All rules are evaluated so the caller can report every failure at once.
    """
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not re.search(r"[!@#$%^&*]", password):
        errors.append("Password must contain at least one special character (!@#$%^&*)")
    return PasswordValidation(is_valid=not errors, errors=errors)
