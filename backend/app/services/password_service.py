"""
services/password_service.py — Password hashing and strength policy.

Password storage:
  - Hashed with bcrypt (cost factor from config BCRYPT_LOG_ROUNDS)
  - Raw password is never stored, never logged

The strength pattern is part of the public contract and must not be loosened:
at least 8 characters drawn from letters, digits and @$!%*?&, with at least
one lowercase letter, one uppercase letter, one digit and one of @$!%*?&.
"""

from __future__ import annotations

import re

import bcrypt


PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$",
    re.ASCII,  # \d is 0-9 only
)

PASSWORD_POLICY_MESSAGE = (
    "Password must be at least 8 characters long and contain at least one "
    "uppercase letter, one lowercase letter, one digit and one special "
    "character (@$!%*?&)."
)


def is_strong_password(password: str) -> bool:
    """True if `password` satisfies PASSWORD_PATTERN."""
    return bool(PASSWORD_PATTERN.fullmatch(password or ""))


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison via bcrypt.checkpw. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        return False
