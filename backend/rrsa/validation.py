from __future__ import annotations

import re
from typing import Any


USERNAME_RE = re.compile(r"^[a-z0-9_]+$")
USERNAME_MIN_LENGTH = 3

SCORE_MIN = 1
SCORE_MAX = 10


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""


class ConcurrentWriteError(ConflictError):
    """The document changed between read and write; re-read and retry the action."""


class NotFoundError(ValueError):
    """404-level unknown user, invite, or event."""


class SchemaError(ValueError):
    """Document import with a wrong or missing version, or a malformed shape."""


def normalize_username(raw: Any) -> str:
    """Trim and lowercase for lookups. Never use this to 'fix' a new username."""
    return str(raw or "").strip().lower()


def validate_username(username: str) -> str:
    """
    Validate a username for a new account.

    Rules:
    - at least 3 characters
    - only a-z, 0-9 and underscore (uppercase is rejected, not folded)

    Surrounding whitespace is trimmed. Returns the accepted username.
    """
    uname = str(username or "").strip()
    if len(uname) < USERNAME_MIN_LENGTH:
        raise ValidationError("Username must be at least 3 characters.")
    if not USERNAME_RE.match(uname):
        raise ValidationError("Username can only contain a-z, 0-9, underscore.")
    return uname


def validate_password_strength(password: str, policy: dict) -> None:
    """
    Validate a password against the configured auth policy.

    Policy keys: min_length, require_letter, require_number.
    Collaborators call this before creating users or changing passwords;
    the store itself treats passwords as opaque strings.

    Raises ValidationError if requirements not met.
    """
    pw = str(password or "")
    min_length = int(policy.get("min_length") or 8)
    if len(pw) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters.")

    if policy.get("require_letter") and not re.search(r"[A-Za-z]", pw):
        raise ValidationError("Password must include a letter.")

    if policy.get("require_number") and not re.search(r"[0-9]", pw):
        raise ValidationError("Password must include a number.")


def require_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion for settings and counters.

    Rejects bools, floats with a fractional part, and non-numeric strings.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def require_number(value: Any, field: str, *, low: float, high: float) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if result != result or not (low <= result <= high):
        raise ValidationError(f"{field} must be between {low:g} and {high:g}")
    return result


def validate_score(value: Any, field: str) -> int:
    """Review scores are whole numbers from 1 to 10."""
    score = require_number(value, field, low=SCORE_MIN, high=SCORE_MAX)
    if not float(score).is_integer():
        raise ValidationError(f"{field} must be a whole number")
    return int(score)
