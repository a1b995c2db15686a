"""
core/validation.py -- Reusable validation primitives.

These functions are the single source of truth for every field constraint in
the domain models. Models call them from their property setters; services call
them before doing expensive work (hashing, store round-trips). Each primitive
either returns a value (normalized where that makes sense) or raises
ValidationError tagged with the offending field.

All functions are pure: no I/O, no logging, no global state.
"""

from __future__ import annotations

import math
import re
from collections.abc import Collection
from typing import Any, Optional

from core.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
EMAIL_MAX_LENGTH = 254

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_SYMBOLS = "!@#$%^&*"
_PASSWORD_CHARSET = re.compile(r"^[A-Za-z\d" + re.escape(PASSWORD_SYMBOLS) + r"]+$")

LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)


def _is_number(value: Any) -> bool:
    # bool is an int subclass; True must not pass as a coordinate or a counter.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_email(email: Any) -> str:
    """Return the trimmed, lowercased email or raise ValidationError(field="email")."""
    if not email or not isinstance(email, str):
        raise ValidationError("Email is required", field="email")
    normalized = email.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format", field="email")
    if len(normalized) > EMAIL_MAX_LENGTH:
        raise ValidationError(f"Email must not exceed {EMAIL_MAX_LENGTH} characters", field="email")
    return normalized


def _password_failure(message: str, requirement: str) -> ValidationError:
    return ValidationError(message, field="password", details={"password": message, "requirement": requirement})


def validate_password(password: Any) -> bool:
    """Check a plaintext password against the password policy.

    Requirements are checked one at a time so the error names exactly which
    one failed: length, uppercase, lowercase, digit, symbol, then charset.
    The password itself never appears in the error.
    """
    if not password or not isinstance(password, str):
        raise _password_failure("Password is required", "length")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise _password_failure(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long", "length")
    if len(password) > PASSWORD_MAX_LENGTH:
        raise _password_failure(f"Password must not exceed {PASSWORD_MAX_LENGTH} characters", "length")
    if not any("A" <= ch <= "Z" for ch in password):
        raise _password_failure("Password must contain at least 1 uppercase letter", "uppercase")
    if not any("a" <= ch <= "z" for ch in password):
        raise _password_failure("Password must contain at least 1 lowercase letter", "lowercase")
    if not any("0" <= ch <= "9" for ch in password):
        raise _password_failure("Password must contain at least 1 digit", "digit")
    if not any(ch in PASSWORD_SYMBOLS for ch in password):
        raise _password_failure(f"Password must contain at least 1 symbol ({PASSWORD_SYMBOLS})", "symbol")
    if not _PASSWORD_CHARSET.match(password):
        raise _password_failure(
            f"Password may only contain letters, digits and the symbols {PASSWORD_SYMBOLS}",
            "charset",
        )
    return True


def validate_enum(value: Any, allowed: Collection[str], field: str = "field") -> str:
    """Return value if it is one of allowed; the error lists the allowed values."""
    if not allowed:
        raise ValueError("allowed must be a non-empty collection")
    if value not in allowed:
        raise ValidationError(f"Invalid {field}. Allowed values: {', '.join(allowed)}", field=field)
    return value


def validate_coordinates(lat: Any, lng: Any) -> tuple[float, float]:
    """Return (lat, lng) as floats, or raise naming `latitude` / `longitude`.

    NaN and infinities are rejected: they compare False against both range
    bounds and would otherwise slip through.
    """
    if not _is_number(lat) or not _is_number(lng):
        raise ValidationError("Latitude and longitude must be numbers", field="coordinates")
    if not math.isfinite(lat):
        raise ValidationError("Latitude must be a finite number", field="latitude")
    if not math.isfinite(lng):
        raise ValidationError("Longitude must be a finite number", field="longitude")
    lo, hi = LATITUDE_RANGE
    if lat < lo or lat > hi:
        raise ValidationError("Latitude must be between -90 and 90", field="latitude")
    lo, hi = LONGITUDE_RANGE
    if lng < lo or lng > hi:
        raise ValidationError("Longitude must be between -180 and 180", field="longitude")
    return float(lat), float(lng)


def validate_text(value: Any, field: str, min_length: int, max_length: int, label: Optional[str] = None) -> str:
    """Return the trimmed string if its length is within [min_length, max_length].

    label is the human-readable name used in messages ("License plate");
    it defaults to the field name.
    """
    label = label or field
    if value is None or not isinstance(value, str):
        raise ValidationError(f"{label} is required and must be a string", field=field)
    trimmed = value.strip()
    if len(trimmed) < min_length:
        if min_length <= 1:
            raise ValidationError(f"{label} cannot be empty", field=field)
        raise ValidationError(f"{label} must be at least {min_length} characters long", field=field)
    if len(trimmed) > max_length:
        raise ValidationError(f"{label} must not exceed {max_length} characters", field=field)
    return trimmed


def validate_non_negative_int(value: Any, field: str, label: Optional[str] = None) -> int:
    """Return value if it is an integer >= 0. Whole floats (e.g. 30.0) are accepted."""
    label = label or field
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer", field=field)
    if value < 0:
        raise ValidationError(f"{label} cannot be negative", field=field)
    return value
