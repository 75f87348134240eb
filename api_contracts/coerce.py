"""
Text coercion helpers.

Single place where raw text (query strings, headers, cookies, path segments,
form fields) is turned into scalar Python values. Every helper raises
CoercionError with the offending value so callers can report it as a
malformed parameter.
"""

import uuid
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Type


class CoercionError(ValueError):
    """Raised when text cannot be coerced to the expected type."""

    def __init__(self, message: str, field: str = None, received_value=None):
        super().__init__(message)
        self.field = field
        self.received_value = received_value


def to_int(value: Any, *, field: str = None) -> int:
    """
    Convert text to int.

    Floats written as text ("3.14") are rejected rather than truncated.
    """
    if isinstance(value, bool):
        raise CoercionError(f"Expected int, got bool: {value!r}", field=field, received_value=value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        raise CoercionError(
            f"Expected int, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_float(value: Any, *, field: str = None) -> float:
    if isinstance(value, bool):
        raise CoercionError(f"Expected number, got bool: {value!r}", field=field, received_value=value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (ValueError, TypeError):
        raise CoercionError(
            f"Expected number, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_bool(value: Any, *, field: str = None) -> bool:
    """
    Convert text to bool.

    Accepts (case-insensitive):
        True: 'true', '1', 'yes', 'on'
        False: 'false', '0', 'no', 'off'
    """
    if isinstance(value, bool):
        return value
    lower = str(value).strip().lower()
    if lower in ("true", "1", "yes", "on"):
        return True
    if lower in ("false", "0", "no", "off"):
        return False
    raise CoercionError(
        f"Expected bool, got: {value!r}",
        field=field,
        received_value=value
    )


def to_date(value: Any, *, field: str = None) -> date:
    """Parse YYYY-MM-DD. date objects pass through, datetimes are truncated."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except (ValueError, TypeError):
        raise CoercionError(
            f"Expected date (YYYY-MM-DD), got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_datetime(value: Any, *, field: str = None) -> datetime:
    """Parse an ISO 8601 timestamp. A trailing 'Z' means UTC."""
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, TypeError):
        raise CoercionError(
            f"Expected ISO datetime, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_time(value: Any, *, field: str = None) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except (ValueError, TypeError):
        raise CoercionError(
            f"Expected ISO time, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_uuid(value: Any, *, field: str = None) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, TypeError, AttributeError):
        raise CoercionError(
            f"Expected UUID, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_decimal(value: Any, *, field: str = None) -> Decimal:
    if isinstance(value, bool):
        raise CoercionError(f"Expected decimal, got bool: {value!r}", field=field, received_value=value)
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise CoercionError(
            f"Expected decimal, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )
    if not result.is_finite():
        raise CoercionError(f"Expected finite decimal, got {value!r}", field=field, received_value=value)
    return result


def to_enum(value: Any, enum_class: Type[Enum], *, field: str = None) -> Enum:
    """
    Convert a value to an enum member by value.

    Text is compared against the string form of each member's value, so
    integer enums can be read from query strings.
    """
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except ValueError:
        pass
    text = str(value).strip()
    for member in enum_class:
        if str(member.value) == text:
            return member
    valid = [m.value for m in enum_class]
    raise CoercionError(
        f"Expected one of {valid}, got: {value!r}",
        field=field,
        received_value=value
    )


def to_text(value: Any) -> Optional[str]:
    """Render a scalar the way it travels in a URL, header or cookie."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return to_text(value.value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)
