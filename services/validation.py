"""
Input parsing helpers shared by the services.

Request payloads arrive as JSON, so dates are ISO strings and enums are their
string values. Every helper raises ValidationError with the offending field.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Type

from .errors import ValidationError

SHIFT_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def parse_date(value: Any, field: str, required: bool = False) -> Optional[date]:
    """Parse an ISO date (or datetime) string; empty values become None."""
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required", code='MISSING_FIELD')
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        # Accept full timestamps such as "2024-01-01T00:00:00.000Z"
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format", code='INVALID_DATE')


def parse_enum(enum_cls: Type[Enum], value: Any, field: str, required: bool = False):
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required", code='MISSING_FIELD')
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", code='INVALID_VALUE')


def parse_shift_time(value: Any, field: str) -> Optional[str]:
    """Shift bounds are stored as "HH:MM"."""
    if value is None or value == '':
        return None
    value = str(value).strip()
    if not SHIFT_TIME_PATTERN.match(value):
        raise ValidationError(f"{field} must be a time in HH:MM format", code='INVALID_TIME')
    return value


def parse_amount(value: Any, field: str, default: Optional[float] = None) -> Optional[float]:
    """Parse a non-negative number."""
    if value is None or value == '':
        return default
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", code='INVALID_VALUE')
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", code='INVALID_VALUE')
    return amount


def parse_id(value: Any, field: str, required: bool = False) -> Optional[int]:
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required", code='MISSING_FIELD')
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id", code='INVALID_VALUE')


def validate_period(start: date, end: Optional[date], end_field: str = 'end_date'):
    if end is not None and end < start:
        raise ValidationError(f"{end_field} cannot be before the start date", code='INVALID_PERIOD')
