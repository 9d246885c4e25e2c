# TenantSQL - Parameter Type Coercion
# ===================================
"""
Parameter Type Coercion
=======================
Converts loosely-typed values (strings from a question, JSON from a model)
into the Python value for a declared ParameterType.

Every converter raises ParameterCoercionError on failure; callers decide
whether that drops the candidate (extraction) or fails the request
(generation).
"""

import re
import uuid
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from .errors import ParameterCoercionError
from .models import ParameterType
from .relative_dates import pick_boundary, resolve_relative_date
from .synonyms import parse_boolean

logger = logging.getLogger(__name__)


INT32_RANGE = (-2**31, 2**31 - 1)
INT64_RANGE = (-2**63, 2**63 - 1)

DATE_FORMATS = (
    '%m/%d/%Y',
    '%Y/%m/%d',
    '%d %B %Y',
    '%d %b %Y',
    '%B %d, %Y',
    '%b %d, %Y',
    '%B %d %Y',
)

TIMESPAN_UNIT_PATTERN = re.compile(
    r'^\s*(\d+(?:\.\d+)?)\s*(seconds?|secs?|s|minutes?|mins?|m|hours?|hrs?|h|days?|d|weeks?|w)\s*$',
    re.IGNORECASE,
)

EMPTY_GUID = uuid.UUID(int=0)


def _to_int(name: str, value: Any, bounds, type_name: str) -> int:
    if isinstance(value, bool):
        raise ParameterCoercionError(name, value, type_name, "boolean is not an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ParameterCoercionError(name, value, type_name, "fractional value")
        result = int(value)
    elif isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ParameterCoercionError(name, value, type_name, "fractional value")
        result = int(value)
    else:
        text = str(value).strip().replace(',', '')
        if not re.fullmatch(r'[+-]?\d+', text):
            raise ParameterCoercionError(name, value, type_name, "not an integer")
        result = int(text)
    if not bounds[0] <= result <= bounds[1]:
        raise ParameterCoercionError(name, value, type_name, "out of range")
    return result


def _to_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ParameterCoercionError(name, value, "Decimal", "boolean is not a number")
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value).strip().replace(',', '').replace('$', '')
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ParameterCoercionError(name, value, "Decimal", "not a number")
    if not result.is_finite():
        raise ParameterCoercionError(name, value, "Decimal", "not a finite number")
    return result


def _to_double(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ParameterCoercionError(name, value, "Double", "boolean is not a number")
    try:
        result = float(str(value).strip().replace(',', '')) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise ParameterCoercionError(name, value, "Double", "not a number")
    if result != result or result in (float('inf'), float('-inf')):
        raise ParameterCoercionError(name, value, "Double", "not a finite number")
    return result


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    result = parse_boolean(str(value))
    if result is None:
        raise ParameterCoercionError(name, value, "Boolean", "unrecognized boolean word")
    return result


def _to_datetime(name: str, value: Any, today: date) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    text = str(value).strip()
    if not text:
        raise ParameterCoercionError(name, value, "DateTime", "empty value")

    date_range = resolve_relative_date(text, today)
    if date_range is not None:
        return datetime.combine(pick_boundary(name, date_range), time.min)

    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ParameterCoercionError(name, value, "DateTime", "unrecognized date")


def _to_guid(name: str, value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        raise ParameterCoercionError(name, value, "Guid", "not a GUID")


def _to_timespan(name: str, value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    text = str(value).strip()
    clock = re.fullmatch(r'(?:(\d+)\.)?(\d{1,2}):(\d{2})(?::(\d{2}))?', text)
    if clock:
        days, hours, minutes, seconds = clock.groups()
        return timedelta(days=int(days or 0), hours=int(hours), minutes=int(minutes), seconds=int(seconds or 0))
    unit = TIMESPAN_UNIT_PATTERN.match(text)
    if unit:
        amount = float(unit.group(1))
        suffix = unit.group(2).lower()[0]
        seconds_per = {'s': 1, 'm': 60, 'h': 3600, 'd': 86400, 'w': 604800}[suffix]
        return timedelta(seconds=amount * seconds_per)
    raise ParameterCoercionError(name, value, "TimeSpan", "unrecognized duration")


def _to_string(name: str, value: Any) -> str:
    text = str(value).strip()
    if not text:
        raise ParameterCoercionError(name, value, "String", "empty value")
    return text


def coerce_value(name: str,
                 value: Any,
                 param_type: ParameterType,
                 today: Optional[date] = None) -> Any:
    """
    Convert a value to the Python type for a declared parameter type.

    Args:
        name: Parameter name (used for date range boundaries and messages)
        value: Raw value
        param_type: Declared type
        today: Reference date for relative phrases (defaults to date.today())

    Returns:
        Converted value

    Raises:
        ParameterCoercionError: If the value cannot be converted
    """
    if value is None:
        raise ParameterCoercionError(name, value, param_type.value, "missing value")

    converters: Dict[ParameterType, Callable[[], Any]] = {
        ParameterType.STRING: lambda: _to_string(name, value),
        ParameterType.IDENTIFIER: lambda: _to_string(name, value),
        ParameterType.INT32: lambda: _to_int(name, value, INT32_RANGE, "Int32"),
        ParameterType.INT64: lambda: _to_int(name, value, INT64_RANGE, "Int64"),
        ParameterType.DECIMAL: lambda: _to_decimal(name, value),
        ParameterType.DOUBLE: lambda: _to_double(name, value),
        ParameterType.BOOLEAN: lambda: _to_bool(name, value),
        ParameterType.DATETIME: lambda: _to_datetime(name, value, today or date.today()),
        ParameterType.GUID: lambda: _to_guid(name, value),
        ParameterType.TIMESPAN: lambda: _to_timespan(name, value),
    }
    return converters[param_type]()


def is_type_compatible(value: Any, param_type: ParameterType) -> bool:
    """Check whether a value already has the Python type for param_type."""
    if value is None:
        return False
    expected = {
        ParameterType.STRING: str,
        ParameterType.IDENTIFIER: str,
        ParameterType.INT32: int,
        ParameterType.INT64: int,
        ParameterType.DECIMAL: Decimal,
        ParameterType.DOUBLE: float,
        ParameterType.BOOLEAN: bool,
        ParameterType.DATETIME: datetime,
        ParameterType.GUID: uuid.UUID,
        ParameterType.TIMESPAN: timedelta,
    }[param_type]
    if expected is int and isinstance(value, bool):
        return False
    return isinstance(value, expected)
