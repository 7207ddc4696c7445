"""Coercion of raw cell values to declared field types.

Blank strings and None are "absent" for every type; absence is never a type
error. A present value that cannot be read as the declared type is reported
as a failed coercion and the caller keeps the original value.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Union

import pandas as pd

from .exceptions import UnknownFieldTypeError
from .models import FieldType, is_absent, value_as_text

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class Coerced:
    """Outcome of coercing one value."""

    value: Any
    ok: bool = True
    absent: bool = False


def _fail(value: Any) -> Coerced:
    return Coerced(value=value, ok=False)


def coerce_number(value: Any) -> Coerced:
    """Decimal literals become int (integral) or float; non-finite values fail."""
    if isinstance(value, bool):
        return _fail(value)
    if isinstance(value, int):
        return Coerced(value)
    if isinstance(value, float):
        return Coerced(value) if math.isfinite(value) else _fail(value)

    text = value_as_text(value).strip()
    if _INTEGER_RE.match(text):
        return Coerced(int(text))
    if _DECIMAL_RE.match(text):
        number = float(text)
        if math.isfinite(number):
            return Coerced(number)
    return _fail(value)


def coerce_boolean(value: Any) -> Coerced:
    """Only the literals true/false (any case) are booleans."""
    if isinstance(value, bool):
        return Coerced(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return Coerced(True)
        if lowered == "false":
            return Coerced(False)
    return _fail(value)


def _is_calendar_date(text: str) -> bool:
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        pass
    # pandas also reads relative words such as "now" and "today"
    if not any(ch.isdigit() for ch in text):
        return False
    try:
        stamp = pd.Timestamp(text)
    except (ValueError, TypeError, OverflowError):
        return False
    return not pd.isna(stamp)


def coerce_date(value: Any) -> Coerced:
    """Any text that reads as a valid calendar date; the text itself is kept."""
    if isinstance(value, (date, datetime)):
        return Coerced(value)
    text = value_as_text(value).strip()
    if _is_calendar_date(text):
        return Coerced(text)
    return _fail(value)


def coerce_email(value: Any) -> Coerced:
    """Trimmed text shaped like local@domain.tld."""
    text = value_as_text(value).strip()
    if _EMAIL_RE.match(text):
        return Coerced(text)
    return _fail(value)


def coerce_string(value: Any) -> Coerced:
    """Trimmed text; numbers are rendered as they appeared."""
    return Coerced(value_as_text(value).strip())


_COERCERS: dict[FieldType, Callable[[Any], Coerced]] = {
    FieldType.STRING: coerce_string,
    FieldType.NUMBER: coerce_number,
    FieldType.BOOLEAN: coerce_boolean,
    FieldType.EMAIL: coerce_email,
    FieldType.DATE: coerce_date,
}


def coerce_value(value: Any, field_type: Union[FieldType, str]) -> Coerced:
    """Coerce a raw value to `field_type`.

    Args:
        value: Raw cell value (string, number, bool or None)
        field_type: Declared type of the target field

    Returns:
        Coerced outcome; `absent` is set for None/blank input

    Raises:
        UnknownFieldTypeError: If `field_type` is not a known type
    """
    if not isinstance(field_type, FieldType):
        try:
            field_type = FieldType(str(field_type).strip().lower())
        except ValueError:
            raise UnknownFieldTypeError(field_type) from None

    coercer = _COERCERS.get(field_type)
    if coercer is None:
        raise UnknownFieldTypeError(field_type)

    if is_absent(value):
        return Coerced(value=None, absent=True)
    return coercer(value)
