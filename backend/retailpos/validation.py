from __future__ import annotations

from datetime import date
from typing import Any

from .errors import ValidationError
from retailpos.time_utils import parse_iso_date


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for JSON payload values.

    Accepts ints and plain digit strings; rejects bools, floats,
    decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", {"field": field})
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", {"field": field})
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", {"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", {"field": field})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", {"field": field})
    raise ValidationError(f"{field} must be an integer", {"field": field})


def int_field(
    data: dict,
    key: str,
    *,
    required: bool = True,
    default: int | None = None,
    minimum: int | None = None,
    maximum: int | None = None,
    label: str | None = None,
) -> int | None:
    label = label or key
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{label} is required", {"field": label})
        return default

    number = coerce_int(value, label)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{label} must be >= {minimum}", {"field": label, "value": number})
    if maximum is not None and number > maximum:
        raise ValidationError(f"{label} must be <= {maximum}", {"field": label, "value": number})
    return number


def str_field(data: dict, key: str, *, max_length: int = 255, required: bool = False) -> str | None:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{key} is required", {"field": key})
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", {"field": key})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters", {"field": key})
    return value


def date_field(data: dict, key: str) -> date | None:
    value = data.get(key)
    if value is None or isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO date", {"field": key})
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO date (YYYY-MM-DD)", {"field": key})


def list_field(data: dict, key: str) -> list[dict]:
    """Non-empty list of JSON objects."""
    value = data.get(key)
    if not isinstance(value, list) or not value:
        raise ValidationError(f"At least one entry is required in {key}", {"field": key})
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ValidationError(f"{key}[{index}] must be an object", {"field": key, "index": index})
    return value
