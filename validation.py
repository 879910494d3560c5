"""Normalization and validation of external input.

Structured entities (exercises, templates, workouts) use the strict helpers
which raise :class:`errors.ValidationError`. Daily log sets use the
``optional_*`` helpers, which return ``None`` for anything blank or invalid
because an unfilled set is a valid state there.
"""

from __future__ import annotations

import calendar
import datetime
import json
import math
import re
from typing import Any

from errors import ValidationError

MAX_TEXT_ITEMS = 32
SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1

_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_INT_PREFIX_RE = re.compile(r"^\s*[+-]?\d+")
_FLOAT_PREFIX_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def required_text(value: Any, field: str) -> str:
    parsed = value.strip() if isinstance(value, str) else ""
    if not parsed:
        raise ValidationError(f"{field} is required")
    return parsed


def optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    parsed = value.strip()
    return parsed or None


def text_array(value: Any, field: str) -> list[str]:
    """Return unique non-empty strings from ``value`` in first-seen order.

    Uniqueness is case-insensitive and the first spelling wins. More than
    ``MAX_TEXT_ITEMS`` entries is an error, not a truncation.
    """
    if not isinstance(value, (list, tuple)):
        return []
    unique: list[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, str):
            continue
        parsed = item.strip()
        if not parsed:
            continue
        key = parsed.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(parsed)
    if len(unique) > MAX_TEXT_ITEMS:
        raise ValidationError(f"{field} has too many entries")
    return unique


def parse_json_array(value: Any) -> list[str]:
    if not isinstance(value, str) or not value.strip():
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        return []
    if not isinstance(parsed, list):
        return []
    return [item for item in parsed if isinstance(item, str)]


def _parse_int(value: Any) -> int | None:
    """Parse the leading integer of ``value``; ``None`` outside SQLite INTEGER."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        parsed = int(value)
    elif isinstance(value, str):
        match = _INT_PREFIX_RE.match(value)
        if not match:
            return None
        try:
            parsed = int(match.group(0))
        except ValueError:
            # past the interpreter's integer digit limit
            return None
    else:
        return None
    return parsed if SQLITE_INT_MIN <= parsed <= SQLITE_INT_MAX else None


def _parse_float(value: Any) -> float | None:
    """Parse the leading number of ``value``, so ``"12.5kg"`` gives ``12.5``."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            parsed = float(value)
        elif isinstance(value, str):
            match = _FLOAT_PREFIX_RE.match(value)
            if not match:
                return None
            parsed = float(match.group(0))
        else:
            return None
    except OverflowError:
        return None
    return parsed if math.isfinite(parsed) else None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def positive_int(value: Any, field: str) -> int:
    parsed = _parse_int(value)
    if parsed is None or parsed <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return parsed


def non_negative_number(value: Any, field: str) -> float:
    parsed = _parse_float(value)
    if parsed is None or parsed < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return parsed


def positive_number(value: Any, field: str) -> float:
    parsed = _parse_float(value)
    if parsed is None or parsed <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return parsed


def optional_positive_int(value: Any) -> int | None:
    if _is_blank(value):
        return None
    parsed = _parse_int(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def optional_non_negative_number(value: Any) -> float | None:
    if _is_blank(value):
        return None
    parsed = _parse_float(value)
    if parsed is None or parsed < 0:
        return None
    return parsed


def iso_date(value: Any, field: str) -> str:
    """Return ``value`` as a ``YYYY-MM-DD`` string or raise."""
    text = required_text(value, field)
    if not _DATE_RE.match(text):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")
    try:
        datetime.date.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")
    return text


def month_bounds(value: Any) -> tuple[str, str]:
    """Return the first and last ISO date of a ``YYYY-MM`` month."""
    month = required_text(value, "Month")
    if not _MONTH_RE.match(month):
        raise ValidationError("Month must have format YYYY-MM")
    year, month_index = (int(part) for part in month.split("-"))
    if year < 1 or not 1 <= month_index <= 12:
        raise ValidationError("Invalid month value")
    last_day = calendar.monthrange(year, month_index)[1]
    return (
        f"{year:04d}-{month_index:02d}-01",
        f"{year:04d}-{month_index:02d}-{last_day:02d}",
    )
