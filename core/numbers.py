"""Lenient numeric parsing and rounding shared by the calculators."""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Physical constants used across process kinds
INCHES_PER_METER = 39.38


def to_number(value: Any) -> float:
    """
    Parse a user-entered value as a float.

    Anything that is not a finite number (None, "", "abc", NaN, inf) parses
    to 0.0. Typos zero the field instead of failing the whole run.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def to_bool(value: Any) -> bool:
    """Parse checkbox-style values ("true", "1", "on", True)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return False


def to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def round_half_up(value: float, places: int = 2) -> float:
    """
    Round half away from zero to a fixed number of decimal places.

    Goes through the shortest repr of the float so 1.005 rounds to 1.01,
    the same way the shop's spreadsheets and UI display figures.
    Non-finite input rounds to 0.0.
    """
    if not math.isfinite(value):
        return 0.0
    try:
        quantum = Decimal(1).scaleb(-places)
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0.0


def safe_ratio(numerator: float, denominator: float) -> float:
    """Return numerator / denominator, or 0.0 when the denominator is 0."""
    if denominator == 0:
        return 0.0
    return numerator / denominator
