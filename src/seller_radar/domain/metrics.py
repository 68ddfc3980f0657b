# src/seller_radar/domain/metrics.py
from __future__ import annotations

import math
from datetime import date

DAYS_PER_YEAR = 365.25


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def round_half_up(value: float, digits: int = 0) -> float:
    """Halves round toward +inf (2.5 -> 3, -2.5 -> -2), unlike the built-in round()."""
    factor = 10.0 ** digits
    return math.floor(value * factor + 0.5) / factor


def is_missing(value: float | None) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def safe_ratio(numerator: float | None, denominator: float | None) -> float | None:
    """numerator / denominator, or None when either side is missing or denominator <= 0."""
    if is_missing(numerator) or is_missing(denominator):
        return None
    if denominator <= 0:  # type: ignore[operator]
        return None
    return float(numerator) / float(denominator)  # type: ignore[arg-type]


def scale_score(
    value: float | None,
    lo: float,
    hi: float,
    *,
    invert: bool = False,
) -> float | None:
    """
    Map `value` linearly from [lo, hi] onto [0, 100], clamping outside the range.

    invert=True flips the direction (lo -> 100, hi -> 0).
    """
    if is_missing(value):
        return None
    if hi == lo:
        return None

    bounded = clamp(float(value), min(lo, hi), max(lo, hi))  # type: ignore[arg-type]
    ratio = (bounded - lo) / (hi - lo)
    normalized = 1.0 - ratio if invert else ratio
    return clamp(normalized * 100.0, 0.0, 100.0)


def years_between(later: date, earlier: date) -> float:
    return (later - earlier).days / DAYS_PER_YEAR


def days_between(later: date, earlier: date) -> int:
    return (later - earlier).days


def months_between(later: date, earlier: date) -> int:
    """Calendar-month difference; the day of month is ignored."""
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)
