"""Small numeric helpers shared by the trend model."""

from __future__ import annotations

import math
import numbers
from typing import Iterable, Optional

import numpy as np

# Normal-consistent scale factor for the median absolute deviation
MAD_SCALE = 1.4826


def is_finite_number(value: object) -> bool:
    """Return True for real, finite numbers (bools excluded)."""
    if isinstance(value, (bool, np.bool_)):
        return False
    if not isinstance(value, numbers.Real):
        return False
    return math.isfinite(float(value))


def finite_values(values: Iterable[float]) -> list[float]:
    """Drop NaN / infinite entries, preserving order."""
    return [float(v) for v in values if is_finite_number(v)]


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round with halves away from zero for positives (JavaScript-style).

    Python's round() uses banker's rounding, which makes persisted gram
    values flip between neighbours on exact .5 boundaries.

    Example:
        >>> round_half_up(2.5)
        3.0
        >>> round_half_up(80.25, 1)
        80.3
    """
    factor = 10.0**digits
    return math.floor(value * factor + 0.5) / factor


def round_to_int(value: float) -> int:
    """Round half up to the nearest integer."""
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def median(values: Iterable[float]) -> Optional[float]:
    """Median of the finite values, or None when there are none."""
    finite = finite_values(values)
    if not finite:
        return None
    return float(np.median(finite))


def robust_std(values: Iterable[float], min_count: int = 3) -> Optional[float]:
    """
    Robust standard deviation estimate: 1.4826 × MAD.

    Unlike the sample standard deviation, a single spike (a heavy meal,
    a scale glitch) barely moves this estimate.

    Args:
        values: Residuals to summarise
        min_count: Minimum number of finite values required

    Returns:
        Estimated standard deviation, or None when there are too few values
    """
    finite = np.asarray(finite_values(values), dtype=float)
    if finite.size < max(min_count, 1):
        return None

    center = np.median(finite)
    mad = np.median(np.abs(finite - center))
    return float(MAD_SCALE * mad)
