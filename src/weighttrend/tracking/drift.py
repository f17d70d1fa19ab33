"""Recency-weighted linear drift estimation.

The drift is the slope of a weighted least-squares line through
(day offset, weight) pairs:

    drift = Σ w_i (x_i - x̄)(y_i - ȳ) / Σ w_i (x_i - x̄)²

with weighted means x̄, ȳ and recency weights

    w_i = exp(-ln 2 × age_i / half_life)

so that every `half_life` days of age halves an observation's influence.
A month-old weigh-in still counts, but the recent direction of travel
dominates the estimate.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from weighttrend.tracking.models import MS_PER_DAY, Observation

DEFAULT_HALF_LIFE_DAYS = 30.0

# Below this the regression is treated as degenerate (same-day points)
MIN_DENOMINATOR = 1e-12


def recency_weight(age_days: float, half_life_days: float = DEFAULT_HALF_LIFE_DAYS) -> float:
    """
    Weight for an observation `age_days` older than the newest one.

    Example:
        >>> recency_weight(0)
        1.0
        >>> recency_weight(30)
        0.5
    """
    return math.exp(-math.log(2) * age_days / half_life_days)


def build_regression_inputs(
    observations: Sequence[Observation],
) -> list[tuple[float, float, float]]:
    """
    Turn chronologically sorted observations into (day_offset, weight, age) triples.

    day_offset counts continuous days since the first observation;
    age counts days back from the most recent one.
    """
    if not observations:
        return []

    first_ms = observations[0].timestamp_ms
    last_ms = observations[-1].timestamp_ms
    return [
        (
            (obs.timestamp_ms - first_ms) / MS_PER_DAY,
            obs.weight_kg,
            (last_ms - obs.timestamp_ms) / MS_PER_DAY,
        )
        for obs in observations
    ]


def _weighted_slope(x: np.ndarray, y: np.ndarray, w: np.ndarray) -> float | None:
    """Weighted least-squares slope, or None when the fit is degenerate."""
    total = w.sum()
    if not math.isfinite(total) or total <= 0:
        return None

    x_mean = float(np.dot(w, x) / total)
    y_mean = float(np.dot(w, y) / total)
    x_centered = x - x_mean

    numerator = float(np.sum(w * x_centered * (y - y_mean)))
    denominator = float(np.sum(w * x_centered * x_centered))

    if not (math.isfinite(numerator) and math.isfinite(denominator)):
        return None
    if denominator <= MIN_DENOMINATOR:
        return None
    return numerator / denominator


def estimate_drift_per_day(
    samples: Sequence[tuple[float, float, float]],
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
) -> float:
    """
    Estimate the latent weight drift in kg/day (positive = gaining).

    Falls back to an unweighted least-squares slope when the weighted fit
    is degenerate, and to zero when that is degenerate too (fewer than two
    distinct day offsets).

    Args:
        samples: (day_offset, weight_kg, age_days) triples
        half_life_days: Age at which an observation's weight halves

    Returns:
        Drift in kg/day
    """
    if len(samples) < 2:
        return 0.0

    data = np.asarray(samples, dtype=float)
    x, y, age = data[:, 0], data[:, 1], data[:, 2]

    weights = np.exp(-math.log(2) * age / half_life_days)
    slope = _weighted_slope(x, y, weights)
    if slope is not None:
        return slope

    slope = _weighted_slope(x, y, np.ones_like(x))
    if slope is not None:
        return slope

    return 0.0
