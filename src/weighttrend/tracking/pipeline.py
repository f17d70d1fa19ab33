"""Trend pipeline: observations in, trend points and summary out.

Steps:
    1. Drop non-finite / non-positive weights, clip to the model window
    2. Sort chronologically
    3. Estimate drift (recency-weighted least squares)
    4. Estimate measurement / process noise (EWMA + MAD)
    5. Run the Kalman filter point by point
    6. Summarise: weekly rate and volatility label

Everything here is in kilograms. Conversion to pounds happens only when
results are serialized for display.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Iterable, Optional, Sequence

from weighttrend.config.settings import TrendConfig
from weighttrend.tracking.drift import build_regression_inputs, estimate_drift_per_day
from weighttrend.tracking.kalman import run_kalman_filter
from weighttrend.tracking.models import (
    MS_PER_DAY,
    ModelOutput,
    ModelParams,
    Observation,
    TrendPoint,
    date_to_timestamp_ms,
)
from weighttrend.tracking.noise import estimate_noise
from weighttrend.tracking.numeric import is_finite_number, median
from weighttrend.tracking.units import GRAMS_PER_KG, normalize_unit, unit_to_kg


def default_params(config: Optional[TrendConfig] = None) -> ModelParams:
    config = config or TrendConfig()
    return ModelParams(
        drift_per_day=0.0,
        measurement_variance=config.default_measurement_variance,
        process_variance=config.default_process_variance,
    )


def to_observations(
    samples: Iterable[tuple[date | int, float]], unit: str = "g"
) -> list[Observation]:
    """
    Convert stored (date or timestamp_ms, value) samples into kg observations.

    Args:
        samples: Pairs of calendar date (or epoch milliseconds) and weight
        unit: 'g' for stored grams, or a display unit ('kg' / 'lb')

    Returns:
        Observations in kilograms, unfiltered and in input order
    """
    observations = []
    for when, value in samples:
        timestamp_ms = date_to_timestamp_ms(when) if isinstance(when, date) else int(when)
        if not is_finite_number(value):
            weight_kg = math.nan
        elif unit == "g":
            weight_kg = float(value) / GRAMS_PER_KG
        else:
            weight_kg = unit_to_kg(float(value), normalize_unit(unit))
        observations.append(Observation(timestamp_ms=timestamp_ms, weight_kg=weight_kg))
    return observations


def prepare_observations(
    observations: Iterable[Observation],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[Observation]:
    """Filter invalid weights, clip to [start, end] and sort by timestamp."""
    start_ms = date_to_timestamp_ms(start) if start else None
    end_ms = date_to_timestamp_ms(end) + MS_PER_DAY - 1 if end else None

    usable = []
    for obs in observations:
        if not is_finite_number(obs.weight_kg) or obs.weight_kg <= 0:
            continue
        if start_ms is not None and obs.timestamp_ms < start_ms:
            continue
        if end_ms is not None and obs.timestamp_ms > end_ms:
            continue
        # numpy scalars are stored as plain floats
        usable.append(Observation(timestamp_ms=int(obs.timestamp_ms), weight_kg=float(obs.weight_kg)))

    return sorted(usable, key=lambda obs: obs.timestamp_ms)


def compute_weekly_rate(points: Sequence[TrendPoint], recent_points: int = 14) -> float:
    """
    Weekly rate of change of the trend over the most recent points.

    Uses trend values, not raw weigh-ins, so a single noisy reading does
    not flip the sign of the reported rate.

    Returns:
        kg/week (negative = losing); 0 with fewer than 2 points
    """
    if len(points) < 2:
        return 0.0

    recent = points[-recent_points:]
    start, end = recent[0], recent[-1]
    span_days = max(1.0, (end.timestamp_ms - start.timestamp_ms) / MS_PER_DAY)
    per_day = (end.trend_weight_kg - start.trend_weight_kg) / span_days

    if not math.isfinite(per_day):
        return 0.0
    return per_day * 7


def classify_volatility(
    points: Sequence[TrendPoint], config: Optional[TrendConfig] = None
) -> str:
    """Label the recent median trend std as 'low', 'medium' or 'high' (kg thresholds)."""
    config = config or TrendConfig()
    if not points:
        return "low"

    recent = points[-config.recent_window_points :]
    median_std = median(point.trend_std_kg for point in recent) or 0.0

    if median_std < config.low_volatility_std:
        return "low"
    if median_std < config.medium_volatility_std:
        return "medium"
    return "high"


def compute_weight_trend(
    observations: Iterable[Observation],
    config: Optional[TrendConfig] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> ModelOutput:
    """
    Estimate the weight trend for a window of observations.

    Args:
        observations: Observations in any order (kg)
        config: Trend configuration
        start: Optional first date of the model window (inclusive)
        end: Optional last date of the model window (inclusive)

    Returns:
        ModelOutput with one TrendPoint per usable observation
    """
    config = config or TrendConfig()
    ordered = prepare_observations(observations, start, end)

    if not ordered:
        return ModelOutput(points=[], weekly_rate_kg_per_week=0.0, volatility="low", params=default_params(config))

    if len(ordered) == 1:
        only = ordered[0]
        point = TrendPoint(
            timestamp_ms=only.timestamp_ms,
            weight_kg=only.weight_kg,
            trend_weight_kg=only.weight_kg,
            trend_std_kg=0.0,
            lower95_kg=only.weight_kg,
            upper95_kg=only.weight_kg,
        )
        return ModelOutput(points=[point], weekly_rate_kg_per_week=0.0, volatility="low", params=default_params(config))

    drift_per_day = estimate_drift_per_day(
        build_regression_inputs(ordered), config.drift_half_life_days
    )
    measurement_variance, process_variance = estimate_noise(ordered, drift_per_day, config)
    params = ModelParams(
        drift_per_day=drift_per_day,
        measurement_variance=measurement_variance,
        process_variance=process_variance,
    )

    points = run_kalman_filter(ordered, params, config.max_prediction_gap_days)

    return ModelOutput(
        points=points,
        weekly_rate_kg_per_week=compute_weekly_rate(points, config.recent_window_points),
        volatility=classify_volatility(points, config),
        params=params,
    )
