"""Measurement and process noise estimation.

A time-aware exponentially weighted moving average provides a smooth
reference series:

    α_i = 1 - exp(-Δt_i / τ)
    S_i = S_{i-1} + α_i × (W_i - S_{i-1})

with τ = 7 days. Deviations of the raw weigh-ins from this series measure
day-to-day scale noise (water, gut contents, scale error); deviations of
the smoothed increments from the estimated drift measure how much the
underlying trend itself wanders. Both families are summarised with the
MAD-based robust standard deviation so isolated spikes do not inflate
the noise estimate.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from weighttrend.config.settings import TrendConfig
from weighttrend.tracking.models import MS_PER_DAY, Observation
from weighttrend.tracking.numeric import clamp, robust_std

# Below this many observations the robust statistics are meaningless
MIN_OBSERVATIONS = 3
MIN_RESIDUALS = 3


def gap_days(previous: Observation, current: Observation) -> float:
    """Continuous days between two observations (may be zero)."""
    return (current.timestamp_ms - previous.timestamp_ms) / MS_PER_DAY


def time_scaled_alpha(days_elapsed: float, time_constant_days: float = 7.0) -> float:
    """
    Smoothing factor for a step of `days_elapsed` days.

    Example:
        >>> round(time_scaled_alpha(7), 3)  # one time constant
        0.632
        >>> time_scaled_alpha(0)  # same-day duplicate leaves the average alone
        0.0
    """
    if days_elapsed <= 0:
        return 0.0
    return 1 - math.exp(-days_elapsed / time_constant_days)


def ewma_series(
    observations: Sequence[Observation], time_constant_days: float = 7.0
) -> list[float]:
    """
    Calculate the time-aware EWMA for chronologically sorted observations.

    The first weight seeds the average.
    """
    if not observations:
        return []

    smoothed = [observations[0].weight_kg]
    for previous, current in zip(observations, observations[1:]):
        alpha = time_scaled_alpha(gap_days(previous, current), time_constant_days)
        last = smoothed[-1]
        smoothed.append(last + alpha * (current.weight_kg - last))
    return smoothed


def measurement_residuals(observations: Sequence[Observation], smoothed: Sequence[float]) -> list[float]:
    """Raw weigh-in minus smoothed reference, per observation."""
    return [obs.weight_kg - ref for obs, ref in zip(observations, smoothed)]


def process_residuals(
    observations: Sequence[Observation],
    smoothed: Sequence[float],
    drift_per_day: float,
) -> list[float]:
    """
    Drift-corrected smoothed increments, scaled to a one-day step.

    Steps with no elapsed time (same-day duplicates) carry no information
    about the per-day random walk and are excluded.
    """
    residuals = []
    for i in range(1, len(observations)):
        delta_days = gap_days(observations[i - 1], observations[i])
        if delta_days <= 0:
            continue
        increment = smoothed[i] - smoothed[i - 1]
        residuals.append((increment - drift_per_day * delta_days) / math.sqrt(delta_days))
    return residuals


def bound_variances(
    measurement_std: float,
    process_std: float,
    config: Optional[TrendConfig] = None,
) -> tuple[float, float]:
    """
    Clamp standard deviations to their bounds and apply the ratio cap.

    The process variance may not exceed `max_process_to_measurement_ratio`
    times the measurement variance; otherwise the trend would chase
    day-to-day scale noise and the confidence band would keep widening.

    Returns:
        (measurement_variance, process_variance)
    """
    config = config or TrendConfig()

    measurement_std = clamp(
        measurement_std, config.min_measurement_std, config.max_measurement_std
    )
    process_std = clamp(process_std, config.min_process_std, config.max_process_std)

    measurement_variance = measurement_std**2
    process_variance = min(
        process_std**2, measurement_variance * config.max_process_to_measurement_ratio
    )
    return measurement_variance, process_variance


def estimate_noise(
    observations: Sequence[Observation],
    drift_per_day: float,
    config: Optional[TrendConfig] = None,
) -> tuple[float, float]:
    """
    Estimate (measurement_variance, process_variance) in kg².

    Args:
        observations: Chronologically sorted observations
        drift_per_day: Drift estimate in kg/day
        config: Trend configuration (bounds, defaults, time constant)

    Returns:
        Tuple of (measurement_variance, process_variance)
    """
    config = config or TrendConfig()

    if len(observations) < MIN_OBSERVATIONS:
        return config.default_measurement_variance, config.default_process_variance

    smoothed = ewma_series(observations, config.ewma_time_constant_days)

    measurement_std = robust_std(
        measurement_residuals(observations, smoothed), min_count=MIN_RESIDUALS
    )
    process_std = robust_std(
        process_residuals(observations, smoothed, drift_per_day), min_count=MIN_RESIDUALS
    )

    return bound_variances(
        measurement_std if measurement_std is not None else config.measurement_std,
        process_std if process_std is not None else config.process_std,
        config,
    )
