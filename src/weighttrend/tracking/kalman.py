"""Scalar Kalman filter for the latent "true weight" trend.

State model:  x_t = x_{t-1} + drift × Δt + process_noise
Observation:  z_t = x_t + measurement_noise

The state is a single scalar (trend weight, kg) with posterior variance P.
The first weigh-in anchors the trend exactly (x = z_0, P = R), so day one
of a history shows the reading itself with the plain measurement
uncertainty. Every later weigh-in runs a predict step over the elapsed
gap, capped at 14 days so long logging breaks do not blow up the
uncertainty, followed by a standard update.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from weighttrend.tracking.models import MS_PER_DAY, ModelParams, Observation, TrendPoint

TREND_CONFIDENCE_Z_SCORE = 1.96  # 95% interval for the latent weight
MIN_POSTERIOR_VARIANCE = 1e-8
MAX_PREDICTION_GAP_DAYS = 14.0


@dataclass
class TrendFilter:
    """
    Scalar Kalman filter with a known linear drift.

    Attributes:
        mean: Current trend estimate (kg)
        variance: Current posterior variance (kg²)
        drift_per_day: Deterministic drift applied in the predict step (kg/day)
        process_variance: Random walk variance per day (kg²/day)
        measurement_variance: Scale noise variance (kg²)
        max_gap_days: Prediction horizon cap (days)
    """

    mean: float
    variance: float
    drift_per_day: float = 0.0
    process_variance: float = 0.01
    measurement_variance: float = 0.81
    max_gap_days: float = MAX_PREDICTION_GAP_DAYS

    @classmethod
    def from_first_observation(
        cls,
        weight_kg: float,
        params: ModelParams,
        max_gap_days: float = MAX_PREDICTION_GAP_DAYS,
    ) -> "TrendFilter":
        """Anchor the filter on the first weigh-in: x = z_0, P = R."""
        return cls(
            mean=weight_kg,
            variance=params.measurement_variance,
            drift_per_day=params.drift_per_day,
            process_variance=params.process_variance,
            measurement_variance=params.measurement_variance,
            max_gap_days=max_gap_days,
        )

    def predict(self, days: float) -> None:
        """
        Predict step: advance the trend along the drift and grow uncertainty.

        Args:
            days: Days since the previous observation (capped at max_gap_days)
        """
        gap = min(max(days, 0.0), self.max_gap_days)
        self.mean += self.drift_per_day * gap
        self.variance += self.process_variance * gap

    def update(self, observed: float) -> float:
        """
        Update step: incorporate a weigh-in.

        Returns:
            Innovation (observed - predicted mean)
        """
        innovation = observed - self.mean
        innovation_variance = self.variance + self.measurement_variance
        kalman_gain = self.variance / innovation_variance if innovation_variance > 0 else 0.0

        self.mean += kalman_gain * innovation
        # Floor keeps the filter from collapsing and ignoring later weigh-ins
        self.variance = max(MIN_POSTERIOR_VARIANCE, (1 - kalman_gain) * self.variance)

        return innovation

    def predict_and_update(self, observed: float, days: float) -> float:
        """Combined predict + update step. Returns the innovation."""
        self.predict(days)
        return self.update(observed)

    @property
    def std(self) -> float:
        return math.sqrt(max(self.variance, 0.0))

    def confidence_interval(self) -> tuple[float, float]:
        """95% interval around the current trend estimate."""
        half_width = TREND_CONFIDENCE_Z_SCORE * self.std
        return self.mean - half_width, self.mean + half_width

    def get_state(self) -> dict:
        """Return current filter state as dictionary."""
        return {
            "mean": self.mean,
            "variance": self.variance,
            "std": self.std,
        }

    def to_point(self, observation: Observation) -> TrendPoint:
        lower, upper = self.confidence_interval()
        return TrendPoint(
            timestamp_ms=observation.timestamp_ms,
            weight_kg=observation.weight_kg,
            trend_weight_kg=self.mean,
            trend_std_kg=self.std,
            lower95_kg=lower,
            upper95_kg=upper,
        )


def run_kalman_filter(
    observations: Sequence[Observation],
    params: ModelParams,
    max_gap_days: float = MAX_PREDICTION_GAP_DAYS,
) -> list[TrendPoint]:
    """
    Run the filter over chronologically sorted observations.

    Args:
        observations: Observations sorted by timestamp
        params: Drift and noise parameters for this run
        max_gap_days: Prediction horizon cap

    Returns:
        One TrendPoint per observation, in the same order
    """
    if not observations:
        return []

    trend_filter = TrendFilter.from_first_observation(
        observations[0].weight_kg, params, max_gap_days
    )
    points = [trend_filter.to_point(observations[0])]

    for previous, current in zip(observations, observations[1:]):
        days = (current.timestamp_ms - previous.timestamp_ms) / MS_PER_DAY
        trend_filter.predict_and_update(current.weight_kg, days)
        points.append(trend_filter.to_point(current))

    return points
