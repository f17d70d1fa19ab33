"""Weight tracking and trend estimation.

The trend is a scalar Kalman filter whose drift comes from a
recency-weighted least-squares fit and whose noise levels come from
robust (MAD-based) residual statistics around a time-aware EWMA.
Results for the most recent 120 days are materialized per weigh-in.

Key components:
- Drift estimation (30-day recency half-life)
- Noise estimation (7-day EWMA, 1.4826 × MAD)
- Kalman filter (14-day prediction gap cap, 95% bands)
- Trend materializer (active horizon + warmup window, stale invalidation)
"""

from __future__ import annotations

from weighttrend.tracking.kalman import TrendFilter, run_kalman_filter
from weighttrend.tracking.materialize import TrendMaterializer
from weighttrend.tracking.models import (
    ModelOutput,
    ModelParams,
    Observation,
    TrendPoint,
    TrendRow,
    TrendWindow,
    UserProfile,
    WeightEntry,
)
from weighttrend.tracking.pipeline import compute_weight_trend

__all__ = [
    "ModelOutput",
    "ModelParams",
    "Observation",
    "TrendFilter",
    "TrendMaterializer",
    "TrendPoint",
    "TrendRow",
    "TrendWindow",
    "UserProfile",
    "WeightEntry",
    "compute_weight_trend",
    "run_kalman_filter",
]
