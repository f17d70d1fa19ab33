"""Data models for weight logging and trend estimation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from weighttrend.tracking.units import VALID_WEIGHT_UNITS

MS_PER_DAY = 86_400_000

VALID_VOLATILITY_LEVELS = ("low", "medium", "high")


@dataclass
class UserProfile:
    """User profile: display unit and home time zone."""

    user_id: Optional[int]
    weight_unit: str = "kg"  # 'kg' or 'lb'
    time_zone: Optional[str] = None  # IANA name, e.g. 'Europe/Berlin'
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.weight_unit not in VALID_WEIGHT_UNITS:
            raise ValueError(
                f"weight_unit must be one of {VALID_WEIGHT_UNITS}, got '{self.weight_unit}'"
            )


@dataclass
class WeightEntry:
    """A single stored weigh-in (one per user per day)."""

    log_id: Optional[int]
    user_id: int
    weight_grams: int
    measured_at: date
    notes: Optional[str] = None

    @property
    def weight_kg(self) -> float:
        return self.weight_grams / 1000.0


@dataclass(frozen=True)
class Observation:
    """A weight observation handed to the trend model."""

    timestamp_ms: int
    weight_kg: float

    @classmethod
    def from_date(cls, day: date, weight_kg: float) -> "Observation":
        """Build an observation stamped at UTC midnight of a calendar date."""
        return cls(timestamp_ms=date_to_timestamp_ms(day), weight_kg=weight_kg)

    @property
    def date(self) -> date:
        return timestamp_ms_to_date(self.timestamp_ms)


@dataclass(frozen=True)
class ModelParams:
    """Parameters estimated once per pipeline run."""

    drift_per_day: float
    measurement_variance: float
    process_variance: float


@dataclass(frozen=True)
class TrendPoint:
    """Filtered trend estimate for one observation (all values in kg)."""

    timestamp_ms: int
    weight_kg: float
    trend_weight_kg: float
    trend_std_kg: float
    lower95_kg: float
    upper95_kg: float

    @property
    def date(self) -> date:
        return timestamp_ms_to_date(self.timestamp_ms)


@dataclass
class ModelOutput:
    """Result of one trend pipeline run."""

    points: list[TrendPoint]
    weekly_rate_kg_per_week: float
    volatility: str
    params: ModelParams

    def __post_init__(self) -> None:
        if self.volatility not in VALID_VOLATILITY_LEVELS:
            raise ValueError(
                f"volatility must be one of {VALID_VOLATILITY_LEVELS}, got '{self.volatility}'"
            )


@dataclass(frozen=True)
class TrendRow:
    """Materialized trend values for one weigh-in, stored as integer grams."""

    user_id: int
    log_id: int
    date: date
    trend_weight_grams: int
    trend_std_grams: int
    ci_lower_grams: int
    ci_upper_grams: int
    model_version: int = 1
    is_stale: bool = False


@dataclass(frozen=True)
class TrendWindow:
    """
    Date bounds for one recompute.

    Rows in [active_start, today] are materialized; rows in
    [model_start, active_start) only warm up the filter.
    """

    today: date
    active_horizon_days: int = 120
    warmup_days: int = 30

    @property
    def active_start(self) -> date:
        return self.today - timedelta(days=self.active_horizon_days)

    @property
    def model_start(self) -> date:
        return self.today - timedelta(days=self.active_horizon_days + self.warmup_days)

    def is_active(self, day: date) -> bool:
        return self.active_start <= day <= self.today


@dataclass
class TrendStatus:
    """Materialization state of a user's active horizon."""

    user_id: int
    window: TrendWindow
    fresh: int = 0
    stale: int = 0
    missing: int = 0
    stale_dates: list[date] = field(default_factory=list)
    missing_dates: list[date] = field(default_factory=list)

    @property
    def needs_recompute(self) -> bool:
        return self.stale > 0 or self.missing > 0


def date_to_timestamp_ms(day: date) -> int:
    """Milliseconds since the epoch at UTC midnight of the given date."""
    return (day - date(1970, 1, 1)).days * MS_PER_DAY


def timestamp_ms_to_date(timestamp_ms: int) -> date:
    """UTC calendar date of an epoch-milliseconds timestamp."""
    return date(1970, 1, 1) + timedelta(days=timestamp_ms // MS_PER_DAY)
