"""Tests for the trend pipeline and its summary statistics."""

from __future__ import annotations

import math
from datetime import date, timedelta

import numpy as np
import pytest

from weighttrend.config.settings import TrendConfig
from weighttrend.tracking.models import Observation, TrendPoint, date_to_timestamp_ms
from weighttrend.tracking.pipeline import (
    classify_volatility,
    compute_weekly_rate,
    compute_weight_trend,
    prepare_observations,
    to_observations,
)
from weighttrend.tracking.units import POUNDS_PER_KG, kg_to_lb, lb_to_kg


def daily_observations(weights: list[float], start: date = date(2026, 1, 1)) -> list[Observation]:
    return [
        Observation.from_date(start + timedelta(days=i), weight)
        for i, weight in enumerate(weights)
    ]


def make_point(day: date, trend: float, std: float = 0.3) -> TrendPoint:
    return TrendPoint(
        timestamp_ms=date_to_timestamp_ms(day),
        weight_kg=trend,
        trend_weight_kg=trend,
        trend_std_kg=std,
        lower95_kg=trend - 1.96 * std,
        upper95_kg=trend + 1.96 * std,
    )


class TestPrepareObservations:
    """Tests for filtering, clipping and sorting."""

    def test_drops_invalid_weights(self) -> None:
        day = date(2026, 1, 1)
        observations = [
            Observation.from_date(day, math.nan),
            Observation.from_date(day + timedelta(days=1), -1.0),
            Observation.from_date(day + timedelta(days=2), 0.0),
            Observation.from_date(day + timedelta(days=3), math.inf),
            Observation.from_date(day + timedelta(days=4), 80.0),
        ]

        prepared = prepare_observations(observations)

        assert [obs.weight_kg for obs in prepared] == [80.0]

    def test_sorts_by_timestamp(self) -> None:
        observations = daily_observations([80.0, 81.0, 82.0])
        prepared = prepare_observations(list(reversed(observations)))
        assert prepared == observations

    def test_clips_to_window(self) -> None:
        observations = daily_observations([80.0, 81.0, 82.0, 83.0, 84.0])

        prepared = prepare_observations(observations, date(2026, 1, 2), date(2026, 1, 4))

        assert [obs.weight_kg for obs in prepared] == [81.0, 82.0, 83.0]


class TestToObservations:
    """Tests for converting stored samples into kg observations."""

    def test_grams(self) -> None:
        observations = to_observations([(date(2026, 1, 1), 80500)])
        assert observations[0].weight_kg == pytest.approx(80.5)
        assert observations[0].date == date(2026, 1, 1)

    def test_pounds(self) -> None:
        observations = to_observations([(date(2026, 1, 1), 180.0)], unit="lb")
        assert observations[0].weight_kg == pytest.approx(180.0 / POUNDS_PER_KG)

    def test_timestamps_pass_through(self) -> None:
        observations = to_observations([(1_700_000_000_000, 75.0)], unit="kg")
        assert observations[0].timestamp_ms == 1_700_000_000_000

    def test_non_finite_becomes_nan(self) -> None:
        observations = to_observations([(date(2026, 1, 1), math.inf)], unit="kg")
        assert math.isnan(observations[0].weight_kg)

    def test_numpy_samples(self) -> None:
        observations = to_observations(
            [(np.int64(1_700_000_000_000), np.int64(80500)), (date(2026, 1, 2), np.float32(80.25))],
            unit="g",
        )
        assert observations[0].timestamp_ms == 1_700_000_000_000
        assert observations[0].weight_kg == pytest.approx(80.5)
        assert observations[1].weight_kg == pytest.approx(0.08025)


class TestWeeklyRate:
    """Tests for the recent weekly rate."""

    def test_one_week_apart(self) -> None:
        points = [make_point(date(2026, 1, 1), 80.0), make_point(date(2026, 1, 8), 79.0)]
        assert compute_weekly_rate(points) == pytest.approx(-1.0)

    def test_fewer_than_two_points(self) -> None:
        assert compute_weekly_rate([]) == 0.0
        assert compute_weekly_rate([make_point(date(2026, 1, 1), 80.0)]) == 0.0

    def test_uses_only_recent_points(self) -> None:
        start = date(2026, 1, 1)
        # Steep early drop, then steady -0.1 kg/day for the last 14 points
        points = [make_point(start + timedelta(days=i), 100.0 - i) for i in range(10)]
        points += [make_point(start + timedelta(days=10 + i), 85.0 - 0.1 * i) for i in range(14)]

        assert compute_weekly_rate(points) == pytest.approx(-0.7)

    def test_same_day_span_uses_one_day(self) -> None:
        day = date(2026, 1, 1)
        points = [make_point(day, 80.0), make_point(day, 80.5)]
        assert compute_weekly_rate(points) == pytest.approx(3.5)


class TestVolatility:
    """Tests for volatility classification."""

    @pytest.mark.parametrize(
        "std, expected",
        [(0.3, "low"), (0.8, "medium"), (1.5, "high"), (0.5, "medium"), (1.2, "high")],
    )
    def test_thresholds(self, std: float, expected: str) -> None:
        start = date(2026, 1, 1)
        points = [make_point(start + timedelta(days=i), 80.0, std) for i in range(5)]
        assert classify_volatility(points) == expected

    def test_empty_is_low(self) -> None:
        assert classify_volatility([]) == "low"

    def test_uses_recent_window_median(self) -> None:
        start = date(2026, 1, 1)
        points = [make_point(start + timedelta(days=i), 80.0, 2.0) for i in range(20)]
        points += [make_point(start + timedelta(days=20 + i), 80.0, 0.2) for i in range(14)]
        assert classify_volatility(points, TrendConfig()) == "low"


class TestComputeWeightTrend:
    """Tests for the end-to-end pipeline."""

    def test_empty_input(self) -> None:
        output = compute_weight_trend([])
        assert output.points == []
        assert output.weekly_rate_kg_per_week == 0.0
        assert output.volatility == "low"
        assert output.params.drift_per_day == 0.0
        assert output.params.measurement_variance == pytest.approx(0.81)
        assert output.params.process_variance == pytest.approx(0.01)

    def test_all_invalid_is_empty(self) -> None:
        output = compute_weight_trend(daily_observations([math.nan, -5.0, 0.0]))
        assert output.points == []

    def test_single_observation(self) -> None:
        output = compute_weight_trend([Observation.from_date(date(2026, 1, 1), 77.7)])

        assert len(output.points) == 1
        point = output.points[0]
        assert point.trend_weight_kg == 77.7
        assert point.trend_std_kg == 0.0
        assert point.lower95_kg == point.upper95_kg == 77.7
        assert output.params.drift_per_day == 0.0
        assert output.weekly_rate_kg_per_week == 0.0

    def test_numpy_weights(self) -> None:
        weights = [np.float32(80.0), np.int64(80), np.float32(79.6), np.float64(79.8), np.int64(79)]
        output = compute_weight_trend(daily_observations(weights))

        assert len(output.points) == 5
        assert all(type(point.weight_kg) is float for point in output.points)
        assert all(math.isfinite(point.trend_weight_kg) for point in output.points)
        assert output.weekly_rate_kg_per_week < 0

    def test_first_point_anchored_at_reading(self) -> None:
        output = compute_weight_trend(daily_observations([80.0, 80.4, 79.8, 80.1]))
        first = output.points[0]
        assert first.trend_weight_kg == 80.0
        assert first.trend_std_kg == pytest.approx(math.sqrt(output.params.measurement_variance))

    def test_unsorted_input_is_sorted(self) -> None:
        observations = daily_observations([80.0, 79.9, 79.7, 79.8, 79.5])
        forward = compute_weight_trend(observations)
        backward = compute_weight_trend(list(reversed(observations)))
        assert forward.points == backward.points

    def test_band_matches_std(self) -> None:
        weights = [80 - 0.05 * i + (0.5 if i % 3 == 0 else -0.2) for i in range(40)]
        output = compute_weight_trend(daily_observations(weights))

        for point in output.points:
            assert point.trend_std_kg >= 0
            assert point.lower95_kg == pytest.approx(point.trend_weight_kg - 1.96 * point.trend_std_kg)
            assert point.upper95_kg == pytest.approx(point.trend_weight_kg + 1.96 * point.trend_std_kg)

    def test_losing_weight_has_negative_drift_and_rate(self) -> None:
        weights = [90 - 0.1 * i + (0.3 if i % 2 == 0 else -0.3) for i in range(60)]
        output = compute_weight_trend(daily_observations(weights))

        assert output.params.drift_per_day < 0
        assert output.weekly_rate_kg_per_week < 0

    def test_gaining_weight_has_positive_drift(self) -> None:
        weights = [70 + 0.05 * i for i in range(45)]
        output = compute_weight_trend(daily_observations(weights))
        assert output.params.drift_per_day > 0

    def test_spike_is_dampened(self) -> None:
        weights = [80.0 + (0.1 if i % 2 else -0.1) for i in range(20)]
        weights.append(83.0)
        output = compute_weight_trend(daily_observations(weights))

        before, after = output.points[-2], output.points[-1]
        assert after.trend_weight_kg - before.trend_weight_kg < 3.0 * 0.5

    def test_ratio_cap_holds(self) -> None:
        weights = [80 + (2.0 if i % 5 == 0 else 0.0) + 0.3 * i for i in range(30)]
        params = compute_weight_trend(daily_observations(weights)).params
        assert params.process_variance <= 0.35 * params.measurement_variance + 1e-12

    def test_long_gap_keeps_band_narrow(self) -> None:
        observations = [
            Observation.from_date(date(2012, 1, 1), lb_to_kg(178.0)),
            Observation.from_date(date(2012, 1, 2), lb_to_kg(177.5)),
            Observation.from_date(date(2026, 1, 1), lb_to_kg(171.8)),
        ]

        last = compute_weight_trend(observations).points[-1]

        assert kg_to_lb(last.upper95_kg - last.lower95_kg) < 8.0

    def test_window_clip(self) -> None:
        observations = daily_observations([80.0 - 0.1 * i for i in range(30)])

        output = compute_weight_trend(observations, start=date(2026, 1, 11), end=date(2026, 1, 20))

        assert len(output.points) == 10
        assert output.points[0].date == date(2026, 1, 11)
        assert output.points[-1].date == date(2026, 1, 20)

    def test_unit_invariance(self) -> None:
        """Pounds in, kilograms modeled: same trend as entering kilograms."""
        kg_weights = [82 - 0.07 * i + (0.4 if i % 3 == 0 else -0.2) for i in range(30)]
        start = date(2026, 1, 1)
        in_kg = to_observations(
            [(start + timedelta(days=i), w) for i, w in enumerate(kg_weights)], unit="kg"
        )
        in_lb = to_observations(
            [(start + timedelta(days=i), kg_to_lb(w)) for i, w in enumerate(kg_weights)], unit="lb"
        )

        kg_output = compute_weight_trend(in_kg)
        lb_output = compute_weight_trend(in_lb)

        assert lb_output.volatility == kg_output.volatility
        for kg_point, lb_point in zip(kg_output.points, lb_output.points):
            assert lb_point.trend_weight_kg == pytest.approx(kg_point.trend_weight_kg, rel=1e-9)
            assert lb_point.trend_std_kg == pytest.approx(kg_point.trend_std_kg, rel=1e-6)
