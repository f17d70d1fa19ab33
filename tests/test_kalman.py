"""Tests for the scalar trend Kalman filter."""

from __future__ import annotations

import math
from datetime import date, timedelta

import pytest

from weighttrend.tracking.kalman import (
    MIN_POSTERIOR_VARIANCE,
    TREND_CONFIDENCE_Z_SCORE,
    TrendFilter,
    run_kalman_filter,
)
from weighttrend.tracking.models import ModelParams, Observation

PARAMS = ModelParams(drift_per_day=0.0, measurement_variance=0.81, process_variance=0.01)


class TestTrendFilter:
    """Tests for TrendFilter predict / update steps."""

    def test_from_first_observation_anchors_on_reading(self) -> None:
        trend_filter = TrendFilter.from_first_observation(82.3, PARAMS)
        assert trend_filter.mean == 82.3
        assert trend_filter.variance == pytest.approx(0.81)
        assert trend_filter.std == pytest.approx(0.9)

    def test_predict_applies_drift_and_grows_variance(self) -> None:
        trend_filter = TrendFilter(mean=80.0, variance=0.1, drift_per_day=-0.1, process_variance=0.01)

        trend_filter.predict(7)

        assert trend_filter.mean == pytest.approx(79.3)
        assert trend_filter.variance == pytest.approx(0.17)

    def test_predict_caps_gap(self) -> None:
        trend_filter = TrendFilter(mean=80.0, variance=0.1, drift_per_day=0.05, process_variance=0.01)

        trend_filter.predict(365)

        assert trend_filter.mean == pytest.approx(80.0 + 0.05 * 14)
        assert trend_filter.variance == pytest.approx(0.1 + 0.01 * 14)

    def test_update_returns_innovation(self) -> None:
        trend_filter = TrendFilter(mean=80.0, variance=0.81, measurement_variance=0.81)

        innovation = trend_filter.update(81.0)

        assert innovation == pytest.approx(1.0)
        # Equal prior and measurement variance: gain is 0.5
        assert trend_filter.mean == pytest.approx(80.5)
        assert trend_filter.variance == pytest.approx(0.405)

    def test_update_moves_toward_observation(self) -> None:
        trend_filter = TrendFilter(mean=80.0, variance=0.2, measurement_variance=0.81)

        trend_filter.update(78.0)

        assert 78.0 < trend_filter.mean < 80.0

    def test_variance_floor(self) -> None:
        trend_filter = TrendFilter(
            mean=80.0, variance=1e-12, process_variance=0.0, measurement_variance=1e-12
        )

        trend_filter.predict_and_update(80.5, 1)

        assert trend_filter.variance == MIN_POSTERIOR_VARIANCE

    def test_confidence_interval(self) -> None:
        trend_filter = TrendFilter(mean=80.0, variance=0.25)
        lower, upper = trend_filter.confidence_interval()
        assert lower == pytest.approx(80.0 - TREND_CONFIDENCE_Z_SCORE * 0.5)
        assert upper == pytest.approx(80.0 + TREND_CONFIDENCE_Z_SCORE * 0.5)

    def test_get_state(self) -> None:
        state = TrendFilter(mean=80.0, variance=0.04).get_state()
        assert state == {"mean": 80.0, "variance": 0.04, "std": pytest.approx(0.2)}


class TestRunKalmanFilter:
    """Tests for running the filter over an observation series."""

    def test_empty(self) -> None:
        assert run_kalman_filter([], PARAMS) == []

    def test_cold_start_anchoring(self) -> None:
        observations = [Observation.from_date(date(2026, 1, 1), 84.2)]

        points = run_kalman_filter(observations, PARAMS)

        assert len(points) == 1
        assert points[0].trend_weight_kg == 84.2
        assert points[0].trend_std_kg == pytest.approx(math.sqrt(0.81))
        assert points[0].lower95_kg == pytest.approx(84.2 - 1.96 * 0.9)
        assert points[0].upper95_kg == pytest.approx(84.2 + 1.96 * 0.9)

    def test_one_point_per_observation(self) -> None:
        start = date(2026, 1, 1)
        observations = [
            Observation.from_date(start + timedelta(days=i), 80 - 0.05 * i) for i in range(20)
        ]

        points = run_kalman_filter(observations, PARAMS)

        assert [point.timestamp_ms for point in points] == [obs.timestamp_ms for obs in observations]
        assert [point.weight_kg for point in points] == [obs.weight_kg for obs in observations]

    def test_variance_floor_holds_after_updates(self) -> None:
        params = ModelParams(drift_per_day=0.0, measurement_variance=1e-20, process_variance=0.0)
        start = date(2026, 1, 1)
        observations = [Observation.from_date(start + timedelta(days=i), 80.0) for i in range(5)]

        points = run_kalman_filter(observations, params)

        for point in points[1:]:
            assert point.trend_std_kg**2 >= MIN_POSTERIOR_VARIANCE * (1 - 1e-9)

    def test_long_gap_capped_at_two_weeks(self) -> None:
        start = date(2025, 1, 1)
        after_year = [
            Observation.from_date(start, 80.0),
            Observation.from_date(start + timedelta(days=365), 78.0),
        ]
        after_two_weeks = [
            Observation.from_date(start, 80.0),
            Observation.from_date(start + timedelta(days=14), 78.0),
        ]

        year_points = run_kalman_filter(after_year, PARAMS)
        fortnight_points = run_kalman_filter(after_two_weeks, PARAMS)

        assert year_points[1].trend_std_kg == pytest.approx(fortnight_points[1].trend_std_kg)
        assert year_points[1].trend_weight_kg == pytest.approx(fortnight_points[1].trend_weight_kg)

    def test_band_is_symmetric(self) -> None:
        start = date(2026, 1, 1)
        observations = [
            Observation.from_date(start + timedelta(days=i), 80 + (0.4 if i % 2 else -0.4))
            for i in range(10)
        ]

        for point in run_kalman_filter(observations, PARAMS):
            assert point.trend_std_kg >= 0
            assert point.lower95_kg == pytest.approx(point.trend_weight_kg - 1.96 * point.trend_std_kg)
            assert point.upper95_kg == pytest.approx(point.trend_weight_kg + 1.96 * point.trend_std_kg)
