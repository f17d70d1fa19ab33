"""Tests for local-date resolution and trend windows."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

import pytest

from weighttrend.config.settings import TrendConfig
from weighttrend.tracking.dates import (
    is_valid_time_zone,
    parse_local_date,
    resolve_today,
    trend_window,
)

LATE_UTC = datetime(2026, 2, 16, 23, 30, tzinfo=timezone.utc)


class TestResolveToday:
    """Tests for time-zone aware 'today'."""

    def test_utc(self) -> None:
        assert resolve_today("UTC", LATE_UTC) == date(2026, 2, 16)

    def test_east_of_utc_is_tomorrow(self) -> None:
        assert resolve_today("Pacific/Auckland", LATE_UTC) == date(2026, 2, 17)

    def test_west_of_utc_is_same_day(self) -> None:
        assert resolve_today("America/Los_Angeles", LATE_UTC) == date(2026, 2, 16)

    def test_missing_zone_uses_utc(self) -> None:
        assert resolve_today(None, LATE_UTC) == date(2026, 2, 16)
        assert resolve_today("", LATE_UTC) == date(2026, 2, 16)

    def test_invalid_zone_falls_back_to_utc(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="weighttrend.tracking.dates"):
            today = resolve_today("Mars/Olympus_Mons", LATE_UTC)

        assert today == date(2026, 2, 16)
        assert "Mars/Olympus_Mons" in caplog.text

    def test_naive_now_is_utc(self) -> None:
        naive = datetime(2026, 2, 16, 23, 30)
        assert resolve_today("Pacific/Auckland", naive) == date(2026, 2, 17)

    def test_is_valid_time_zone(self) -> None:
        assert is_valid_time_zone("Europe/Berlin")
        assert not is_valid_time_zone("Not/AZone")
        assert not is_valid_time_zone(None)


class TestParseLocalDate:
    """Tests for YYYY-MM-DD parsing."""

    def test_plain_date(self) -> None:
        assert parse_local_date("2026-02-16") == date(2026, 2, 16)

    def test_timestamp_prefix(self) -> None:
        assert parse_local_date("2026-02-16T07:45:00Z") == date(2026, 2, 16)

    @pytest.mark.parametrize("value", ["16/02/2026", "2026-2-16", "yesterday", "2026-13-01"])
    def test_rejects_malformed(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_local_date(value)


class TestTrendWindow:
    """Tests for active + warmup window bounds."""

    def test_default_bounds(self) -> None:
        window = trend_window(date(2026, 2, 16))

        assert window.active_start == date(2026, 2, 16) - timedelta(days=120)
        assert window.model_start == date(2026, 2, 16) - timedelta(days=150)

    def test_configured_bounds(self) -> None:
        window = trend_window(date(2026, 2, 16), TrendConfig(active_horizon_days=10, warmup_days=5))

        assert window.active_start == date(2026, 2, 6)
        assert window.model_start == date(2026, 2, 1)

    def test_is_active_inclusive(self) -> None:
        window = trend_window(date(2026, 2, 16))

        assert window.is_active(window.active_start)
        assert window.is_active(window.today)
        assert not window.is_active(window.active_start - timedelta(days=1))
        assert not window.is_active(window.today + timedelta(days=1))
