"""Pytest fixtures for weighttrend tests."""

from __future__ import annotations

import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from weighttrend.config.settings import TrendConfig
from weighttrend.db.connection import DatabaseConnection
from weighttrend.tracking.materialize import TrendMaterializer
from weighttrend.tracking.models import UserProfile
from weighttrend.tracking.queries import UserQueries, WeightQueries

# Fixed "now" for materializer tests: noon UTC
TODAY = date(2026, 2, 16)
NOW = datetime(2026, 2, 16, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    """Create a temporary database with schema."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    db = DatabaseConnection(db_path)
    db.initialize_schema()

    yield db

    # Cleanup
    db_path.unlink(missing_ok=True)


@pytest.fixture
def user_id(temp_db):
    """Create a kg user in UTC and return its id."""
    with temp_db.get_connection() as conn:
        return UserQueries.create_user(conn, UserProfile(user_id=None, weight_unit="kg", time_zone="UTC"))


@pytest.fixture
def materializer(temp_db):
    """Materializer with a frozen clock."""
    return TrendMaterializer(temp_db, config=TrendConfig(), clock=lambda: NOW)


@pytest.fixture
def daily_history(temp_db, user_id):
    """220 days of slowly declining weigh-ins ending on TODAY."""
    with temp_db.get_connection() as conn:
        for index in range(220):
            day = TODAY - timedelta(days=219 - index)
            grams = 80000 - index * 15 + (150 if index % 2 == 0 else -150)
            WeightQueries.add_weight(conn, user_id, grams, day)
    return temp_db


@pytest.fixture
def today():
    """The materializer clock's calendar date (UTC)."""
    return TODAY
