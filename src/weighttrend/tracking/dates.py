"""Calendar-date helpers: local "today", date parsing and trend windows."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from weighttrend.config.settings import TrendConfig
from weighttrend.tracking.models import TrendWindow

logger = logging.getLogger(__name__)

LOCAL_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def load_time_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    """Return the ZoneInfo for an IANA name, or None if missing/invalid."""
    if not isinstance(name, str) or not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def is_valid_time_zone(name: Optional[str]) -> bool:
    return load_time_zone(name) is not None


def resolve_today(time_zone: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """
    Calendar date of "today" in the given IANA time zone.

    Missing or unknown zones fall back to UTC instead of failing.

    Args:
        time_zone: IANA time zone name (e.g. 'America/Los_Angeles')
        now: Instant to resolve (default: current time). Naive values are
             taken as UTC.

    Example:
        >>> resolve_today("Pacific/Auckland", datetime(2025, 1, 1, 12, tzinfo=timezone.utc))
        datetime.date(2025, 1, 2)
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    zone = load_time_zone(time_zone)
    if zone is None:
        if time_zone:
            logger.warning("Unknown time zone %r; resolving today in UTC", time_zone)
        return now.astimezone(timezone.utc).date()
    return now.astimezone(zone).date()


def parse_local_date(value: str) -> date:
    """
    Parse 'YYYY-MM-DD' (or any string starting with it, e.g. an ISO timestamp).

    Raises:
        ValueError: If the value does not start with a valid calendar date
    """
    if not isinstance(value, str):
        raise ValueError("Invalid local date")
    head = value.strip()[:10]
    if not LOCAL_DATE_PATTERN.match(head):
        raise ValueError(f"Invalid local date: {value!r}")
    return date.fromisoformat(head)


def trend_window(today: date, config: Optional[TrendConfig] = None) -> TrendWindow:
    """Build the active + warmup window ending on `today`."""
    config = config or TrendConfig()
    return TrendWindow(
        today=today,
        active_horizon_days=config.active_horizon_days,
        warmup_days=config.warmup_days,
    )
