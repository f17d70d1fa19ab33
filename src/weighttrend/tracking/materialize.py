"""Materialized weight trends: which window to recompute, and when.

Trend rows are computed for the active horizon only (the last 120 days
before "today"). Another 30 days of warmup history are fed to the model
so the first active-horizon points start from a settled filter, but
warmup points are never stored.

Write path (after a weigh-in changes):
    fetch [model_start, today] -> run pipeline -> replace active rows.
    If anything fails, every active row is flagged stale so the next
    read recomputes instead of serving a half-updated mix.

Read path:
    any stale or missing active row -> recompute synchronously -> serve.
    Dates below the active horizon are served with the raw weigh-in as
    the trend and zero uncertainty.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timezone
from typing import Callable, Optional, Sequence

from weighttrend.config.settings import TrendConfig
from weighttrend.db.connection import DatabaseConnection
from weighttrend.tracking.dates import resolve_today, trend_window
from weighttrend.tracking.models import (
    ModelOutput,
    Observation,
    TrendPoint,
    TrendRow,
    TrendStatus,
    TrendWindow,
    WeightEntry,
    date_to_timestamp_ms,
)
from weighttrend.tracking.pipeline import (
    classify_volatility,
    compute_weekly_rate,
    compute_weight_trend,
)
from weighttrend.tracking.queries import TrendQueries, UserQueries, WeightQueries
from weighttrend.tracking.units import grams_to_kg, kg_to_grams, kg_to_unit, normalize_unit

logger = logging.getLogger(__name__)


def build_active_trend_rows(
    user_id: int,
    entries: Sequence[WeightEntry],
    output: ModelOutput,
    window: TrendWindow,
    model_version: int = 1,
) -> list[TrendRow]:
    """
    Convert pipeline output into persistable rows for active-horizon dates.

    Warmup entries and entries without a trend point are skipped.
    """
    points_by_ms = {point.timestamp_ms: point for point in output.points}

    rows = []
    for entry in entries:
        if not window.is_active(entry.measured_at):
            continue
        point = points_by_ms.get(date_to_timestamp_ms(entry.measured_at))
        if point is None:
            continue
        rows.append(
            TrendRow(
                user_id=user_id,
                log_id=entry.log_id or 0,
                date=entry.measured_at,
                trend_weight_grams=kg_to_grams(point.trend_weight_kg),
                trend_std_grams=kg_to_grams(point.trend_std_kg),
                ci_lower_grams=kg_to_grams(point.lower95_kg),
                ci_upper_grams=kg_to_grams(point.upper95_kg),
                model_version=model_version,
            )
        )
    return rows


def raw_trend_point(entry: WeightEntry) -> TrendPoint:
    """Passthrough point for dates without a materialized trend."""
    weight_kg = entry.weight_kg
    return TrendPoint(
        timestamp_ms=date_to_timestamp_ms(entry.measured_at),
        weight_kg=weight_kg,
        trend_weight_kg=weight_kg,
        trend_std_kg=0.0,
        lower95_kg=weight_kg,
        upper95_kg=weight_kg,
    )


def stored_trend_point(entry: WeightEntry, row: TrendRow) -> TrendPoint:
    return TrendPoint(
        timestamp_ms=date_to_timestamp_ms(entry.measured_at),
        weight_kg=entry.weight_kg,
        trend_weight_kg=grams_to_kg(row.trend_weight_grams),
        trend_std_kg=grams_to_kg(row.trend_std_grams),
        lower95_kg=grams_to_kg(row.ci_lower_grams),
        upper95_kg=grams_to_kg(row.ci_upper_grams),
    )


def serialize_point(point: TrendPoint, unit: str) -> dict:
    """Render one trend point in the requested unit."""
    return {
        "date": point.date.isoformat(),
        "weight": kg_to_unit(point.weight_kg, unit),
        "trend_weight": kg_to_unit(point.trend_weight_kg, unit),
        "trend_std": kg_to_unit(point.trend_std_kg, unit),
        "trend_ci_lower": kg_to_unit(point.lower95_kg, unit),
        "trend_ci_upper": kg_to_unit(point.upper95_kg, unit),
    }


class TrendMaterializer:
    """
    Keeps one database's materialized trend rows in step with its weigh-ins.

    Construct once per process and share it: recomputes for the same
    user are serialized by a per-user lock, different users run in
    parallel.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        config: Optional[TrendConfig] = None,
        default_time_zone: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            db: Database holding weight_log and weight_trend
            config: Trend model configuration
            default_time_zone: Zone used when neither caller nor profile sets one
            clock: Returns the current instant (injectable for tests)
        """
        self.db = db
        self.config = config or TrendConfig()
        self.default_time_zone = default_time_zone
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def window_for(self, user_id: int, time_zone: Optional[str] = None) -> TrendWindow:
        """
        Active + warmup window ending on the user's local "today".

        The zone is the caller's, else the profile's, else the default;
        an unknown zone resolves in UTC.
        """
        if not time_zone:
            with self.db.get_connection() as conn:
                profile = UserQueries.get_user(conn, user_id)
            time_zone = (profile.time_zone if profile else None) or self.default_time_zone

        today = resolve_today(time_zone, self._clock())
        return trend_window(today, self.config)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def recompute(self, user_id: int, time_zone: Optional[str] = None) -> int:
        """
        Recompute and replace the user's active-horizon trend rows.

        Raises whatever the store raised; before re-raising, all active
        rows are flagged stale so the next read recomputes.

        Returns:
            Number of trend rows written
        """
        window = self.window_for(user_id, time_zone)
        return self._recompute_window(user_id, window)

    def _recompute_window(self, user_id: int, window: TrendWindow) -> int:
        with self._user_lock(user_id):
            try:
                with self.db.get_connection() as conn:
                    pairs = WeightQueries.fetch_observations(
                        conn, user_id, window.model_start, window.today
                    )
                    entries = [entry for entry, _ in pairs]
                    observations: list[Observation] = [obs for _, obs in pairs]

                    output = compute_weight_trend(observations, self.config)
                    rows = build_active_trend_rows(
                        user_id, entries, output, window, self.config.model_version
                    )
                    written = TrendQueries.replace_trend_rows(
                        conn, user_id, window.active_start, window.today, rows
                    )
            except Exception as error:
                self._invalidate(user_id, window, error)
                raise

        logger.debug(
            "Recomputed %d trend rows for user %s (model window %s..%s, active from %s)",
            written,
            user_id,
            window.model_start,
            window.today,
            window.active_start,
        )
        return written

    def _invalidate(self, user_id: int, window: TrendWindow, error: Exception) -> None:
        try:
            with self.db.get_connection() as conn:
                flagged = TrendQueries.mark_stale(conn, user_id, window.active_start, window.today)
        except Exception as invalidate_error:
            logger.warning(
                "Unable to refresh weight trends for user %s, and stale rows could not be "
                "invalidated. Recompute detail: %s. Invalidation detail: %s",
                user_id,
                error,
                invalidate_error,
            )
            return

        logger.warning(
            "Unable to refresh weight trends for user %s; %d existing trend rows were "
            "invalidated and will be recomputed on next trend read. Detail: %s",
            user_id,
            flagged,
            error,
        )

    def refresh_best_effort(self, user_id: int, time_zone: Optional[str] = None) -> bool:
        """
        Refresh after a weigh-in write without failing the write itself.

        Returns:
            True if the refresh succeeded, False if it was deferred to the next read
        """
        try:
            self.recompute(user_id, time_zone)
        except Exception:
            logger.warning("Trend refresh for user %s deferred to next read", user_id)
            return False
        return True

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def status(self, user_id: int, time_zone: Optional[str] = None) -> TrendStatus:
        """Classify every active-horizon weigh-in as fresh, stale or missing."""
        window = self.window_for(user_id, time_zone)
        return self._status_for_window(user_id, window)

    def _status_for_window(self, user_id: int, window: TrendWindow) -> TrendStatus:
        with self.db.get_connection() as conn:
            stale, missing = TrendQueries.find_outdated_dates(
                conn, user_id, window.active_start, window.today, self.config.model_version
            )
            fresh = TrendQueries.count_fresh(
                conn, user_id, window.active_start, window.today, self.config.model_version
            )
        return TrendStatus(
            user_id=user_id,
            window=window,
            fresh=fresh,
            stale=len(stale),
            missing=len(missing),
            stale_dates=stale,
            missing_dates=missing,
        )

    def ensure_fresh(self, user_id: int, time_zone: Optional[str] = None) -> bool:
        """
        Recompute synchronously if any active-horizon row is stale or missing.

        Returns:
            True if a recompute ran
        """
        window = self.window_for(user_id, time_zone)
        return self._ensure_window(user_id, window)

    def _ensure_window(self, user_id: int, window: TrendWindow) -> bool:
        status = self._status_for_window(user_id, window)
        if not status.needs_recompute:
            return False

        logger.debug(
            "User %s has %d stale and %d missing trend rows; recomputing",
            user_id,
            status.stale,
            status.missing,
        )
        self._recompute_window(user_id, window)
        return True

    def get_trend(
        self,
        user_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        output_unit: Optional[str] = None,
        time_zone: Optional[str] = None,
    ) -> dict:
        """
        Trend payload for the user's weigh-ins in [start, end].

        Every returned point has a trend value: the materialized one for
        fresh active-horizon dates, the raw weigh-in otherwise.

        ``weekly_rate`` and ``volatility`` come from the modeled points only;
        raw fallbacks (std 0) are left out. A range with no modeled
        point falls back to the raw points it served.

        Args:
            user_id: User ID
            start: First date to include (default: no lower bound)
            end: Last date to include (default: no upper bound)
            output_unit: 'kg' or 'lb' (default: profile unit)
            time_zone: Zone for "today" (default: profile zone)

        Returns:
            {"points": [...], "meta": {weekly_rate, volatility, total_points, total_span_days}}
        """
        window = self.window_for(user_id, time_zone)
        self._ensure_window(user_id, window)

        with self.db.get_connection() as conn:
            profile = UserQueries.get_user(conn, user_id)
            entries = WeightQueries.get_weight_history(
                conn, user_id, start_date=start, end_date=end
            )
            trend_rows = TrendQueries.read_trend_rows(
                conn, user_id, window.active_start, window.today
            )

        unit = normalize_unit(output_unit or (profile.weight_unit if profile else "kg"))

        current = {
            row.date: row
            for row in trend_rows
            if not row.is_stale and row.model_version == self.config.model_version
        }

        points = []
        modeled = []
        for entry in entries:
            row = current.get(entry.measured_at) if window.is_active(entry.measured_at) else None
            if row:
                point = stored_trend_point(entry, row)
                modeled.append(point)
            else:
                point = raw_trend_point(entry)
            points.append(point)
        summarized = modeled or points

        span_days = (points[-1].date - points[0].date).days if points else 0

        return {
            "points": [serialize_point(point, unit) for point in points],
            "meta": {
                "weekly_rate": kg_to_unit(
                    compute_weekly_rate(summarized, self.config.recent_window_points), unit
                ),
                "volatility": classify_volatility(summarized, self.config),
                "total_points": len(points),
                "total_span_days": span_days,
                "unit": unit,
            },
        }
