"""Database queries for weigh-ins and materialized trend rows."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Iterable, Optional

from weighttrend.tracking.models import (
    Observation,
    TrendRow,
    UserProfile,
    WeightEntry,
)


class UserQueries:
    """Database queries for user profiles."""

    @staticmethod
    def create_user(conn: sqlite3.Connection, profile: UserProfile) -> int:
        """Create a new user profile and return the user_id."""
        cursor = conn.execute(
            """
            INSERT INTO user_profiles (weight_unit, time_zone)
            VALUES (?, ?)
            """,
            (profile.weight_unit, profile.time_zone),
        )
        conn.commit()
        return cursor.lastrowid or 0

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> UserProfile:
        return UserProfile(
            user_id=row[0],
            weight_unit=row[1],
            time_zone=row[2],
            created_at=datetime.fromisoformat(row[3]) if row[3] else None,
        )

    @staticmethod
    def get_user(conn: sqlite3.Connection, user_id: int) -> Optional[UserProfile]:
        """Get user profile by ID."""
        row = conn.execute(
            """
            SELECT user_id, weight_unit, time_zone, created_at
            FROM user_profiles WHERE user_id = ?
            """,
            (user_id,),
        ).fetchone()

        return UserQueries._row_to_profile(row) if row else None

    @staticmethod
    def get_default_user(conn: sqlite3.Connection) -> Optional[UserProfile]:
        """Get the first (default) user profile."""
        row = conn.execute(
            """
            SELECT user_id, weight_unit, time_zone, created_at
            FROM user_profiles ORDER BY user_id LIMIT 1
            """
        ).fetchone()

        return UserQueries._row_to_profile(row) if row else None

    @staticmethod
    def update_user(conn: sqlite3.Connection, profile: UserProfile) -> None:
        """Update an existing user profile."""
        if profile.user_id is None:
            raise ValueError("Cannot update profile without user_id")

        conn.execute(
            """
            UPDATE user_profiles
            SET weight_unit = ?, time_zone = ?
            WHERE user_id = ?
            """,
            (profile.weight_unit, profile.time_zone, profile.user_id),
        )
        conn.commit()


class WeightQueries:
    """Database queries for weight log entries."""

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> WeightEntry:
        return WeightEntry(
            log_id=row[0],
            user_id=row[1],
            weight_grams=row[2],
            measured_at=date.fromisoformat(row[3]),
            notes=row[4],
        )

    @staticmethod
    def add_weight(
        conn: sqlite3.Connection,
        user_id: int,
        weight_grams: int,
        measured_at: date,
        notes: Optional[str] = None,
    ) -> WeightEntry:
        """
        Add a weigh-in.

        If an entry already exists for this date, its weight and notes are
        overwritten in place (the log_id is kept).
        """
        conn.execute(
            """
            INSERT INTO weight_log (user_id, weight_grams, measured_at, notes)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, measured_at)
            DO UPDATE SET weight_grams = excluded.weight_grams, notes = excluded.notes
            """,
            (user_id, weight_grams, measured_at.isoformat(), notes),
        )
        row = conn.execute(
            """
            SELECT log_id, user_id, weight_grams, measured_at, notes
            FROM weight_log WHERE user_id = ? AND measured_at = ?
            """,
            (user_id, measured_at.isoformat()),
        ).fetchone()
        conn.commit()

        return WeightQueries._row_to_entry(row)

    @staticmethod
    def delete_weight(conn: sqlite3.Connection, user_id: int, measured_at: date) -> bool:
        """Delete the weigh-in for a date. Returns True if a row was removed."""
        cursor = conn.execute(
            "DELETE FROM weight_log WHERE user_id = ? AND measured_at = ?",
            (user_id, measured_at.isoformat()),
        )
        conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def get_latest_weight(
        conn: sqlite3.Connection, user_id: int
    ) -> Optional[WeightEntry]:
        """Get the most recent weight entry."""
        row = conn.execute(
            """
            SELECT log_id, user_id, weight_grams, measured_at, notes
            FROM weight_log
            WHERE user_id = ?
            ORDER BY measured_at DESC LIMIT 1
            """,
            (user_id,),
        ).fetchone()

        return WeightQueries._row_to_entry(row) if row else None

    @staticmethod
    def get_weight_history(
        conn: sqlite3.Connection,
        user_id: int,
        days: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[WeightEntry]:
        """
        Get weight history for a user in chronological order.

        Args:
            user_id: User ID
            days: If set, return only the last N entries
            start_date: If set, return entries on or after this date
            end_date: If set, return entries on or before this date
        """
        query = """
            SELECT log_id, user_id, weight_grams, measured_at, notes
            FROM weight_log
            WHERE user_id = ?
        """
        params: list = [user_id]

        if start_date:
            query += " AND measured_at >= ?"
            params.append(start_date.isoformat())
        if end_date:
            query += " AND measured_at <= ?"
            params.append(end_date.isoformat())

        query += " ORDER BY measured_at DESC"

        if days:
            query += " LIMIT ?"
            params.append(days)

        rows = conn.execute(query, params).fetchall()

        return [
            WeightQueries._row_to_entry(row)
            for row in reversed(rows)  # Return in chronological order
        ]

    @staticmethod
    def fetch_observations(
        conn: sqlite3.Connection,
        user_id: int,
        start_date: date,
        end_date: date,
    ) -> list[tuple[WeightEntry, Observation]]:
        """
        Load weigh-ins in [start_date, end_date] paired with kg observations.

        Only the requested window is read; callers never need full history.
        """
        history = WeightQueries.get_weight_history(
            conn, user_id, start_date=start_date, end_date=end_date
        )
        return [
            (entry, Observation.from_date(entry.measured_at, entry.weight_kg))
            for entry in history
        ]


class TrendQueries:
    """Database queries for materialized trend rows."""

    @staticmethod
    def _row_to_trend(row: sqlite3.Row) -> TrendRow:
        return TrendRow(
            user_id=row[0],
            log_id=row[1],
            date=date.fromisoformat(row[2]),
            trend_weight_grams=row[3],
            trend_std_grams=row[4],
            ci_lower_grams=row[5],
            ci_upper_grams=row[6],
            model_version=row[7],
            is_stale=bool(row[8]),
        )

    @staticmethod
    def replace_trend_rows(
        conn: sqlite3.Connection,
        user_id: int,
        start_date: date,
        end_date: date,
        rows: Iterable[TrendRow],
    ) -> int:
        """
        Replace all of a user's trend rows in [start_date, end_date].

        Runs inside the caller's transaction; nothing is committed here so
        the delete and the insert land together or not at all.

        Returns:
            Number of rows written
        """
        conn.execute(
            "DELETE FROM weight_trend WHERE user_id = ? AND date >= ? AND date <= ?",
            (user_id, start_date.isoformat(), end_date.isoformat()),
        )
        params = [
            (
                row.user_id,
                row.date.isoformat(),
                row.log_id,
                row.trend_weight_grams,
                row.trend_std_grams,
                row.ci_lower_grams,
                row.ci_upper_grams,
                row.model_version,
                row.is_stale,
            )
            for row in rows
        ]
        conn.executemany(
            """
            INSERT INTO weight_trend
            (user_id, date, log_id, trend_weight_grams, trend_std_grams,
             ci_lower_grams, ci_upper_grams, model_version, is_stale)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            params,
        )
        return len(params)

    @staticmethod
    def mark_stale(
        conn: sqlite3.Connection,
        user_id: int,
        start_date: date,
        end_date: date,
    ) -> int:
        """Flag a user's trend rows in [start_date, end_date] as stale."""
        cursor = conn.execute(
            """
            UPDATE weight_trend SET is_stale = TRUE
            WHERE user_id = ? AND date >= ? AND date <= ?
            """,
            (user_id, start_date.isoformat(), end_date.isoformat()),
        )
        conn.commit()
        return cursor.rowcount

    @staticmethod
    def read_trend_rows(
        conn: sqlite3.Connection,
        user_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[TrendRow]:
        """Get trend rows in chronological order, optionally bounded by date."""
        query = """
            SELECT user_id, log_id, date, trend_weight_grams, trend_std_grams,
                   ci_lower_grams, ci_upper_grams, model_version, is_stale
            FROM weight_trend
            WHERE user_id = ?
        """
        params: list = [user_id]

        if start_date:
            query += " AND date >= ?"
            params.append(start_date.isoformat())
        if end_date:
            query += " AND date <= ?"
            params.append(end_date.isoformat())

        query += " ORDER BY date"

        rows = conn.execute(query, params).fetchall()
        return [TrendQueries._row_to_trend(row) for row in rows]

    @staticmethod
    def find_outdated_dates(
        conn: sqlite3.Connection,
        user_id: int,
        start_date: date,
        end_date: date,
        model_version: int,
    ) -> tuple[list[date], list[date]]:
        """
        Find weigh-in dates in [start_date, end_date] whose trend is not current.

        Returns:
            (stale_dates, missing_dates). A row is stale when flagged or when
            it was computed by a different model version.
        """
        rows = conn.execute(
            """
            SELECT w.measured_at, t.date, t.is_stale, t.model_version
            FROM weight_log w
            LEFT JOIN weight_trend t
                ON t.user_id = w.user_id AND t.date = w.measured_at
            WHERE w.user_id = ? AND w.measured_at >= ? AND w.measured_at <= ?
            ORDER BY w.measured_at
            """,
            (user_id, start_date.isoformat(), end_date.isoformat()),
        ).fetchall()

        stale: list[date] = []
        missing: list[date] = []
        for measured_at, trend_date, is_stale, version in rows:
            day = date.fromisoformat(measured_at)
            if trend_date is None:
                missing.append(day)
            elif is_stale or version != model_version:
                stale.append(day)
        return stale, missing

    @staticmethod
    def count_fresh(
        conn: sqlite3.Connection,
        user_id: int,
        start_date: date,
        end_date: date,
        model_version: int,
    ) -> int:
        row = conn.execute(
            """
            SELECT COUNT(*) FROM weight_trend
            WHERE user_id = ? AND date >= ? AND date <= ?
              AND is_stale = FALSE AND model_version = ?
            """,
            (user_id, start_date.isoformat(), end_date.isoformat(), model_version),
        ).fetchone()
        return row[0] if row else 0
