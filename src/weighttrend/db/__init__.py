"""Database access."""

from __future__ import annotations

from weighttrend.db.connection import DatabaseConnection, get_db, set_db

__all__ = ["DatabaseConnection", "get_db", "set_db"]
