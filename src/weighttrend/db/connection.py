"""SQLite access: one short-lived connection per unit of work."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from weighttrend.db.schema import get_schema_sql

# Seconds a writer waits on a locked database before raising
BUSY_TIMEOUT_SECONDS = 30.0


class DatabaseConnection:
    """Opens connections to one SQLite file.

    Connections are never shared between threads: every
    ``get_connection()`` block gets its own, so the CLI and concurrent
    trend recomputes can use the same instance.
    """

    def __init__(self, db_path: Union[Path, str]):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that is committed on exit, rolled back on error.

        Example:
            with db.get_connection() as conn:
                WeightQueries.add_weight(conn, user_id, 80500, date.today())
        """
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize_schema(self) -> None:
        """Create tables and indexes that do not exist yet."""
        with self.get_connection() as conn:
            conn.executescript(get_schema_sql())


_db: Optional[DatabaseConnection] = None


def get_db() -> DatabaseConnection:
    """Process-wide database, located by ``settings.database.path``."""
    global _db
    if _db is None:
        from weighttrend.config import get_settings

        _db = DatabaseConnection(get_settings().database.path)
    return _db


def set_db(db: Optional[DatabaseConnection]) -> None:
    """Replace the process-wide database (None: resolve again from settings)."""
    global _db
    _db = db
