"""SQLite database schema definitions."""

SCHEMA_SQL = """
-- User profiles: display unit and home time zone
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    weight_unit TEXT NOT NULL DEFAULT 'kg' CHECK(weight_unit IN ('kg', 'lb')),
    time_zone TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Weigh-ins, one per user per calendar day, stored as integer grams
CREATE TABLE IF NOT EXISTS weight_log (
    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    weight_grams INTEGER NOT NULL CHECK(weight_grams > 0),
    measured_at DATE NOT NULL,
    notes TEXT,
    UNIQUE(user_id, measured_at),
    FOREIGN KEY (user_id) REFERENCES user_profiles(user_id)
);

CREATE INDEX IF NOT EXISTS idx_weight_log_user_date ON weight_log(user_id, measured_at);

-- Materialized Kalman trend for active-horizon weigh-ins
CREATE TABLE IF NOT EXISTS weight_trend (
    user_id INTEGER NOT NULL,
    date DATE NOT NULL,
    log_id INTEGER NOT NULL,
    trend_weight_grams INTEGER NOT NULL,
    trend_std_grams INTEGER NOT NULL,
    ci_lower_grams INTEGER NOT NULL,
    ci_upper_grams INTEGER NOT NULL,
    model_version INTEGER NOT NULL DEFAULT 1,
    is_stale BOOLEAN NOT NULL DEFAULT FALSE,
    PRIMARY KEY (user_id, date),
    FOREIGN KEY (user_id) REFERENCES user_profiles(user_id),
    FOREIGN KEY (log_id) REFERENCES weight_log(log_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_weight_trend_user_stale ON weight_trend(user_id, is_stale);
"""


def get_schema_sql() -> str:
    """Return the complete schema SQL."""
    return SCHEMA_SQL
