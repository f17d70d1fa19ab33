"""Weight logging with a drift-aware Kalman trend and materialized trend rows."""

__version__ = "0.1.0"
