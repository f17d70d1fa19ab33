"""Configuration loading."""

from __future__ import annotations

from weighttrend.config.settings import (
    DatabaseConfig,
    DefaultsConfig,
    Settings,
    TrendConfig,
    get_settings,
    reload_settings,
)

__all__ = [
    "DatabaseConfig",
    "DefaultsConfig",
    "Settings",
    "TrendConfig",
    "get_settings",
    "reload_settings",
]
