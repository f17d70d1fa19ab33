"""Settings for the trend model, the database and CLI defaults.

Settings live in ``~/.weighttrend/config.yaml``. Every key is optional; a
missing file, section or key keeps the built-in default. Example::

    database:
      path: ~/data/weights.db
    trend:
      active_horizon_days: 90
      drift_half_life_days: 21
    defaults:
      weight_unit: lb
      time_zone: America/Chicago
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

CONFIG_FILENAME = "config.yaml"


def _default_config_dir() -> Path:
    return Path.home() / ".weighttrend"


def _default_config_path() -> Path:
    return _default_config_dir() / CONFIG_FILENAME


def _default_db_path() -> Path:
    return _default_config_dir() / "weighttrend.db"


@dataclass
class DatabaseConfig:
    """Where the SQLite store lives."""

    path: Path = field(default_factory=_default_db_path)


@dataclass
class TrendConfig:
    """Trend model and materialization parameters (all weights in kg)."""

    # Materialization window
    active_horizon_days: int = 120
    warmup_days: int = 30

    # Drift and smoothing time scales
    drift_half_life_days: float = 30.0
    ewma_time_constant_days: float = 7.0
    max_prediction_gap_days: float = 14.0

    # Noise defaults (used below 3 observations) and bounds
    measurement_std: float = 0.9
    process_std: float = 0.1
    min_measurement_std: float = 0.25
    max_measurement_std: float = 3.5
    min_process_std: float = 0.02
    max_process_std: float = 0.6
    max_process_to_measurement_ratio: float = 0.35

    # Summary
    low_volatility_std: float = 0.5
    medium_volatility_std: float = 1.2
    recent_window_points: int = 14

    # Bump to invalidate every stored trend row
    model_version: int = 1

    @property
    def default_measurement_variance(self) -> float:
        return self.measurement_std**2

    @property
    def default_process_variance(self) -> float:
        return self.process_std**2


@dataclass
class DefaultsConfig:
    """Defaults applied when a profile or command does not say otherwise."""

    weight_unit: str = "kg"  # "kg" or "lb"
    time_zone: str = "UTC"
    output_format: str = "table"  # "table" or "json"


def _apply_section(target: Any, values: Optional[dict]) -> None:
    """Copy known keys onto a config dataclass, cast to each default's type."""
    for spec in fields(target):
        if not values or spec.name not in values or values[spec.name] is None:
            continue
        current = getattr(target, spec.name)
        raw = values[spec.name]
        if isinstance(current, Path):
            setattr(target, spec.name, Path(raw).expanduser())
        else:
            setattr(target, spec.name, type(current)(raw))


def _section_to_dict(source: Any) -> dict[str, Any]:
    return {
        spec.name: str(value) if isinstance(value, Path) else value
        for spec in fields(source)
        for value in [getattr(source, spec.name)]
    }


@dataclass
class Settings:
    """All settings, one attribute per YAML section."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Read settings from YAML, falling back to defaults.

        Args:
            config_path: Path to config.yaml (default: ~/.weighttrend/config.yaml)
        """
        path = config_path or _default_config_path()
        settings = cls()
        if not path.exists():
            return settings

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        _apply_section(settings.database, data.get("database"))
        _apply_section(settings.trend, data.get("trend"))
        _apply_section(settings.defaults, data.get("defaults"))
        return settings

    def save(self, config_path: Optional[Path] = None) -> None:
        """Write every setting to YAML, creating the directory if needed."""
        path = config_path or _default_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "database": _section_to_dict(self.database),
            "trend": _section_to_dict(self.trend),
            "defaults": _section_to_dict(self.defaults),
        }
        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, read from disk on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings() -> Settings:
    """Re-read settings from disk, replacing the process-wide instance."""
    global _settings
    _settings = Settings.load()
    return _settings
