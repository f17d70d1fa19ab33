"""Weight unit conversions.

The trend model works exclusively in kilograms. Weigh-ins are stored as
integer grams, and conversion to the user's display unit happens only at
the serialization boundary (CLI output, read API payloads).
"""

from __future__ import annotations

import math

from weighttrend.tracking.numeric import is_finite_number, round_half_up, round_to_int

GRAMS_PER_KG = 1000.0
GRAMS_PER_LB = 453.59237
POUNDS_PER_KG = 2.2046226218487757

VALID_WEIGHT_UNITS = ("kg", "lb")


def normalize_unit(unit: str) -> str:
    """
    Normalize a unit label to 'kg' or 'lb'.

    Accepts common spellings ('KG', 'lbs', 'pounds').
    """
    label = unit.strip().lower()
    if label in ("kg", "kgs", "kilogram", "kilograms"):
        return "kg"
    if label in ("lb", "lbs", "pound", "pounds"):
        return "lb"
    raise ValueError(f"weight unit must be one of {VALID_WEIGHT_UNITS}, got '{unit}'")


def kg_to_lb(kilograms: float) -> float:
    return kilograms * POUNDS_PER_KG


def lb_to_kg(pounds: float) -> float:
    return pounds / POUNDS_PER_KG


def kg_to_unit(kilograms: float, unit: str) -> float:
    """Convert a kilogram value to the requested display unit (no rounding)."""
    if normalize_unit(unit) == "lb":
        return kg_to_lb(kilograms)
    return kilograms


def unit_to_kg(value: float, unit: str) -> float:
    """Convert a value in the given unit to kilograms."""
    if normalize_unit(unit) == "lb":
        return lb_to_kg(value)
    return value


def grams_to_kg(grams: float) -> float:
    return grams / GRAMS_PER_KG


def kg_to_grams(kilograms: float) -> int:
    """Convert model output in kg to rounded integer grams for persistence."""
    return round_to_int(kilograms * GRAMS_PER_KG)


def parse_weight_to_grams(value: float, unit: str) -> int:
    """
    Convert a user-entered weight to integer grams.

    The entered value is rounded to one decimal place first, matching what
    a bathroom scale displays.

    Raises:
        ValueError: If the weight is not finite or not positive
    """
    if not is_finite_number(value):
        raise ValueError("Invalid weight")

    rounded = round_half_up(float(value), 1)
    if rounded <= 0:
        raise ValueError("Weight must be positive")

    if normalize_unit(unit) == "lb":
        return round_to_int(rounded * GRAMS_PER_LB)
    return round_to_int(rounded * GRAMS_PER_KG)


def grams_to_display(grams: float, unit: str) -> float:
    """Convert stored grams to the display unit, rounded to 0.1."""
    if not math.isfinite(grams):
        raise ValueError("Invalid weight")
    if normalize_unit(unit) == "lb":
        return round_half_up(grams / GRAMS_PER_LB, 1)
    return round_half_up(grams / GRAMS_PER_KG, 1)
