"""
Unit and sign normalization applied once, at ingestion of raw telemetry.

Series arrive from the telemetry store in whatever unit and sign convention
the installation's sensors use. Everything downstream (merger, classifier,
live estimator) works on one convention:

- power in watts for bucketed system data, kilowatts for live estimates;
- prices per kWh in the main currency unit;
- battery power positive while discharging;
- grid power positive while importing.

This is a pure module: no I/O, no clock.

CHANGELOG:
- 2026-03-04: Add grid sign inversion for bidirectional meters (STORY-007)
- 2026-03-03: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

from pvbilling.models import SystemSettings
from pvbilling.telemetry.adapter import Series

# Measurement names Home Assistant uses for watt-valued sensors.
WATT_UNITS = frozenset({"W", "power", "Leistung", "Watt"})
KILOWATT_UNITS = frozenset({"kW"})
CENT_PRICE_UNITS = frozenset({"ct/kWh"})


def to_watts(value: float, unit: str) -> float:
    """Convert a power value to watts. Unknown units are assumed to be watts."""
    if unit in KILOWATT_UNITS:
        return value * 1000.0
    return value


def to_kilowatts(value: float, unit: str) -> float:
    """Convert a power value to kilowatts.

    Watt-family units are divided by 1000; every other unit passes through
    unchanged (kW sensors, and sensors whose unit is unknown).
    """
    if unit in WATT_UNITS:
        return value / 1000.0
    return value


def to_price_per_kwh(value: float, unit: str) -> float:
    """Convert a price to main currency units per kWh (cents are divided by 100)."""
    if unit in CENT_PRICE_UNITS:
        return value / 100.0
    return value


@dataclass(frozen=True)
class SignConvention:
    """Sign flips required to reach the engine's convention.

    Attributes:
        invert_battery: Battery sensor reports charging as positive.
        invert_grid: Bidirectional grid sensor reports export as positive.
    """

    invert_battery: bool = False
    invert_grid: bool = False

    @classmethod
    def from_settings(cls, settings: SystemSettings) -> SignConvention:
        return cls(
            invert_battery=settings.invert_battery_sign,
            invert_grid=settings.invert_grid_sign,
        )

    def battery_discharge(self, value: float) -> float:
        """Return battery power with discharging positive."""
        return -value if self.invert_battery else value

    def split_grid(self, value: float) -> tuple[float, float]:
        """Split bidirectional grid power into ``(import, export)``, both >= 0."""
        if self.invert_grid:
            value = -value
        if value > 0:
            return value, 0.0
        return 0.0, -value


def normalize_power_series(series: Series | None) -> Series | None:
    """Return a copy of a power series with every value converted to watts."""
    if series is None:
        return None
    return Series(
        unit="W",
        points=[
            (ts, None if value is None else to_watts(value, series.unit))
            for ts, value in series.points
        ],
    )


def normalize_price_series(series: Series | None) -> Series | None:
    """Return a copy of a price series in main currency units per kWh."""
    if series is None:
        return None
    return Series(
        unit="EUR/kWh",
        points=[
            (ts, None if value is None else to_price_per_kwh(value, series.unit))
            for ts, value in series.points
        ],
    )
