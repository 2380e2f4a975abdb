"""
Attribution classifier: decides whether consumption in an interval was
internally sourced (PV or battery) or drawn from the grid.

An interval is internal when grid import is below the user's buffer AND an
internal source is producing: PV above ``PV_THRESHOLD_W``, or battery
discharge above ``BATTERY_THRESHOLD_W`` when the user's policy lets battery
energy count as internal. There is no hysteresis; every interval is decided
on its own bucket.

CHANGELOG:
- 2026-03-04: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from pvbilling.models import PricingRules, SystemIntervalData

PV_THRESHOLD_W = 50.0
BATTERY_THRESHOLD_W = 50.0


def is_internal(
    grid_import: float,
    pv_production: float,
    battery_discharge: float,
    rules: PricingRules,
) -> bool:
    """Classify one set of readings (all in watts)."""
    grid_is_low = grid_import < rules.grid_buffer_watts
    has_pv = pv_production > PV_THRESHOLD_W
    has_battery = battery_discharge > BATTERY_THRESHOLD_W
    internal_source = has_pv or (has_battery and rules.allow_battery_pricing)
    return grid_is_low and internal_source


def classify_interval(
    system: SystemIntervalData | None,
    rules: PricingRules,
) -> tuple[bool, float]:
    """Return ``(is_internal, raw_price)`` for one usage bucket.

    A bucket with no system data is external at price 0, which the pricing
    resolver then replaces with the grid fallback price.
    """
    if system is None:
        return False, 0.0
    if is_internal(
        system.grid_import,
        system.pv_production,
        system.battery_discharge,
        rules,
    ):
        return True, rules.internal_price
    return False, system.grid_price
