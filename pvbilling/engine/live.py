"""
Live estimator: near-real-time power and cost per mapping.

Usage per mapping comes from the mapping's power sensor when it has one (the
last value, converted to kW and scaled by the factor; marked live), otherwise
from the slope of its energy counter over a short look-back window (marked
not live). The price is decided by the attribution classifier on the
installation's instantaneous readings, using the mapping's own price series
for the grid price.

Also exposes :func:`read_system_status`, the instantaneous installation
snapshot shown on the admin dashboard.

CHANGELOG:
- 2026-03-12: Group price from the first member with a positive price (STORY-016)
- 2026-03-07: Fold virtual groups and add system status snapshot (STORY-011)
- 2026-03-06: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from pvbilling.engine.aggregator import group_label
from pvbilling.engine.calculator import billable_mappings
from pvbilling.engine.classifier import is_internal
from pvbilling.engine.normalization import (
    SignConvention,
    to_kilowatts,
    to_price_per_kwh,
    to_watts,
)
from pvbilling.engine.pricing import resolve_price
from pvbilling.errors import TelemetryError
from pvbilling.models import (
    LiveEstimate,
    LiveLine,
    LiveReport,
    PricingRules,
    SensorMapping,
    SystemSettings,
    SystemStatus,
)
from pvbilling.telemetry.adapter import Reading, TelemetryAdapter

logger = logging.getLogger(__name__)

LIVE_WINDOW = timedelta(minutes=15)


@dataclass(frozen=True)
class InstantState:
    """Instantaneous installation readings in watts.

    ``has_grid`` is False when no grid reading is available, in which case
    no interval can be classified as internal.
    """

    grid_import: float = 0.0
    pv_production: float = 0.0
    battery_discharge: float = 0.0
    has_grid: bool = False


async def _last(adapter: TelemetryAdapter, series_id: str | None) -> Reading | None:
    if not series_id:
        return None
    return await adapter.last_value(series_id)


async def read_instant_state(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
) -> InstantState:
    """Read the installation's grid, PV and battery power right now."""
    convention = SignConvention.from_settings(settings)
    import_sensor = settings.grid_import_sensor_id
    grid_sensor = import_sensor or settings.grid_power_sensor_id

    grid, pv, battery = await asyncio.gather(
        _last(adapter, grid_sensor),
        _last(adapter, settings.pv_power_sensor_id),
        _last(adapter, settings.battery_power_sensor_id),
    )

    grid_import = 0.0
    if grid is not None:
        grid_import = to_watts(grid.value, grid.unit)
        if not import_sensor:
            grid_import, _ = convention.split_grid(grid_import)

    return InstantState(
        grid_import=grid_import,
        pv_production=to_watts(pv.value, pv.unit) if pv else 0.0,
        battery_discharge=(
            convention.battery_discharge(to_watts(battery.value, battery.unit))
            if battery
            else 0.0
        ),
        has_grid=grid is not None,
    )


def is_live_internal(state: InstantState, rules: PricingRules) -> bool:
    """Classify the current instant; without grid data it is external."""
    if not state.has_grid:
        return False
    return is_internal(
        state.grid_import, state.pv_production, state.battery_discharge, rules
    )


async def _mapping_usage_kw(
    adapter: TelemetryAdapter,
    mapping: SensorMapping,
    now: datetime,
    window: timedelta,
) -> tuple[float, bool]:
    if mapping.power_sensor_id:
        reading = await adapter.last_value(mapping.power_sensor_id)
        if reading is not None:
            return to_kilowatts(reading.value, reading.unit) * mapping.factor, True

    if not mapping.usage_sensor_id:
        return 0.0, False
    first_last = await adapter.delta_between_first_last(
        mapping.usage_sensor_id, now - window, now
    )
    if first_last is None:
        return 0.0, False
    first, last = first_last
    delta = max(last - first, 0.0)
    hours = window.total_seconds() / 3600
    return delta / hours * mapping.factor, False


async def estimate_mapping(
    adapter: TelemetryAdapter,
    mapping: SensorMapping,
    internal: bool,
    rules: PricingRules,
    now: datetime,
    window: timedelta = LIVE_WINDOW,
) -> LiveEstimate:
    """Estimate current power draw and hourly cost of one mapping.

    Args:
        adapter: Telemetry adapter.
        mapping: Billable mapping.
        internal: Classification of the current instant.
        rules: User pricing rules.
        now: Reference time for the counter look-back.
        window: Counter look-back window.

    Raises:
        TelemetryError: If a series of this mapping cannot be read.
    """
    (usage_kw, live), price_reading = await asyncio.gather(
        _mapping_usage_kw(adapter, mapping, now, window),
        _last(adapter, mapping.price_sensor_id),
    )
    if internal:
        raw_price = rules.internal_price
    elif price_reading is not None:
        raw_price = to_price_per_kwh(price_reading.value, price_reading.unit)
    else:
        raw_price = 0.0
    price = resolve_price(internal, raw_price, rules)

    return LiveEstimate(
        usage_kw=usage_kw,
        cost_per_hour=usage_kw * price,
        current_price=price,
        is_live=live,
    )


@dataclass
class _LiveGroup:
    labels: list[str] = field(default_factory=list)
    usage_kw: float = 0.0
    cost_per_hour: float = 0.0
    current_price: float = 0.0
    is_live: bool = False


async def estimate_live(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
    mappings: list[SensorMapping],
    rules: PricingRules,
    window: timedelta = LIVE_WINDOW,
    now: datetime | None = None,
) -> LiveReport:
    """Build the live dashboard figures for a user's mappings.

    Totals are summed in mapping order. Lines are one per standalone mapping
    plus one per virtual group, sorted by usage descending. The reported
    price is the mean of the positive per-mapping prices, or the grid
    fallback price when there is none.

    Raises:
        TelemetryError: If the installation readings cannot be fetched.
    """
    now = now or datetime.now(UTC)
    billable = billable_mappings(mappings)

    state = await read_instant_state(adapter, settings)
    internal = is_live_internal(state, rules)

    outcomes = await asyncio.gather(
        *(estimate_mapping(adapter, m, internal, rules, now, window) for m in billable),
        return_exceptions=True,
    )

    usage_kw = 0.0
    cost_per_hour = 0.0
    prices: list[float] = []
    standalone: list[LiveLine] = []
    groups: dict[str, _LiveGroup] = {}

    for mapping, outcome in zip(billable, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, TelemetryError):
                raise outcome
            logger.warning("Live estimate for '%s' degraded to zero: %s", mapping.label, outcome)
            outcome = LiveEstimate()

        usage_kw += outcome.usage_kw
        cost_per_hour += outcome.cost_per_hour
        if outcome.current_price > 0:
            prices.append(outcome.current_price)

        if mapping.virtual_group_id:
            group = groups.get(mapping.virtual_group_id)
            if group is None:
                group = _LiveGroup()
                groups[mapping.virtual_group_id] = group
            if group.current_price <= 0 < outcome.current_price:
                group.current_price = outcome.current_price
            group.labels.append(mapping.label)
            group.usage_kw += outcome.usage_kw
            group.cost_per_hour += outcome.cost_per_hour
            group.is_live = group.is_live or outcome.is_live
            continue

        standalone.append(
            LiveLine(
                label=mapping.label,
                usage_kw=outcome.usage_kw,
                cost_per_hour=outcome.cost_per_hour,
                current_price=outcome.current_price,
                is_virtual=mapping.is_virtual,
                is_live=outcome.is_live,
            )
        )

    details = standalone + [
        LiveLine(
            label=group_label(group.labels),
            usage_kw=group.usage_kw,
            cost_per_hour=group.cost_per_hour,
            current_price=group.current_price,
            is_virtual=True,
            is_live=group.is_live,
            component_count=len(group.labels),
        )
        for group in groups.values()
    ]
    details.sort(key=lambda line: line.usage_kw, reverse=True)

    return LiveReport(
        usage_kw=usage_kw,
        cost_per_hour=cost_per_hour,
        price_per_kwh=sum(prices) / len(prices) if prices else rules.grid_fallback_price,
        timestamp=now,
        mapping_count=len(mappings),
        details=details,
    )


async def read_system_status(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
) -> SystemStatus:
    """Read the installation's instantaneous figures in kW.

    PV is reported as an absolute value, battery power positive while
    discharging, and the battery level unscaled (usually percent). A
    bidirectional grid sensor is split into import and export.
    """
    convention = SignConvention.from_settings(settings)
    pv, battery, level, grid_import, grid_export, grid = await asyncio.gather(
        _last(adapter, settings.pv_power_sensor_id),
        _last(adapter, settings.battery_power_sensor_id),
        _last(adapter, settings.battery_level_sensor_id),
        _last(adapter, settings.grid_import_sensor_id),
        _last(adapter, settings.grid_export_sensor_id),
        _last(adapter, None if settings.grid_import_sensor_id else settings.grid_power_sensor_id),
    )

    def kw(reading: Reading | None) -> float:
        return to_kilowatts(reading.value, reading.unit) if reading else 0.0

    status = SystemStatus(
        pv_power=abs(kw(pv)),
        grid_import=kw(grid_import),
        grid_export=kw(grid_export),
        battery_power=convention.battery_discharge(kw(battery)),
        battery_level=level.value if level else 0.0,
    )
    if grid is not None:
        status.grid_import, status.grid_export = convention.split_grid(kw(grid))
    return status
