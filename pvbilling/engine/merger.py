"""
Series merger: builds the per-bucket system state for one calculation.

The price, grid, battery and PV series are requested concurrently as bucketed
means, normalized to the engine's sign and unit convention, and merged by
bucket timestamp into an ordered list of :class:`SystemIntervalData`.

Buckets a series does not cover are zero for that field, except the grid
price, which is carried forward from the previous known value. A sensor that
is not configured simply leaves its field at zero ("no internal source").

CHANGELOG:
- 2026-03-04: Split bidirectional grid sensor by sign (STORY-007)
- 2026-03-03: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from pvbilling.engine.normalization import (
    SignConvention,
    normalize_power_series,
    normalize_price_series,
)
from pvbilling.models import SystemIntervalData, SystemSettings
from pvbilling.telemetry.adapter import Series, TelemetryAdapter
from pvbilling.timeutil import bucket_starts, ensure_utc

logger = logging.getLogger(__name__)


async def _fetch_mean(
    adapter: TelemetryAdapter,
    series_id: str | None,
    start: datetime,
    end: datetime,
    bucket: timedelta,
    *,
    carry_forward: bool = False,
) -> Series | None:
    if not series_id:
        return None
    return await adapter.mean_over_buckets(
        series_id, start, end, bucket, carry_forward=carry_forward
    )


async def fetch_system_history(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
    price_sensor_id: str,
    start: datetime,
    end: datetime,
    bucket: timedelta,
) -> list[SystemIntervalData]:
    """Fetch and merge the installation's system series for a range.

    Args:
        adapter: Telemetry adapter.
        settings: Installation settings naming the system sensors.
        price_sensor_id: Reference grid price series for this calculation.
        start: Range start.
        end: Range end.
        bucket: Bucket size.

    Returns:
        list[SystemIntervalData]: One entry per bucket, ordered by time.

    Raises:
        TelemetryError: If any system series cannot be fetched.
    """
    import_sensor = settings.grid_import_sensor_id
    bidirectional = not import_sensor and bool(settings.grid_power_sensor_id)
    grid_sensor = import_sensor or settings.grid_power_sensor_id

    price, grid, battery, pv = await asyncio.gather(
        _fetch_mean(adapter, price_sensor_id, start, end, bucket, carry_forward=True),
        _fetch_mean(adapter, grid_sensor, start, end, bucket),
        _fetch_mean(adapter, settings.battery_power_sensor_id, start, end, bucket),
        _fetch_mean(adapter, settings.pv_power_sensor_id, start, end, bucket),
    )

    intervals = merge_series(
        start,
        end,
        bucket,
        price=normalize_price_series(price),
        grid=normalize_power_series(grid),
        battery=normalize_power_series(battery),
        pv=normalize_power_series(pv),
        convention=SignConvention.from_settings(settings),
        grid_bidirectional=bidirectional,
    )
    logger.debug(
        "Merged %d system buckets (%s .. %s, bucket=%s)",
        len(intervals),
        start.isoformat(),
        end.isoformat(),
        bucket,
    )
    return intervals


def _as_map(series: Series | None) -> dict[datetime, float]:
    if series is None:
        return {}
    return {
        ensure_utc(ts): value for ts, value in series.points if value is not None
    }


def merge_series(
    start: datetime,
    end: datetime,
    bucket: timedelta,
    *,
    price: Series | None,
    grid: Series | None,
    battery: Series | None,
    pv: Series | None,
    convention: SignConvention,
    grid_bidirectional: bool = False,
) -> list[SystemIntervalData]:
    """Merge normalized system series into per-bucket system state.

    Every bucket of the range is emitted, plus any timestamp a series reports
    off the bucket grid. Power series must already be in watts and prices in
    currency per kWh.
    """
    prices = _as_map(price)
    grids = _as_map(grid)
    batteries = _as_map(battery)
    pvs = _as_map(pv)

    timestamps = set(bucket_starts(start, end, bucket))
    for values in (prices, grids, batteries, pvs):
        timestamps.update(values)

    merged: list[SystemIntervalData] = []
    last_price = 0.0
    for ts in sorted(timestamps):
        if ts in prices:
            last_price = prices[ts]

        grid_value = grids.get(ts, 0.0)
        if grid_bidirectional:
            grid_import, _ = convention.split_grid(grid_value)
        else:
            grid_import = grid_value

        merged.append(
            SystemIntervalData(
                ts=ts,
                grid_price=last_price,
                grid_import=grid_import,
                battery_discharge=convention.battery_discharge(batteries.get(ts, 0.0)),
                pv_production=pvs.get(ts, 0.0),
            )
        )
    return merged
