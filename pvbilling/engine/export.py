"""
Export revenue calculator.

Revenue from energy fed into the grid is the period delta of the dedicated
export energy counter times the export price. Installations with only a
bidirectional grid power sensor cannot be integrated reliably from bucketed
means, so export revenue is reported as skipped for them.

CHANGELOG:
- 2026-03-06: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import datetime

from pvbilling.models import ExportRevenue, SystemSettings
from pvbilling.telemetry.adapter import TelemetryAdapter

logger = logging.getLogger(__name__)


async def calculate_export_revenue(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
    start: datetime,
    end: datetime,
) -> ExportRevenue:
    """Calculate grid export energy and revenue for a period.

    Args:
        adapter: Telemetry adapter.
        settings: Installation settings (export counter and export price).
        start: Period start.
        end: Period end.

    Returns:
        ExportRevenue: kWh exported and revenue; ``skipped`` is set when only
        a bidirectional grid sensor is configured.

    Raises:
        TelemetryError: If the export counter cannot be read.
    """
    if not settings.grid_export_kwh_sensor_id:
        if settings.grid_power_sensor_id:
            logger.warning(
                "Export revenue skipped: a dedicated export energy counter is required "
                "(only bidirectional grid sensor %s configured)",
                settings.grid_power_sensor_id,
            )
            return ExportRevenue(skipped=True)
        return ExportRevenue()

    first_last = await adapter.delta_between_first_last(
        settings.grid_export_kwh_sensor_id, start, end
    )
    if first_last is None:
        return ExportRevenue()

    first, last = first_last
    exported = max(last - first, 0.0)
    return ExportRevenue(
        total_export_kwh=exported,
        revenue=exported * settings.grid_export_price,
    )
