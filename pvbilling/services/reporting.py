"""
Reporting service: installation profit report and per-user history charts.

The profit report runs the billing calculation for every user with the same
pricing rules a bill would use, so a user without PV billing contributes no
internal profit. The installation series are loaded once and shared by all
users. Export revenue is added on top.

CHANGELOG:
- 2026-03-12: Fetch the installation series once per profit report (STORY-016)
- 2026-03-08: History presets (STORY-013)
- 2026-03-08: Initial creation (STORY-012)

TODO:
- None
"""

import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from pvbilling.db import repository
from pvbilling.engine.calculator import (
    billable_mappings,
    calculate_mapping_results,
    calculate_usage,
    load_system_history,
)
from pvbilling.engine.export import calculate_export_revenue
from pvbilling.engine.history import history_points, preset_range, roll_up
from pvbilling.engine.pricing import build_pricing_rules
from pvbilling.models import HistoryPoint, ProfitReport, UserProfit
from pvbilling.telemetry.adapter import TelemetryAdapter

logger = logging.getLogger(__name__)


async def build_profit_report(
    db: AsyncSession,
    adapter: TelemetryAdapter,
    start: datetime,
    end: datetime,
    interval: timedelta,
) -> ProfitReport:
    """Compute internal-sourcing profit per user plus export revenue.

    The installation series are fetched once for the whole report and
    shared by every user's calculation. Users are sorted by profit, highest
    first.

    Raises:
        ValueError: If ``end`` is not after ``start``.
        SystemNotConfiguredError: If settings are missing or no price series
            can be resolved.
        TelemetryError: If system or export telemetry cannot be fetched.
    """
    if end <= start:
        raise ValueError("end must be after start")

    settings = await repository.get_system_settings(db)
    users = await repository.list_users(db)
    mappings = {u.id: await repository.list_mappings_for_user(db, u.id) for u in users}
    all_mappings = [m for user_mappings in mappings.values() for m in user_mappings]

    export_task = calculate_export_revenue(adapter, settings, start, end)
    if billable_mappings(all_mappings):
        system, export = await asyncio.gather(
            load_system_history(adapter, settings, all_mappings, start, end, interval),
            export_task,
        )
    else:
        system, export = {}, await export_task

    reports = await asyncio.gather(
        *(
            calculate_usage(
                adapter,
                settings,
                mappings[user.id],
                start,
                end,
                interval,
                build_pricing_rules(user, settings),
                system=system,
            )
            for user in users
        )
    )

    user_profits = [
        UserProfit(
            user_id=user.id,
            email=user.email,
            profit=report.totals.cost_internal,
            kwh=report.totals.usage_internal,
        )
        for user, report in zip(users, reports, strict=True)
    ]
    profit_internal = sum(u.profit for u in user_profits)
    user_profits.sort(key=lambda u: u.profit, reverse=True)

    logger.info(
        "Profit report %s .. %s: internal=%.4f export=%.4f (%d users)",
        start.isoformat(),
        end.isoformat(),
        profit_internal,
        export.revenue,
        len(users),
    )
    return ProfitReport(
        start=start,
        end=end,
        total_profit=profit_internal + export.revenue,
        profit_internal=profit_internal,
        profit_export=export.revenue,
        total_internal_kwh=sum(u.kwh for u in user_profits),
        total_export_kwh=export.total_export_kwh,
        users=user_profits,
    )


async def build_history(
    db: AsyncSession,
    adapter: TelemetryAdapter,
    user_id: str,
    preset: str,
    now: datetime | None = None,
) -> list[HistoryPoint]:
    """Return a user's usage/cost chart series for a range preset.

    Raises:
        ValueError: If the preset is unknown.
        NotFoundError: If the user does not exist.
        SystemNotConfiguredError: If settings are missing or no price series
            can be resolved.
        TelemetryError: If the system series cannot be fetched.
    """
    window = preset_range(preset, now)
    user = await repository.get_user(db, user_id)
    settings = await repository.get_system_settings(db)
    mappings = await repository.list_mappings_for_user(db, user_id)
    rules = build_pricing_rules(user, settings)

    results = await calculate_mapping_results(
        adapter, settings, mappings, window.start, window.end, window.bucket, rules
    )
    points = history_points(results)
    if window.roll_up is not None:
        points = roll_up(points, window.roll_up)
    return points
