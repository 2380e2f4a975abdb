"""
Usage and cost calculation over a date range.

``calculate_usage`` is the engine's main entry point. System telemetry is
fetched and merged once; every billable mapping then runs the delta
resolver, classifier and pricing resolver concurrently against that shared,
read-only system history. A mapping whose counter cannot be fetched degrades
to zero and is flagged; a failure fetching the system series fails the whole
calculation.

CHANGELOG:
- 2026-03-12: Accept a shared system history for multi-user reports (STORY-016)
- 2026-03-06: Degrade single mapping failures instead of aborting (STORY-010)
- 2026-03-05: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from pvbilling.engine.aggregator import aggregate
from pvbilling.engine.deltas import resolve_deltas
from pvbilling.engine.merger import fetch_system_history
from pvbilling.engine.pricing import price_interval, summarize
from pvbilling.errors import SystemNotConfiguredError, TelemetryError
from pvbilling.models import (
    CostBreakdown,
    MappingResult,
    PricingRules,
    SensorMapping,
    SystemIntervalData,
    SystemSettings,
    UsageReport,
)
from pvbilling.telemetry.adapter import TelemetryAdapter

logger = logging.getLogger(__name__)


def billable_mappings(mappings: list[SensorMapping]) -> list[SensorMapping]:
    """Drop organizational containers and mappings without a counter."""
    return [m for m in mappings if not m.is_container and m.usage_sensor_id]


def resolve_reference_price_sensor(
    settings: SystemSettings,
    mappings: list[SensorMapping],
) -> str:
    """Pick the single grid price series used for a calculation.

    The installation's reference price sensor wins; otherwise the first
    mapping's price sensor is used.

    Raises:
        SystemNotConfiguredError: If neither is available.
    """
    if settings.reference_price_sensor_id:
        return settings.reference_price_sensor_id
    for mapping in mappings:
        if mapping.price_sensor_id:
            return mapping.price_sensor_id
    raise SystemNotConfiguredError("No price sensor configured")


async def calculate_mapping_cost(
    adapter: TelemetryAdapter,
    mapping: SensorMapping,
    system: dict[datetime, SystemIntervalData],
    start: datetime,
    end: datetime,
    bucket: timedelta,
    rules: PricingRules,
) -> MappingResult:
    """Compute the priced usage of one mapping.

    Args:
        adapter: Telemetry adapter.
        mapping: Billable mapping (must carry a usage sensor).
        system: Merged system state keyed by bucket start.
        start: Range start.
        end: Range end.
        bucket: Bucket size.
        rules: User pricing rules.

    Returns:
        MappingResult: Breakdown, priced intervals and counter diagnostics.

    Raises:
        TelemetryError: If the counter series cannot be fetched.
    """
    series = await adapter.last_over_buckets(mapping.usage_sensor_id, start, end, bucket)
    deltas = resolve_deltas(series, mapping.factor)
    if deltas.outliers:
        logger.warning(
            "Zeroed %d outlier interval(s) for mapping '%s' (%s)",
            deltas.outliers,
            mapping.label,
            mapping.usage_sensor_id,
        )

    intervals = [
        price_interval(ts, usage, system.get(ts), rules) for ts, usage in deltas.usages
    ]
    return MappingResult(
        mapping=mapping,
        breakdown=summarize(intervals),
        intervals=intervals,
        reset_intervals=deltas.resets,
        outlier_intervals=deltas.outliers,
    )


SystemHistory = dict[datetime, SystemIntervalData]


async def load_system_history(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
    mappings: list[SensorMapping],
    start: datetime,
    end: datetime,
    interval: timedelta,
) -> SystemHistory:
    """Fetch and merge the system series once, keyed by bucket start.

    ``mappings`` only decide the reference price series; callers billing
    several users pass all of their mappings so every user shares one
    history.

    Raises:
        SystemNotConfiguredError: If no price series can be resolved.
        TelemetryError: If the system series cannot be fetched.
    """
    price_sensor = resolve_reference_price_sensor(settings, billable_mappings(mappings))
    history = await fetch_system_history(adapter, settings, price_sensor, start, end, interval)
    return {entry.ts: entry for entry in history}


async def calculate_mapping_results(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
    mappings: list[SensorMapping],
    start: datetime,
    end: datetime,
    interval: timedelta,
    rules: PricingRules,
    system: SystemHistory | None = None,
) -> list[MappingResult]:
    """Compute one result per billable mapping, in mapping order.

    ``system`` is a history already loaded by :func:`load_system_history`;
    when omitted it is fetched here.

    Raises:
        SystemNotConfiguredError: If no price series can be resolved.
        TelemetryError: If the system series cannot be fetched.
    """
    billable = billable_mappings(mappings)
    if not billable:
        return []

    if system is None:
        system = await load_system_history(adapter, settings, billable, start, end, interval)

    outcomes = await asyncio.gather(
        *(
            calculate_mapping_cost(adapter, m, system, start, end, interval, rules)
            for m in billable
        ),
        return_exceptions=True,
    )

    results: list[MappingResult] = []
    for mapping, outcome in zip(billable, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, TelemetryError):
                raise outcome
            logger.warning(
                "Mapping '%s' (%s) degraded to zero: %s",
                mapping.label,
                mapping.usage_sensor_id,
                outcome,
            )
            results.append(
                MappingResult(mapping=mapping, breakdown=CostBreakdown(), degraded=True)
            )
        else:
            results.append(outcome)
    return results


async def calculate_usage(
    adapter: TelemetryAdapter,
    settings: SystemSettings,
    mappings: list[SensorMapping],
    start: datetime,
    end: datetime,
    interval: timedelta,
    rules: PricingRules,
    system: SystemHistory | None = None,
) -> UsageReport:
    """Calculate usage, cost and the internal/external split for a range.

    Args:
        adapter: Telemetry adapter.
        settings: Installation settings.
        mappings: The user's sensor mappings (containers are skipped).
        start: Range start.
        end: Range end.
        interval: Bucket size.
        rules: User pricing rules (see ``build_pricing_rules``).
        system: Optional shared system history from
            :func:`load_system_history`; fetched when omitted.

    Returns:
        UsageReport: Totals, profit, snapshot lines and per-mapping results.

    Raises:
        ValueError: If ``end`` is not after ``start``.
        SystemNotConfiguredError: If no price series can be resolved.
        TelemetryError: If the system series cannot be fetched.
    """
    if end <= start:
        raise ValueError("end must be after start")

    results = await calculate_mapping_results(
        adapter, settings, mappings, start, end, interval, rules, system
    )
    totals, profit, lines = aggregate(results)
    degraded = sum(1 for r in results if r.degraded)
    logger.info(
        "Calculated %d mapping(s) %s .. %s: usage=%.4f cost=%.4f profit=%.4f degraded=%d",
        len(results),
        start.isoformat(),
        end.isoformat(),
        totals.usage,
        totals.cost,
        profit,
        degraded,
    )
    return UsageReport(
        start=start,
        end=end,
        totals=totals,
        profit=profit,
        lines=lines,
        mappings=results,
    )
