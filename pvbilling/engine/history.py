"""
History series for usage/cost charts.

Per-bucket usage and cost are summed across a user's mappings from the
priced intervals a calculation already produced, then optionally rolled up
to days or months. Range presets map the chart selector (``today``,
``yesterday``, ``week``, ``month``, ``year``) to a UTC range, a bucket size
and a roll-up.

CHANGELOG:
- 2026-03-08: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal

from pvbilling.models import HistoryPoint, MappingResult
from pvbilling.timeutil import ensure_utc

RollUp = Literal["day", "month"]


@dataclass(frozen=True)
class HistoryRange:
    """Resolved chart range.

    Attributes:
        start: Inclusive range start (UTC).
        end: Range end (UTC).
        bucket: Bucket size used for the calculation.
        roll_up: Optional coarser period the points are summed into.
    """

    start: datetime
    end: datetime
    bucket: timedelta
    roll_up: RollUp | None = None


PRESETS = ("today", "yesterday", "week", "month", "year")


def _start_of_day(ts: datetime) -> datetime:
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def _start_of_month(ts: datetime) -> datetime:
    return _start_of_day(ts).replace(day=1)


def _next_month(ts: datetime) -> datetime:
    if ts.month == 12:
        return ts.replace(year=ts.year + 1, month=1)
    return ts.replace(month=ts.month + 1)


def preset_range(preset: str, now: datetime | None = None) -> HistoryRange:
    """Resolve a chart preset to a range.

    Raises:
        ValueError: If the preset is unknown.
    """
    now = ensure_utc(now or datetime.now(UTC))
    today = _start_of_day(now)
    hour = timedelta(hours=1)
    day = timedelta(days=1)

    if preset == "today":
        return HistoryRange(today, today + day, hour)
    if preset == "yesterday":
        return HistoryRange(today - day, today, hour)
    if preset == "week":
        return HistoryRange(today - 6 * day, today + day, day, "day")
    if preset == "month":
        start = _start_of_month(now)
        return HistoryRange(start, _next_month(start), day, "day")
    if preset == "year":
        start = _start_of_month(now).replace(month=1)
        return HistoryRange(start, start.replace(year=start.year + 1), day, "month")
    raise ValueError(f"Unknown history preset '{preset}' (expected one of {', '.join(PRESETS)})")


def history_points(results: list[MappingResult]) -> list[HistoryPoint]:
    """Sum priced intervals per bucket across mappings, ordered by time."""
    buckets: dict[datetime, list[float]] = {}
    for result in results:
        for interval in result.intervals:
            sums = buckets.setdefault(interval.ts, [0.0, 0.0])
            sums[0] += interval.usage
            sums[1] += interval.cost
    return [
        HistoryPoint(ts=ts, usage=usage, cost=cost)
        for ts, (usage, cost) in sorted(buckets.items())
    ]


def roll_up(points: list[HistoryPoint], period: RollUp) -> list[HistoryPoint]:
    """Sum points into calendar days or months (UTC)."""
    truncate = _start_of_day if period == "day" else _start_of_month
    rolled: dict[datetime, HistoryPoint] = {}
    for point in points:
        key = truncate(ensure_utc(point.ts))
        current = rolled.get(key)
        if current is None:
            rolled[key] = HistoryPoint(ts=key, usage=point.usage, cost=point.cost)
        else:
            current.usage += point.usage
            current.cost += point.cost
    return [rolled[key] for key in sorted(rolled)]
