"""
Telemetry adapter protocol consumed by the engine.

The engine never talks to a telemetry store directly; it depends on this
narrow read-only interface. Every method returns ``None`` when the series has
no data for the request, and raises :class:`~pvbilling.errors.TelemetryError`
only when the store itself cannot be queried.

CHANGELOG:
- 2026-03-03: Add last_over_buckets for counter series (STORY-005)
- 2026-03-03: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol


@dataclass(frozen=True)
class Reading:
    """A single numeric value with the measurement/unit tag it was stored under."""

    value: float
    unit: str = ""


@dataclass(frozen=True)
class Series:
    """Bucketed numeric samples of one series.

    Attributes:
        unit: Measurement/unit tag of the series (e.g. ``"W"``, ``"kWh"``).
        points: ``(bucket_start, value)`` pairs ordered by time. ``value`` is
            ``None`` for buckets the store could not fill.
    """

    unit: str = ""
    points: list[tuple[datetime, float | None]] = field(default_factory=list)


class TelemetryAdapter(Protocol):
    """Read-only access to tagged numeric time series."""

    async def last_value(self, series_id: str) -> Reading | None:
        """Return the most recent value of a series."""
        ...

    async def mean_over_buckets(
        self,
        series_id: str,
        start: datetime,
        end: datetime,
        bucket: timedelta,
        *,
        carry_forward: bool = False,
    ) -> Series | None:
        """Return the mean of a series per bucket over ``[start, end]``.

        Empty buckets are zero-filled, or filled with the previous bucket's
        value when ``carry_forward`` is set.
        """
        ...

    async def last_over_buckets(
        self,
        series_id: str,
        start: datetime,
        end: datetime,
        bucket: timedelta,
    ) -> Series | None:
        """Return the last positive counter reading per bucket, carried forward."""
        ...

    async def delta_between_first_last(
        self,
        series_id: str,
        start: datetime,
        end: datetime,
    ) -> tuple[float, float] | None:
        """Return the first and last positive readings within ``[start, end]``."""
        ...
