"""
Counter delta resolver.

Turns the per-bucket readings of a monotonic energy counter into per-bucket
consumption, robust to counter resets and sampling noise:

- ``delta = current - previous``; a negative delta is a counter reset and is
  clamped to 0;
- ``usage = delta * factor`` (factor may be negative to subtract a meter);
- ``|usage| > OUTLIER_CEILING`` is an implausible spike and is zeroed;
- ``|usage| <= NOISE_FLOOR`` is dropped from the output entirely.

The first reading only seeds ``previous``; usage is attributed to the bucket
of the later reading. Empty buckets (``None``) are skipped without touching
``previous``.

CHANGELOG:
- 2026-03-04: Expose reset and outlier counts (STORY-008)
- 2026-03-03: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pvbilling.telemetry.adapter import Series
from pvbilling.timeutil import ensure_utc

# Counter units (kWh) per interval.
OUTLIER_CEILING = 500.0
NOISE_FLOOR = 1e-4


@dataclass
class DeltaResult:
    """Per-bucket usage of one counter.

    Attributes:
        usages: ``(bucket_start, usage)`` pairs, ordered by time, with noise
            already removed.
        resets: Number of buckets where the counter went backwards.
        outliers: Number of buckets zeroed by the sanity ceiling.
    """

    usages: list[tuple[datetime, float]] = field(default_factory=list)
    resets: int = 0
    outliers: int = 0

    @property
    def total(self) -> float:
        return sum(usage for _, usage in self.usages)


def resolve_deltas(series: Series | None, factor: float = 1.0) -> DeltaResult:
    """Compute per-bucket usage from counter readings.

    Args:
        series: Counter readings per bucket (``None`` when the counter has no
            data in the range).
        factor: Signed scaling factor applied after reset clamping.

    Returns:
        DeltaResult: Usage pairs plus reset/outlier counters.
    """
    result = DeltaResult()
    if series is None:
        return result

    previous: float | None = None
    for ts, value in series.points:
        if value is None:
            continue
        if previous is None:
            previous = value
            continue

        delta = value - previous
        previous = value
        if delta < 0:
            result.resets += 1
            delta = 0.0

        usage = delta * factor
        if abs(usage) > OUTLIER_CEILING:
            result.outliers += 1
            usage = 0.0

        if abs(usage) <= NOISE_FLOOR:
            continue
        result.usages.append((ensure_utc(ts), usage))
    return result
