"""
Interval string helpers shared by configuration, engine and telemetry adapter.

Bucket sizes are written the way the telemetry store expects them
(``15m``, ``1h``, ``1d``) and parsed into :class:`datetime.timedelta` for
arithmetic inside the engine.

CHANGELOG:
- 2026-03-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_INTERVAL_RE = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$")

_UNIT_SECONDS: dict[str, int] = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


def parse_interval(value: str) -> timedelta:
    """Parse an interval string such as ``"1h"`` into a timedelta.

    Args:
        value: Interval literal made of a positive integer and one of the
            units ``s``, ``m``, ``h``, ``d`` or ``w``.

    Returns:
        timedelta: The parsed duration.

    Raises:
        ValueError: If the literal is malformed or not positive.
    """
    match = _INTERVAL_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid interval '{value}' (expected e.g. '15m', '1h', '1d')")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError(f"Interval must be positive (got '{value}')")
    return timedelta(seconds=amount * _UNIT_SECONDS[match.group(2)])


def format_interval(delta: timedelta) -> str:
    """Render a timedelta as the largest whole-unit interval literal.

    ``timedelta(hours=1)`` becomes ``"1h"``, ``timedelta(minutes=90)``
    becomes ``"90m"``.

    Raises:
        ValueError: If the duration is not a positive whole number of seconds.
    """
    seconds = delta.total_seconds()
    if seconds <= 0 or seconds != int(seconds):
        raise ValueError(f"Cannot format interval {delta!r}")
    total = int(seconds)
    for unit in ("w", "d", "h", "m"):
        size = _UNIT_SECONDS[unit]
        if total % size == 0:
            return f"{total // size}{unit}"
    return f"{total}s"


def ensure_utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def floor_to_bucket(ts: datetime, bucket: timedelta) -> datetime:
    """Floor a timestamp to the epoch-aligned bucket grid the store groups on."""
    ts = ensure_utc(ts)
    return _EPOCH + ((ts - _EPOCH) // bucket) * bucket


def bucket_starts(start: datetime, end: datetime, bucket: timedelta) -> list[datetime]:
    """Return every bucket start from the bucket containing ``start`` up to ``end``."""
    current = floor_to_bucket(start, bucket)
    end = ensure_utc(end)
    starts: list[datetime] = []
    while current <= end:
        starts.append(current)
        current += bucket
    return starts
