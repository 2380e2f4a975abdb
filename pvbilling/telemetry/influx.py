"""
InfluxDB 1.x telemetry adapter (InfluxQL over HTTP).

Home Assistant writes every sensor into a measurement named after its unit
(``W``, ``kW``, ``kWh``, ``EUR/kWh``...) with the sensor id in the
``entity_id`` tag. Queries therefore select ``FROM /.*/`` filtered on the tag
and report the measurement name back as the series unit.

Absence of data is reported as ``None``. HTTP errors, timeouts and
connection failures raise :class:`~pvbilling.errors.TelemetryError`.

CHANGELOG:
- 2026-03-12: Map every httpx transport error and undecodable body to TelemetryError (STORY-016)
- 2026-03-05: Share one AsyncClient per adapter instance (STORY-010)
- 2026-03-03: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from pvbilling.errors import TelemetryError
from pvbilling.telemetry.adapter import Reading, Series
from pvbilling.timeutil import format_interval

logger = logging.getLogger(__name__)


def _sanitize(value: str) -> str:
    """Escape a tag value for use inside single quotes in InfluxQL."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _fmt_time(ts: datetime) -> str:
    """Render a datetime as an RFC3339 UTC literal."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _first_series(payload: dict[str, Any]) -> dict[str, Any] | None:
    """Return the first series of the first statement that carries values."""
    results = payload.get("results") or []
    if not results:
        return None
    for series in results[0].get("series") or []:
        if series.get("values"):
            return series
    return None


def _to_float(value: Any) -> float | None:
    """Coerce an InfluxDB cell to float; non-numeric cells become None."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


class InfluxTelemetry:
    """Telemetry adapter backed by an InfluxDB 1.x HTTP endpoint.

    Args:
        base_url: InfluxDB base URL, e.g. ``http://influx:8086``.
        database: Database name holding the Home Assistant series.
        token: Optional ``user:password`` credentials for basic auth.
        timeout_s: Per-request timeout in seconds.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject one
            with a ``MockTransport``).

    Usage::

        async with InfluxTelemetry("http://influx:8086", "homeassistant") as tm:
            reading = await tm.last_value("sensor.grid_power")
    """

    def __init__(
        self,
        base_url: str,
        database: str,
        token: str = "",
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._database = database
        auth: httpx.BasicAuth | None = None
        if token and ":" in token:
            user, password = token.split(":", maxsplit=1)
            auth = httpx.BasicAuth(user, password)
        self._client = client or httpx.AsyncClient(timeout=timeout_s, auth=auth)
        self._owns_client = client is None

    async def __aenter__(self) -> InfluxTelemetry:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public API (TelemetryAdapter)
    # ------------------------------------------------------------------

    async def last_value(self, series_id: str) -> Reading | None:
        if not series_id:
            return None
        q = (
            f"SELECT last(\"value\") AS val FROM /.*/ "
            f"WHERE \"entity_id\" = '{_sanitize(series_id)}'"
        )
        series = _first_series(await self.query(q))
        if series is None:
            return None
        value = _to_float(series["values"][0][1])
        if value is None:
            return None
        return Reading(value=value, unit=series.get("name", ""))

    async def mean_over_buckets(
        self,
        series_id: str,
        start: datetime,
        end: datetime,
        bucket: timedelta,
        *,
        carry_forward: bool = False,
    ) -> Series | None:
        fill = "previous" if carry_forward else "0"
        q = (
            f"SELECT mean(\"value\") AS val FROM /.*/ "
            f"WHERE \"entity_id\" = '{_sanitize(series_id)}' "
            f"AND time >= '{_fmt_time(start)}' AND time <= '{_fmt_time(end)}' "
            f"GROUP BY time({format_interval(bucket)}) fill({fill})"
        )
        return self._to_series(await self.query(q))

    async def last_over_buckets(
        self,
        series_id: str,
        start: datetime,
        end: datetime,
        bucket: timedelta,
    ) -> Series | None:
        q = (
            f"SELECT last(\"value\") AS val FROM /.*/ "
            f"WHERE \"entity_id\" = '{_sanitize(series_id)}' AND \"value\" > 0 "
            f"AND time >= '{_fmt_time(start)}' AND time <= '{_fmt_time(end)}' "
            f"GROUP BY time({format_interval(bucket)}) fill(previous)"
        )
        return self._to_series(await self.query(q))

    async def delta_between_first_last(
        self,
        series_id: str,
        start: datetime,
        end: datetime,
    ) -> tuple[float, float] | None:
        q = (
            f"SELECT first(\"value\") AS f, last(\"value\") AS l FROM /.*/ "
            f"WHERE \"entity_id\" = '{_sanitize(series_id)}' AND \"value\" > 0 "
            f"AND time >= '{_fmt_time(start)}' AND time <= '{_fmt_time(end)}'"
        )
        series = _first_series(await self.query(q))
        if series is None:
            return None
        row = series["values"][0]
        first, last = _to_float(row[1]), _to_float(row[2])
        if first is None or last is None:
            return None
        return first, last

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def query(self, q: str) -> dict[str, Any]:
        """Run one InfluxQL statement and return the decoded JSON body.

        Raises:
            TelemetryError: On transport errors, timeouts, non-200 responses,
                undecodable bodies, or an ``error`` entry in the statement result.
        """
        try:
            response = await self._client.get(
                f"{self._base_url}/query",
                params={"db": self._database, "q": q, "epoch": "s"},
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise TelemetryError(f"InfluxDB unreachable: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TelemetryError(f"InfluxDB transport error: {exc}") from exc

        if response.status_code != 200:
            raise TelemetryError(f"InfluxDB query failed: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TelemetryError(f"InfluxDB returned a non-JSON body: {exc}") from exc
        results = payload.get("results") or []
        if results and results[0].get("error"):
            raise TelemetryError(f"InfluxDB query error: {results[0]['error']}")
        return payload

    @staticmethod
    def _to_series(payload: dict[str, Any]) -> Series | None:
        """Convert a GROUP BY time() result into a :class:`Series`."""
        series = _first_series(payload)
        if series is None:
            return None
        points = [
            (datetime.fromtimestamp(row[0], tz=UTC), _to_float(row[1]))
            for row in series["values"]
        ]
        return Series(unit=series.get("name", ""), points=points)
