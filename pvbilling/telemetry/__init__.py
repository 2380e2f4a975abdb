"""
Telemetry store access.

Exports the adapter protocol used by the engine and the InfluxDB
implementation used in production.

CHANGELOG:
- 2026-03-03: Initial creation (STORY-004)

TODO:
- None
"""

from pvbilling.telemetry.adapter import Reading, Series, TelemetryAdapter
from pvbilling.telemetry.influx import InfluxTelemetry

__all__ = ["InfluxTelemetry", "Reading", "Series", "TelemetryAdapter"]
