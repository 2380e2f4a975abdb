"""
Energy attribution and cost-calculation engine.

Pure calculation modules (deltas, classifier, pricing, aggregator, history)
plus the async entry points that read telemetry through a
:class:`~pvbilling.telemetry.adapter.TelemetryAdapter`.

CHANGELOG:
- 2026-03-03: Initial creation (STORY-006)

TODO:
- None
"""

from pvbilling.engine.calculator import calculate_usage
from pvbilling.engine.export import calculate_export_revenue
from pvbilling.engine.live import estimate_live, read_system_status
from pvbilling.engine.pricing import build_pricing_rules

__all__ = [
    "build_pricing_rules",
    "calculate_export_revenue",
    "calculate_usage",
    "estimate_live",
    "read_system_status",
]
