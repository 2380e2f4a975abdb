"""
Tests for the attribution classifier.

CHANGELOG:
- 2026-03-04: Initial creation (STORY-008)

TODO:
- None
"""

import pytest
from fakes import T0

from pvbilling.engine.classifier import classify_interval, is_internal
from pvbilling.models import PricingRules, SystemIntervalData

RULES = PricingRules(internal_price=0.15, grid_fallback_price=0.30, grid_buffer_watts=200)
BATTERY_RULES = RULES.model_copy(update={"allow_battery_pricing": True})


class TestIsInternal:
    @pytest.mark.parametrize(
        ("grid", "pv", "expected"),
        [
            (100.0, 300.0, True),
            (199.9, 51.0, True),
            (200.0, 300.0, False),
            (100.0, 50.0, False),
            (500.0, 3000.0, False),
        ],
    )
    def test_grid_and_pv_thresholds(self, grid: float, pv: float, expected: bool) -> None:
        assert is_internal(grid, pv, 0.0, RULES) is expected

    def test_battery_needs_policy(self) -> None:
        assert is_internal(0.0, 0.0, 800.0, RULES) is False
        assert is_internal(0.0, 0.0, 800.0, BATTERY_RULES) is True

    def test_battery_threshold(self) -> None:
        assert is_internal(0.0, 0.0, 50.0, BATTERY_RULES) is False

    def test_disabled_buffer_is_always_external(self) -> None:
        rules = RULES.model_copy(update={"grid_buffer_watts": -999999.0})
        assert is_internal(0.0, 5000.0, 5000.0, rules) is False


class TestClassifyInterval:
    def test_missing_bucket_is_external_at_zero(self) -> None:
        assert classify_interval(None, RULES) == (False, 0.0)

    def test_internal_uses_internal_price(self) -> None:
        system = SystemIntervalData(ts=T0, grid_price=0.31, grid_import=10.0, pv_production=900.0)
        assert classify_interval(system, RULES) == (True, 0.15)

    def test_external_uses_grid_price(self) -> None:
        system = SystemIntervalData(ts=T0, grid_price=0.31, grid_import=900.0, pv_production=900.0)
        assert classify_interval(system, RULES) == (False, 0.31)
