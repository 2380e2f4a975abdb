"""
Tests for the series merger.

Tests verify:
- Price, grid, battery and PV series are requested and merged by bucket.
- Missing buckets are zero except the price, which is carried forward.
- A dedicated import sensor is trusted; a bidirectional one is split.
- Unconfigured sensors are not queried.
- A system fetch failure raises TelemetryError.

CHANGELOG:
- 2026-03-04: Bidirectional grid split (STORY-007)
- 2026-03-03: Initial creation (STORY-006)

TODO:
- None
"""

import pytest
from fakes import HOUR, T0, FakeTelemetry, hourly

from pvbilling.engine.merger import fetch_system_history, merge_series
from pvbilling.engine.normalization import SignConvention
from pvbilling.errors import TelemetryError
from pvbilling.models import SystemIntervalData, SystemSettings
from pvbilling.telemetry.adapter import Series

SETTINGS = SystemSettings(
    pv_power_sensor_id="sensor.pv",
    grid_import_sensor_id="sensor.grid_import",
    battery_power_sensor_id="sensor.battery",
    invert_battery_sign=True,
)


class TestMergeSeries:
    def test_price_carried_forward_other_fields_zero(self) -> None:
        merged = merge_series(
            T0,
            T0 + 2 * HOUR,
            HOUR,
            price=Series("EUR/kWh", [(T0, 0.30)]),
            grid=Series("W", [(T0 + HOUR, 120.0)]),
            battery=None,
            pv=Series("W", [(T0, 400.0)]),
            convention=SignConvention(),
        )

        assert merged == [
            SystemIntervalData(ts=T0, grid_price=0.30, grid_import=0.0, pv_production=400.0),
            SystemIntervalData(ts=T0 + HOUR, grid_price=0.30, grid_import=120.0),
            SystemIntervalData(ts=T0 + 2 * HOUR, grid_price=0.30),
        ]

    def test_price_before_first_value_is_zero(self) -> None:
        merged = merge_series(
            T0,
            T0 + HOUR,
            HOUR,
            price=Series("EUR/kWh", [(T0 + HOUR, 0.25)]),
            grid=None,
            battery=None,
            pv=None,
            convention=SignConvention(),
        )
        assert [m.grid_price for m in merged] == [0.0, 0.25]

    def test_bidirectional_grid_split_by_sign(self) -> None:
        merged = merge_series(
            T0,
            T0 + HOUR,
            HOUR,
            price=None,
            grid=Series("W", [(T0, -800.0), (T0 + HOUR, 300.0)]),
            battery=None,
            pv=None,
            convention=SignConvention(),
            grid_bidirectional=True,
        )
        assert [m.grid_import for m in merged] == [0.0, 300.0]

    def test_battery_sign_normalized(self) -> None:
        merged = merge_series(
            T0,
            T0,
            HOUR,
            price=None,
            grid=None,
            battery=Series("W", [(T0, -600.0)]),
            pv=None,
            convention=SignConvention(invert_battery=True),
        )
        assert merged[0].battery_discharge == 600.0

    def test_output_is_ordered(self) -> None:
        merged = merge_series(
            T0,
            T0 + 3 * HOUR,
            HOUR,
            price=None,
            grid=Series("W", [(T0 + 3 * HOUR, 1.0), (T0, 2.0)]),
            battery=None,
            pv=None,
            convention=SignConvention(),
        )
        assert [m.ts for m in merged] == [T0 + i * HOUR for i in range(4)]


class TestFetchSystemHistory:
    @pytest.mark.asyncio
    async def test_fetches_and_normalizes(self, fake_telemetry: FakeTelemetry) -> None:
        fake_telemetry.means["sensor.price"] = hourly([28.0, 30.0], unit="ct/kWh")
        fake_telemetry.means["sensor.grid_import"] = hourly([0.1, 0.5], unit="kW")
        fake_telemetry.means["sensor.battery"] = hourly([-200.0, 0.0])
        fake_telemetry.means["sensor.pv"] = hourly([300.0, 0.0])

        history = await fetch_system_history(
            fake_telemetry, SETTINGS, "sensor.price", T0, T0 + HOUR, HOUR
        )

        assert history[0].grid_price == pytest.approx(0.28)
        assert history[0].grid_import == pytest.approx(100.0)
        assert history[0].battery_discharge == pytest.approx(200.0)
        assert history[0].pv_production == 300.0
        assert history[1].grid_import == pytest.approx(500.0)
        assert fake_telemetry.carry_forward["sensor.price"] is True
        assert fake_telemetry.carry_forward["sensor.grid_import"] is False

    @pytest.mark.asyncio
    async def test_unconfigured_sensors_not_queried(self, fake_telemetry: FakeTelemetry) -> None:
        history = await fetch_system_history(
            fake_telemetry, SystemSettings(), "sensor.price", T0, T0 + HOUR, HOUR
        )

        assert fake_telemetry.calls == [("mean_over_buckets", "sensor.price")]
        assert all(h.pv_production == 0 and h.grid_import == 0 for h in history)

    @pytest.mark.asyncio
    async def test_bidirectional_sensor_used_without_import_sensor(
        self, fake_telemetry: FakeTelemetry
    ) -> None:
        settings = SystemSettings(grid_power_sensor_id="sensor.grid", invert_grid_sign=True)
        fake_telemetry.means["sensor.grid"] = hourly([-150.0])

        history = await fetch_system_history(
            fake_telemetry, settings, "sensor.price", T0, T0, HOUR
        )

        assert history[0].grid_import == 150.0

    @pytest.mark.asyncio
    async def test_system_fetch_failure_raises(self, fake_telemetry: FakeTelemetry) -> None:
        fake_telemetry.failing.add("sensor.pv")
        with pytest.raises(TelemetryError):
            await fetch_system_history(
                fake_telemetry, SETTINGS, "sensor.price", T0, T0 + HOUR, HOUR
            )
