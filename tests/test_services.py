"""
Service tests: SQLite persistence plus in-memory telemetry.

Tests verify:
- generate_bill persists the calculated totals and snapshot.
- A telemetry failure leaves no bill behind.
- The profit report counts only users with PV billing as internal profit.
- Billing without stored settings is refused, not silently seeded.
- The profit report fetches the installation series once for all users.
- History presets sum the calculation per bucket.
- The live service serves cached reports and caches fresh ones.

CHANGELOG:
- 2026-03-12: Missing settings and shared installation series (STORY-016)
- 2026-03-10: Initial creation (STORY-014)

TODO:
- None
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fakes import HOUR, T0, FakeTelemetry, hourly
from sqlalchemy.ext.asyncio import AsyncSession

from pvbilling.db import models as orm
from pvbilling.db import repository
from pvbilling.errors import NotFoundError, SystemNotConfiguredError, TelemetryError
from pvbilling.models import LiveReport, SystemSettings
from pvbilling.services import billing, live, reporting
from pvbilling.telemetry.adapter import Reading

END = T0 + 2 * HOUR


@pytest_asyncio.fixture()
async def db(db_session: AsyncSession) -> AsyncSession:
    db_session.add_all(
        [
            orm.User(id="user-1", email="pv@example.com", enable_pv_billing=True),
            orm.User(id="user-2", email="grid@example.com"),
            orm.SensorMapping(
                user_id="user-1",
                label="Kitchen",
                usage_sensor_id="sensor.kitchen",
                price_sensor_id="sensor.price",
            ),
            orm.SensorMapping(
                user_id="user-2",
                label="Office",
                usage_sensor_id="sensor.office",
                price_sensor_id="sensor.price",
            ),
        ]
    )
    await db_session.commit()
    await repository.save_system_settings(
        db_session,
        SystemSettings(
            pv_power_sensor_id="sensor.pv",
            grid_import_sensor_id="sensor.grid_import",
            grid_export_kwh_sensor_id="sensor.export_kwh",
            grid_export_price=0.08,
        ),
    )
    return db_session


@pytest.fixture()
def telemetry(fake_telemetry: FakeTelemetry) -> FakeTelemetry:
    fake_telemetry.means["sensor.price"] = hourly([0.30, 0.30, 0.30], unit="EUR/kWh")
    fake_telemetry.means["sensor.grid_import"] = hourly([100.0, 100.0, 100.0])
    fake_telemetry.means["sensor.pv"] = hourly([300.0, 300.0, 300.0])
    fake_telemetry.counters["sensor.kitchen"] = hourly([10.0, 10.5, 11.2], unit="kWh")
    fake_telemetry.counters["sensor.office"] = hourly([5.0, 6.0, 7.0], unit="kWh")
    fake_telemetry.first_last["sensor.export_kwh"] = (500.0, 510.0)
    return fake_telemetry


class TestBilling:
    @pytest.mark.asyncio
    async def test_generate_bill_persists_report(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        bill = await billing.generate_bill(db, telemetry, "user-1", T0, END, HOUR)

        assert bill.total_usage == pytest.approx(1.2)
        assert bill.total_amount == pytest.approx(0.18)
        assert bill.profit == pytest.approx(0.18)
        [stored] = await billing.list_bills(db, "user-1")
        assert stored.id == bill.id
        assert stored.snapshot.lines[0].label == "Kitchen"

    @pytest.mark.asyncio
    async def test_user_without_pv_billing_pays_grid_price(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        report = await billing.preview_bill(db, telemetry, "user-2", T0, END, HOUR)

        assert report.totals.usage == pytest.approx(2.0)
        assert report.totals.cost == pytest.approx(0.60)
        assert report.profit == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_preview_does_not_persist(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        await billing.preview_bill(db, telemetry, "user-1", T0, END, HOUR)
        assert await billing.list_bills(db) == []

    @pytest.mark.asyncio
    async def test_telemetry_failure_creates_no_bill(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        telemetry.failing.add("sensor.pv")

        with pytest.raises(TelemetryError):
            await billing.generate_bill(db, telemetry, "user-1", T0, END, HOUR)

        assert await billing.list_bills(db) == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, db: AsyncSession, telemetry: FakeTelemetry) -> None:
        with pytest.raises(NotFoundError):
            await billing.preview_bill(db, telemetry, "nobody", T0, END, HOUR)

    @pytest.mark.asyncio
    async def test_cancel_bill(self, db: AsyncSession, telemetry: FakeTelemetry) -> None:
        bill = await billing.generate_bill(db, telemetry, "user-1", T0, END, HOUR)

        await billing.cancel_bill(db, bill.id)

        with pytest.raises(NotFoundError):
            await billing.get_bill(db, bill.id)

    @pytest.mark.asyncio
    async def test_unconfigured_installation_refuses_to_bill(
        self, db_session: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        db_session.add_all(
            [
                orm.User(id="user-1", email="pv@example.com", enable_pv_billing=True),
                orm.SensorMapping(
                    user_id="user-1",
                    label="Kitchen",
                    usage_sensor_id="sensor.kitchen",
                    price_sensor_id="sensor.price",
                ),
            ]
        )
        await db_session.commit()

        with pytest.raises(SystemNotConfiguredError):
            await billing.generate_bill(db_session, telemetry, "user-1", T0, END, HOUR)

        assert await billing.list_bills(db_session) == []
        assert await db_session.get(orm.SystemSettingsRow, orm.SYSTEM_SETTINGS_ID) is None
        assert telemetry.calls == []


class TestReporting:
    @pytest.mark.asyncio
    async def test_profit_report(self, db: AsyncSession, telemetry: FakeTelemetry) -> None:
        report = await reporting.build_profit_report(db, telemetry, T0, END, HOUR)

        assert report.profit_internal == pytest.approx(0.18)
        assert report.profit_export == pytest.approx(0.8)
        assert report.total_profit == pytest.approx(0.98)
        assert report.total_internal_kwh == pytest.approx(1.2)
        assert report.total_export_kwh == pytest.approx(10.0)
        assert [u.user_id for u in report.users] == ["user-1", "user-2"]
        assert report.users[1].profit == 0.0

    @pytest.mark.asyncio
    async def test_profit_report_fetches_installation_series_once(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        db.add_all(
            [
                orm.User(id="user-3", email="flat@example.com", enable_pv_billing=True),
                orm.SensorMapping(
                    user_id="user-3",
                    label="Flat",
                    usage_sensor_id="sensor.flat",
                    price_sensor_id="sensor.price",
                ),
            ]
        )
        await db.commit()
        telemetry.counters["sensor.flat"] = hourly([1.0, 1.5, 2.0], unit="kWh")

        report = await reporting.build_profit_report(db, telemetry, T0, END, HOUR)

        for series_id in ("sensor.price", "sensor.grid_import", "sensor.pv"):
            assert telemetry.calls.count(("mean_over_buckets", series_id)) == 1
        assert report.profit_internal == pytest.approx(0.18 + 0.15)
        assert [u.user_id for u in report.users] == ["user-1", "user-3", "user-2"]

    @pytest.mark.asyncio
    async def test_history_today(self, db: AsyncSession, telemetry: FakeTelemetry) -> None:
        now = datetime(2026, 3, 1, 18, 0, tzinfo=UTC)

        points = await reporting.build_history(db, telemetry, "user-1", "today", now=now)

        assert [p.ts for p in points] == [T0 + HOUR, T0 + 2 * HOUR]
        assert [p.usage for p in points] == pytest.approx([0.5, 0.7])
        assert sum(p.cost for p in points) == pytest.approx(0.18)

    @pytest.mark.asyncio
    async def test_history_unknown_preset(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        with pytest.raises(ValueError):
            await reporting.build_history(db, telemetry, "user-1", "decade")


class TestLive:
    @pytest.mark.asyncio
    async def test_fresh_report_is_cached(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        telemetry.last["sensor.grid_import"] = Reading(50.0, "W")
        telemetry.last["sensor.pv"] = Reading(2000.0, "W")
        telemetry.first_last["sensor.kitchen"] = (11.0, 11.25)

        with (
            patch("pvbilling.services.live.read_live_report", AsyncMock(return_value=None)),
            patch("pvbilling.services.live.write_live_report", AsyncMock()) as write,
        ):
            report = await live.get_live_report(
                db, telemetry, "user-1", window=15 * HOUR / 60, cache_ttl_s=5, now=T0
            )

        assert report.usage_kw == pytest.approx(1.0)
        assert report.price_per_kwh == pytest.approx(0.15)
        write.assert_awaited_once_with("user-1", report, 5)

    @pytest.mark.asyncio
    async def test_cached_report_skips_telemetry(
        self, db: AsyncSession, telemetry: FakeTelemetry
    ) -> None:
        cached = LiveReport(
            usage_kw=9.0,
            cost_per_hour=2.7,
            price_per_kwh=0.3,
            timestamp=T0,
            mapping_count=1,
            details=[],
        )
        with patch("pvbilling.services.live.read_live_report", AsyncMock(return_value=cached)):
            report = await live.get_live_report(
                db, telemetry, "user-1", window=HOUR, cache_ttl_s=5
            )

        assert report == cached
        assert telemetry.calls == []

    @pytest.mark.asyncio
    async def test_system_status(self, db: AsyncSession, telemetry: FakeTelemetry) -> None:
        telemetry.last["sensor.pv"] = Reading(4200.0, "W")
        telemetry.last["sensor.grid_import"] = Reading(0.0, "W")

        status = await live.get_system_status(db, telemetry)

        assert status.pv_power == pytest.approx(4.2)
        assert status.grid_import == 0.0
