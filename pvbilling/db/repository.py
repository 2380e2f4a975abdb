"""
Persistence access for users, mappings, system settings and bills.

Every function takes an ``AsyncSession`` and returns domain models from
``pvbilling.models``, so services and the engine never handle ORM rows.
Missing users and bills raise :class:`~pvbilling.errors.NotFoundError`;
a missing settings row raises
:class:`~pvbilling.errors.SystemNotConfiguredError` except on the admin read,
which seeds the defaults.
Database errors propagate unchanged.

CHANGELOG:
- 2026-03-12: Calculations fail on a missing settings row; only the admin read seeds (STORY-016)
- 2026-03-10: Bill persistence with typed snapshot (STORY-014)
- 2026-03-03: Initial creation (STORY-003)

TODO:
- None
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pvbilling.db import models as orm
from pvbilling.errors import NotFoundError, SystemNotConfiguredError
from pvbilling.models import (
    BillRecord,
    BillSnapshot,
    SensorMapping,
    SystemSettings,
    UsageReport,
    UserBillingProfile,
)
from pvbilling.timeutil import ensure_utc

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Users and mappings
# ---------------------------------------------------------------------------


async def get_user(db: AsyncSession, user_id: str) -> UserBillingProfile:
    """Return the billing profile of a user.

    Raises:
        NotFoundError: If the user does not exist.
    """
    user = await db.get(orm.User, user_id)
    if user is None:
        raise NotFoundError(f"User '{user_id}' not found")
    return UserBillingProfile.model_validate(user)


async def list_users(db: AsyncSession) -> list[UserBillingProfile]:
    """Return all users ordered by email."""
    result = await db.execute(select(orm.User).order_by(orm.User.email))
    return [UserBillingProfile.model_validate(u) for u in result.scalars().all()]


async def list_mappings_for_user(db: AsyncSession, user_id: str) -> list[SensorMapping]:
    """Return a user's sensor mappings in billing order."""
    stmt = (
        select(orm.SensorMapping)
        .where(orm.SensorMapping.user_id == user_id)
        .order_by(orm.SensorMapping.position, orm.SensorMapping.id)
    )
    result = await db.execute(stmt)
    return [SensorMapping.model_validate(m) for m in result.scalars().all()]


# ---------------------------------------------------------------------------
# System settings
# ---------------------------------------------------------------------------


async def get_system_settings(db: AsyncSession) -> SystemSettings:
    """Return the installation settings used by calculations.

    Raises:
        SystemNotConfiguredError: If the settings row has never been written.
    """
    row = await db.get(orm.SystemSettingsRow, orm.SYSTEM_SETTINGS_ID)
    if row is None:
        raise SystemNotConfiguredError("System settings have not been configured")
    return SystemSettings.model_validate(row)


async def get_or_seed_system_settings(db: AsyncSession) -> SystemSettings:
    """Return the installation settings, seeding the defaults on first read.

    Only the admin settings screen uses this, so an administrator starts
    from the defaults instead of an empty form.
    """
    row = await db.get(orm.SystemSettingsRow, orm.SYSTEM_SETTINGS_ID)
    if row is None:
        defaults = SystemSettings()
        row = orm.SystemSettingsRow(id=orm.SYSTEM_SETTINGS_ID, **defaults.model_dump())
        db.add(row)
        await db.commit()
        logger.info("Seeded default system settings")
        return defaults
    return SystemSettings.model_validate(row)


async def save_system_settings(db: AsyncSession, settings: SystemSettings) -> SystemSettings:
    """Replace the installation settings."""
    row = await db.get(orm.SystemSettingsRow, orm.SYSTEM_SETTINGS_ID)
    if row is None:
        row = orm.SystemSettingsRow(id=orm.SYSTEM_SETTINGS_ID)
        db.add(row)
    for key, value in settings.model_dump().items():
        setattr(row, key, value)
    await db.commit()
    logger.info("System settings updated")
    return settings


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


def _to_record(bill: orm.Bill) -> BillRecord:
    return BillRecord(
        id=bill.id,
        user_id=bill.user_id,
        start=ensure_utc(bill.start_date),
        end=ensure_utc(bill.end_date),
        total_usage=bill.total_usage,
        total_amount=bill.total_amount,
        profit=bill.profit,
        snapshot=BillSnapshot.model_validate(bill.snapshot),
        created_at=ensure_utc(bill.created_at),
    )


async def create_bill(db: AsyncSession, user_id: str, report: UsageReport) -> BillRecord:
    """Persist a bill for a calculated report.

    Raises:
        SQLAlchemyError: Persistence failures propagate to the caller.
    """
    bill = orm.Bill(
        user_id=user_id,
        start_date=report.start,
        end_date=report.end,
        total_usage=report.totals.usage,
        total_amount=report.totals.cost,
        profit=report.profit,
        snapshot=report.snapshot().model_dump(mode="json"),
    )
    db.add(bill)
    await db.commit()
    logger.info(
        "Created bill %s for user %s (%.4f kWh, %.4f)",
        bill.id,
        user_id,
        bill.total_usage,
        bill.total_amount,
    )
    return _to_record(bill)


async def list_bills(db: AsyncSession, user_id: str | None = None) -> list[BillRecord]:
    """Return bills, newest first, optionally restricted to one user."""
    stmt = select(orm.Bill).order_by(orm.Bill.created_at.desc(), orm.Bill.id)
    if user_id is not None:
        stmt = stmt.where(orm.Bill.user_id == user_id)
    result = await db.execute(stmt)
    return [_to_record(b) for b in result.scalars().all()]


async def get_bill(db: AsyncSession, bill_id: str) -> BillRecord:
    """Return one bill.

    Raises:
        NotFoundError: If the bill does not exist.
    """
    bill = await db.get(orm.Bill, bill_id)
    if bill is None:
        raise NotFoundError(f"Bill '{bill_id}' not found")
    return _to_record(bill)


async def delete_bill(db: AsyncSession, bill_id: str) -> None:
    """Delete (cancel) a bill.

    Raises:
        NotFoundError: If the bill does not exist.
    """
    bill = await db.get(orm.Bill, bill_id)
    if bill is None:
        raise NotFoundError(f"Bill '{bill_id}' not found")
    await db.delete(bill)
    await db.commit()
    logger.info("Deleted bill %s", bill_id)
