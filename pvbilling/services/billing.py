"""
Bill generation service.

Loads the user, their mappings and the installation settings, derives the
user's pricing rules, runs the engine, and (for ``generate_bill``) persists
the result once every mapping has been calculated.

CHANGELOG:
- 2026-03-10: Persist typed snapshot (STORY-014)
- 2026-03-09: Initial creation (STORY-014)

TODO:
- None
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from pvbilling.db import repository
from pvbilling.engine.calculator import calculate_usage
from pvbilling.engine.pricing import build_pricing_rules
from pvbilling.models import BillRecord, UsageReport
from pvbilling.telemetry.adapter import TelemetryAdapter

logger = logging.getLogger(__name__)


async def preview_bill(
    db: AsyncSession,
    adapter: TelemetryAdapter,
    user_id: str,
    start: datetime,
    end: datetime,
    interval: timedelta,
) -> UsageReport:
    """Calculate a user's bill for a period without persisting it.

    Raises:
        NotFoundError: If the user does not exist.
        SystemNotConfiguredError: If settings are missing or no price series
            can be resolved.
        TelemetryError: If the system series cannot be fetched.
    """
    user = await repository.get_user(db, user_id)
    settings = await repository.get_system_settings(db)
    mappings = await repository.list_mappings_for_user(db, user_id)
    rules = build_pricing_rules(user, settings)
    return await calculate_usage(adapter, settings, mappings, start, end, interval, rules)


async def generate_bill(
    db: AsyncSession,
    adapter: TelemetryAdapter,
    user_id: str,
    start: datetime,
    end: datetime,
    interval: timedelta,
) -> BillRecord:
    """Calculate and persist a bill.

    Same errors as :func:`preview_bill`; persistence failures propagate.
    """
    report = await preview_bill(db, adapter, user_id, start, end, interval)
    degraded = [r.mapping.label for r in report.mappings if r.degraded]
    if degraded:
        logger.warning(
            "Bill for user %s includes %d degraded mapping(s): %s",
            user_id,
            len(degraded),
            ", ".join(degraded),
        )
    return await repository.create_bill(db, user_id, report)


async def list_bills(db: AsyncSession, user_id: str | None = None) -> list[BillRecord]:
    return await repository.list_bills(db, user_id)


async def get_bill(db: AsyncSession, bill_id: str) -> BillRecord:
    return await repository.get_bill(db, bill_id)


async def cancel_bill(db: AsyncSession, bill_id: str) -> None:
    """Cancel a bill. Bills are never edited; cancelling deletes them."""
    await repository.delete_bill(db, bill_id)
