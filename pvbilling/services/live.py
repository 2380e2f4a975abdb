"""
Live dashboard service.

Serves a user's live report from the Redis cache when a fresh one exists,
otherwise estimates it from telemetry and caches it for ``CACHE_TTL_S``.

CHANGELOG:
- 2026-03-07: Initial creation (STORY-011)

TODO:
- None
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from pvbilling.cache.redis_client import read_live_report, write_live_report
from pvbilling.db import repository
from pvbilling.engine.live import estimate_live, read_system_status
from pvbilling.engine.pricing import build_pricing_rules
from pvbilling.models import LiveReport, SystemStatus
from pvbilling.telemetry.adapter import TelemetryAdapter

logger = logging.getLogger(__name__)


async def get_live_report(
    db: AsyncSession,
    adapter: TelemetryAdapter,
    user_id: str,
    window: timedelta,
    cache_ttl_s: int,
    now: datetime | None = None,
) -> LiveReport:
    """Return the live report of a user, cached for ``cache_ttl_s`` seconds.

    Raises:
        NotFoundError: If the user does not exist.
        SystemNotConfiguredError: If settings have not been configured.
        TelemetryError: If the installation readings cannot be fetched.
    """
    if cache_ttl_s > 0:
        cached = await read_live_report(user_id)
        if cached is not None:
            return cached

    user = await repository.get_user(db, user_id)
    settings = await repository.get_system_settings(db)
    mappings = await repository.list_mappings_for_user(db, user_id)
    rules = build_pricing_rules(user, settings)

    report = await estimate_live(adapter, settings, mappings, rules, window=window, now=now)
    await write_live_report(user_id, report, cache_ttl_s)
    return report


async def get_system_status(db: AsyncSession, adapter: TelemetryAdapter) -> SystemStatus:
    """Return the installation's instantaneous readings."""
    settings = await repository.get_system_settings(db)
    return await read_system_status(adapter, settings)
