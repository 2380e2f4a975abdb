"""
Admin endpoints for the installation: live status and system settings.

Writing the settings invalidates every cached live report, since sensor ids,
sign conventions and prices all feed into the live figures.

CHANGELOG:
- 2026-03-12: Seed default settings on the admin read only (STORY-016)
- 2026-03-09: Initial creation (STORY-015)

TODO:
- None
"""

import logging

from fastapi import APIRouter

from pvbilling.api.deps import AdminPrincipal, DbSession, Telemetry, domain_errors
from pvbilling.cache.redis_client import invalidate_live_cache
from pvbilling.db import repository
from pvbilling.models import SystemSettings, SystemStatus
from pvbilling.services.live import get_system_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/system", tags=["system"])


@router.get("/status")
async def system_status(
    principal: AdminPrincipal,
    db: DbSession,
    telemetry: Telemetry,
) -> SystemStatus:
    """Return instantaneous PV, grid and battery readings."""
    with domain_errors():
        return await get_system_status(db, telemetry)


@router.get("/settings")
async def read_settings(principal: AdminPrincipal, db: DbSession) -> SystemSettings:
    """Return the installation settings (defaults are seeded on first read)."""
    return await repository.get_or_seed_system_settings(db)


@router.put("/settings")
async def write_settings(
    body: SystemSettings,
    principal: AdminPrincipal,
    db: DbSession,
) -> SystemSettings:
    """Replace the installation settings."""
    saved = await repository.save_system_settings(db, body)
    logger.info("System settings replaced by %s", principal.user_id)
    await invalidate_live_cache()
    return saved
