"""
GET /v1/live: near-real-time usage and cost for a user.

Responses are cached in Redis for CACHE_TTL_S seconds (see
``pvbilling.services.live``).

CHANGELOG:
- 2026-03-09: Initial creation (STORY-015)

TODO:
- None
"""

from typing import Annotated

from fastapi import APIRouter, Query

from pvbilling.api.deps import (
    CurrentPrincipal,
    DbSession,
    Settings,
    Telemetry,
    domain_errors,
    resolve_target_user,
)
from pvbilling.models import LiveReport
from pvbilling.services.live import get_live_report

router = APIRouter(prefix="/v1", tags=["live"])


@router.get("/live")
async def live(
    principal: CurrentPrincipal,
    db: DbSession,
    telemetry: Telemetry,
    settings: Settings,
    user_id: Annotated[str | None, Query()] = None,
) -> LiveReport:
    """Return the live report for the caller (or, for admins, any user)."""
    target = resolve_target_user(principal, user_id)
    with domain_errors():
        return await get_live_report(
            db, telemetry, target, settings.live_window, settings.cache_ttl_s
        )
