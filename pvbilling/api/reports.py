"""
Report endpoints: per-user history charts and the installation profit report.

CHANGELOG:
- 2026-03-09: Initial creation (STORY-015)

TODO:
- None
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from pvbilling.api.deps import (
    AdminPrincipal,
    CurrentPrincipal,
    DbSession,
    Settings,
    Telemetry,
    domain_errors,
    resolve_target_user,
)
from pvbilling.engine.history import PRESETS
from pvbilling.models import HistoryPoint, ProfitReport
from pvbilling.services.reporting import build_history, build_profit_report

router = APIRouter(prefix="/v1", tags=["reports"])


@router.get("/history")
async def history(
    principal: CurrentPrincipal,
    db: DbSession,
    telemetry: Telemetry,
    preset: Annotated[str, Query()] = "month",
    user_id: Annotated[str | None, Query()] = None,
) -> list[HistoryPoint]:
    """Return usage/cost chart points for a range preset."""
    if preset not in PRESETS:
        raise HTTPException(
            status_code=422,
            detail=f"preset must be one of: {', '.join(PRESETS)}",
        )
    target = resolve_target_user(principal, user_id)
    with domain_errors():
        return await build_history(db, telemetry, target, preset)


@router.get("/reports/profit")
async def profit_report(
    principal: AdminPrincipal,
    db: DbSession,
    telemetry: Telemetry,
    settings: Settings,
    start: Annotated[datetime, Query()],
    end: Annotated[datetime, Query()],
) -> ProfitReport:
    """Return internal and export profit for a period."""
    if end <= start:
        raise HTTPException(status_code=422, detail="end must be after start")
    with domain_errors():
        return await build_profit_report(db, telemetry, start, end, settings.billing_bucket)
