"""
Bill endpoints: generate, preview, list, read and cancel.

Generating and cancelling bills is reserved to admins. Users may preview,
list and read their own bills; admins may act on any user.

CHANGELOG:
- 2026-03-09: Initial creation (STORY-015)

TODO:
- None
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel, model_validator

from pvbilling.api.deps import (
    AdminPrincipal,
    CurrentPrincipal,
    DbSession,
    Settings,
    Telemetry,
    domain_errors,
    resolve_target_user,
)
from pvbilling.models import BillRecord, UsageReport
from pvbilling.services import billing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/bills", tags=["bills"])


class PeriodIn(BaseModel):
    """Billing period; ``user_id`` defaults to the caller."""

    user_id: str | None = None
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def end_after_start(self) -> "PeriodIn":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


@router.post("", status_code=201)
async def generate_bill(
    body: PeriodIn,
    principal: AdminPrincipal,
    db: DbSession,
    telemetry: Telemetry,
    settings: Settings,
) -> BillRecord:
    """Calculate and persist a bill for a user."""
    if not body.user_id:
        raise HTTPException(status_code=422, detail="user_id is required.")
    logger.info("Admin %s generating bill for user %s", principal.user_id, body.user_id)
    with domain_errors():
        return await billing.generate_bill(
            db, telemetry, body.user_id, body.start, body.end, settings.billing_bucket
        )


@router.post("/preview")
async def preview_bill(
    body: PeriodIn,
    principal: CurrentPrincipal,
    db: DbSession,
    telemetry: Telemetry,
    settings: Settings,
) -> UsageReport:
    """Calculate a bill without persisting it."""
    user_id = resolve_target_user(principal, body.user_id)
    with domain_errors():
        return await billing.preview_bill(
            db, telemetry, user_id, body.start, body.end, settings.billing_bucket
        )


@router.get("")
async def list_bills(
    principal: CurrentPrincipal,
    db: DbSession,
    user_id: Annotated[str | None, Query()] = None,
) -> list[BillRecord]:
    """List bills, newest first. Admins without ``user_id`` see every bill."""
    if principal.is_admin and user_id is None:
        return await billing.list_bills(db)
    return await billing.list_bills(db, resolve_target_user(principal, user_id))


@router.get("/{bill_id}")
async def get_bill(bill_id: str, principal: CurrentPrincipal, db: DbSession) -> BillRecord:
    """Return one bill with its typed snapshot."""
    with domain_errors():
        bill = await billing.get_bill(db, bill_id)
    if not principal.can_access(bill.user_id):
        raise HTTPException(status_code=404, detail=f"Bill '{bill_id}' not found")
    return bill


@router.delete("/{bill_id}", status_code=204)
async def cancel_bill(bill_id: str, principal: AdminPrincipal, db: DbSession) -> Response:
    """Cancel (delete) a bill."""
    with domain_errors():
        await billing.cancel_bill(db, bill_id)
    logger.info("Admin %s cancelled bill %s", principal.user_id, bill_id)
    return Response(status_code=204)
