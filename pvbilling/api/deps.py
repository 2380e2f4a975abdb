"""
FastAPI dependency providers.

Database sessions, the telemetry adapter and service settings held on
``app.state``, the authenticated principal, and the translation of domain
errors into HTTP responses.

CHANGELOG:
- 2026-03-12: Invalid stored data is a server error, not a 422 (STORY-016)
- 2026-03-09: Principal, telemetry and error translation (STORY-015)
- 2026-03-03: Initial creation (STORY-003)
"""

import logging
from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from pvbilling.auth.bearer import Principal
from pvbilling.config import ServiceSettings
from pvbilling.db.session import get_async_session
from pvbilling.errors import NotFoundError, SystemNotConfiguredError, TelemetryError
from pvbilling.telemetry.adapter import TelemetryAdapter

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async for session in get_async_session():
        yield session


async def get_principal(request: Request) -> Principal:
    """Resolve the caller via the BearerAuth instance on app.state."""
    return await request.app.state.auth.verify(request)


async def get_admin(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    """Require an admin caller.

    Raises:
        HTTPException: 403 for non-admin callers.
    """
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required.")
    return principal


def get_telemetry(request: Request) -> TelemetryAdapter:
    return request.app.state.telemetry


def get_service_settings(request: Request) -> ServiceSettings:
    return request.app.state.settings


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
AdminPrincipal = Annotated[Principal, Depends(get_admin)]
Telemetry = Annotated[TelemetryAdapter, Depends(get_telemetry)]
Settings = Annotated[ServiceSettings, Depends(get_service_settings)]


def resolve_target_user(principal: Principal, user_id: str | None) -> str:
    """Return the user a request acts on (the caller when omitted).

    Raises:
        HTTPException: 403 when a non-admin targets another user.
    """
    target = user_id or principal.user_id
    if not principal.can_access(target):
        raise HTTPException(status_code=403, detail="Not allowed to access this user.")
    return target


@contextmanager
def domain_errors() -> Iterator[None]:
    """Translate domain exceptions raised inside the block to HTTP errors.

    A pydantic ``ValidationError`` here comes from persisted rows, not from
    the request (FastAPI validates requests before the handler runs), so it
    is reported as 500 rather than 422.
    """
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SystemNotConfiguredError as exc:
        raise HTTPException(status_code=409, detail="System not configured") from exc
    except TelemetryError as exc:
        raise HTTPException(status_code=502, detail=f"Telemetry unavailable: {exc}") from exc
    except ValidationError as exc:
        logger.exception("Stored data failed validation")
        raise HTTPException(status_code=500, detail="Stored data failed validation") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
