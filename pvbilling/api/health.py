"""
Liveness endpoint.

GET /health answers without authentication and without touching the
database or the telemetry store; it is meant for container health checks.

CHANGELOG:
- 2026-03-09: Initial creation (STORY-015)

TODO:
- None
"""

from fastapi import APIRouter

from pvbilling import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return ``{"status": "ok", "version": ...}``."""
    return {"status": "ok", "version": __version__}
