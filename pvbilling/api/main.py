"""
FastAPI application entry point for the PV billing API.

Startup loads and validates ``ServiceSettings``, configures JSON logging,
parses API_TOKENS into a BearerAuth instance and opens the InfluxDB adapter;
all three are kept on ``app.state`` for route dependencies. Shutdown closes
the telemetry client and disposes the database engine.

CHANGELOG:
- 2026-03-09: Register bills, live, reports and system routers (STORY-015)
- 2026-03-09: Initial creation (STORY-015)
"""

import hashlib
import json
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI

from pvbilling import __version__
from pvbilling.api.bills import router as bills_router
from pvbilling.api.health import router as health_router
from pvbilling.api.live import router as live_router
from pvbilling.api.reports import router as reports_router
from pvbilling.api.system import router as system_router
from pvbilling.auth.bearer import BearerAuth, parse_api_tokens
from pvbilling.config import ServiceSettings, get_settings
from pvbilling.db.session import dispose_engine
from pvbilling.telemetry.influx import InfluxTelemetry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Route the root logger to stderr as JSON lines at ``level``."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def _masked(value: str) -> str:
    """Return a short non-reversible fingerprint of a secret."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: ServiceSettings) -> None:
    """Log the effective configuration without secrets."""
    logger.info(
        "Billing API starting with config: influxdb_url=%s, influxdb_database=%s, "
        "influxdb_token=%s, billing_interval=%s, live_window_minutes=%s, cache_ttl_s=%s",
        settings.influxdb_url,
        settings.influxdb_database,
        _masked(settings.influxdb_token),
        settings.billing_interval,
        settings.live_window_minutes,
        settings.cache_ttl_s,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build settings, auth and telemetry on startup; release them on shutdown.

    Raises:
        RuntimeError: If API_TOKENS contains no valid entry.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    log_config_summary(settings)
    app.state.settings = settings

    token_map = parse_api_tokens(settings.api_tokens)
    if not token_map:
        raise RuntimeError("API_TOKENS parsed but contains no valid token:user_id entries")
    app.state.auth = BearerAuth(token_map)
    logger.info("Parsed %d API token(s) from API_TOKENS", len(token_map))

    telemetry = InfluxTelemetry(
        settings.influxdb_url,
        settings.influxdb_database,
        token=settings.influxdb_token,
        timeout_s=settings.influxdb_timeout_s,
    )
    app.state.telemetry = telemetry

    logger.info("PV billing API ready")
    try:
        yield
    finally:
        await telemetry.aclose()
        await dispose_engine()
        logger.info("PV billing API shutting down")


app = FastAPI(
    title="PV Billing API",
    description="Energy attribution and billing for shared PV/battery installations.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(bills_router)
app.include_router(live_router)
app.include_router(reports_router)
app.include_router(system_router)
