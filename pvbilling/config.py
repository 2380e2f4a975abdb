"""
Service configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded hosts, URLs, or credentials.

CHANGELOG:
- 2026-03-04: Add BILLING_INTERVAL and LIVE_WINDOW_MINUTES (STORY-009)
- 2026-03-02: Initial creation (STORY-002)

TODO:
- None
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings

from pvbilling.timeutil import parse_interval


class ServiceSettings(BaseSettings):
    """Billing service configuration.

    Attributes:
        database_url: SQLAlchemy async database URL.
        redis_url: Redis URL for the live-estimate cache.
        influxdb_url: Base URL of the InfluxDB 1.x telemetry store.
        influxdb_database: InfluxDB database holding the sensor series.
        influxdb_token: Optional ``user:password`` credentials.
        influxdb_timeout_s: Per-query timeout in seconds.
        api_tokens: Comma-separated ``token:user_id:role`` entries.
        billing_interval: Bucket size for bills, reports and history.
        live_window_minutes: Counter look-back for live estimates.
        cache_ttl_s: Seconds a live estimate stays cached.
        log_level: Root logger level.
    """

    database_url: str
    redis_url: str = "redis://localhost:6379/0"
    influxdb_url: str
    influxdb_database: str = "homeassistant"
    influxdb_token: str = ""
    influxdb_timeout_s: float = 10.0
    api_tokens: str
    billing_interval: str = "1h"
    live_window_minutes: int = 15
    cache_ttl_s: int = 5
    log_level: str = "INFO"

    @field_validator("influxdb_url")
    @classmethod
    def influxdb_url_must_be_http(cls, v: str) -> str:
        """Validate that the telemetry URL has an HTTP(S) scheme."""
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"INFLUXDB_URL must start with http:// or https:// (got '{v}')")
        return v.rstrip("/")

    @field_validator("billing_interval")
    @classmethod
    def billing_interval_must_parse(cls, v: str) -> str:
        """Validate that the billing interval is a known interval literal."""
        parse_interval(v)
        return v.strip()

    @field_validator("live_window_minutes")
    @classmethod
    def live_window_must_be_positive(cls, v: int) -> int:
        """Validate the live look-back window is between 1 and 120 minutes."""
        if v < 1 or v > 120:
            raise ValueError("LIVE_WINDOW_MINUTES must be between 1 and 120")
        return v

    @field_validator("cache_ttl_s")
    @classmethod
    def cache_ttl_must_be_non_negative(cls, v: int) -> int:
        """Validate cache TTL is non-negative (0 disables caching)."""
        if v < 0:
            raise ValueError("CACHE_TTL_S must be >= 0")
        return v

    @property
    def billing_bucket(self) -> timedelta:
        """Billing interval as a timedelta."""
        return parse_interval(self.billing_interval)

    @property
    def live_window(self) -> timedelta:
        """Live look-back window as a timedelta."""
        return timedelta(minutes=self.live_window_minutes)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> ServiceSettings:
    """Return the process-wide settings, loading them on first use."""
    return ServiceSettings()  # type: ignore[call-arg]
