"""
Domain exceptions raised by the engine and services.

Route handlers translate these into HTTP responses; the engine itself never
imports FastAPI.

CHANGELOG:
- 2026-03-02: Initial creation (STORY-002)

TODO:
- None
"""


class BillingError(Exception):
    """Base class for all billing engine errors."""


class SystemNotConfiguredError(BillingError):
    """Raised when a calculation needs configuration that does not exist.

    Raised when no price series can serve as the reference grid price.
    Not retried.
    """


class TelemetryError(BillingError):
    """Raised when the telemetry store cannot be reached or rejects a query."""


class NotFoundError(BillingError):
    """Raised when a requested user or bill does not exist."""
