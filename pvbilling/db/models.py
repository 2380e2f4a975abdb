"""
SQLAlchemy ORM models for the billing database.

Tables: ``users`` (billing profile per account), ``sensor_mappings`` (line
items a user is billed for), ``system_settings`` (a single installation row)
and ``bills`` (immutable bill records with a JSON snapshot).

Column types are portable so the same models run on PostgreSQL (asyncpg)
in production and SQLite (aiosqlite) in tests.

CHANGELOG:
- 2026-03-10: Store bill snapshot as typed JSON (STORY-014)
- 2026-03-02: Initial creation (STORY-003)

TODO:
- None
"""

import datetime
import uuid

from sqlalchemy import JSON, Boolean, DateTime, Double, ForeignKey, Integer, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pvbilling.models import (
    DEFAULT_GRID_BUFFER_WATTS,
    DEFAULT_GRID_EXPORT_PRICE,
    DEFAULT_GRID_FALLBACK_PRICE,
    DEFAULT_INTERNAL_PRICE,
)

SYSTEM_SETTINGS_ID = 1


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all billing ORM models."""

    pass


class User(Base):
    """Account with its billing policy.

    Attributes:
        id: User identifier.
        email: Login / display email, unique.
        role: ``ADMIN`` or ``USER``.
        enable_pv_billing: Whether PV/battery sourcing may be billed at the
            internal rate for this user.
        custom_internal_rate: Overrides the installation's internal price.
        custom_grid_buffer: Overrides the installation's grid buffer (W).
        allow_battery_pricing: Lets battery discharge count as internal.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="USER")
    enable_pv_billing: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    custom_internal_rate: Mapped[float | None] = mapped_column(Double, nullable=True)
    custom_grid_buffer: Mapped[int | None] = mapped_column(Integer, nullable=True)
    allow_battery_pricing: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        """Return string representation of the User."""
        return f"User(id={self.id!r}, email={self.email!r}, role={self.role!r})"


class SensorMapping(Base):
    """One billed line item of a user.

    ``position`` fixes the mapping order used when summing results, which
    keeps recomputed bills identical.
    """

    __tablename__ = "sensor_mappings"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    usage_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    power_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_sensor_id: Mapped[str] = mapped_column(Text, nullable=False)
    factor: Mapped[float] = mapped_column(Double, nullable=False, default=1.0)
    is_virtual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    virtual_group_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of the SensorMapping."""
        return f"SensorMapping(id={self.id!r}, label={self.label!r})"


class SystemSettingsRow(Base):
    """Installation-wide settings, stored as a single row."""

    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SYSTEM_SETTINGS_ID)
    pv_power_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    grid_power_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    grid_import_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    grid_export_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    grid_export_kwh_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    battery_power_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    battery_level_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_price_sensor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    invert_battery_sign: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    invert_grid_sign: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    internal_price: Mapped[float] = mapped_column(
        Double, nullable=False, default=DEFAULT_INTERNAL_PRICE
    )
    grid_export_price: Mapped[float] = mapped_column(
        Double, nullable=False, default=DEFAULT_GRID_EXPORT_PRICE
    )
    grid_fallback_price: Mapped[float] = mapped_column(
        Double, nullable=False, default=DEFAULT_GRID_FALLBACK_PRICE
    )
    global_grid_buffer_watts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_GRID_BUFFER_WATTS
    )

    def __repr__(self) -> str:
        """Return string representation of the settings row."""
        return f"SystemSettingsRow(id={self.id!r})"


class Bill(Base):
    """A generated bill. Immutable once created; cancelling deletes it.

    Attributes:
        total_amount: Total cost of the period.
        profit: Total cost minus external (grid) cost.
        snapshot: ``BillSnapshot`` JSON (``schema_version`` + typed lines).
    """

    __tablename__ = "bills"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    end_date: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_usage: Mapped[float] = mapped_column(Double, nullable=False)
    total_amount: Mapped[float] = mapped_column(Double, nullable=False)
    profit: Mapped[float] = mapped_column(Double, nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        """Return string representation of the Bill."""
        return (
            f"Bill(id={self.id!r}, user_id={self.user_id!r}, "
            f"total_amount={self.total_amount!r})"
        )
