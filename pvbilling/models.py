"""
Pydantic models for mappings, settings, pricing policy and engine results.

These are the plain domain values that flow through the engine. They are
independent of the ORM (see ``pvbilling.db.models``) and of the HTTP layer,
so the engine can be called from tests, scripts, or route handlers alike.

CHANGELOG:
- 2026-03-10: Typed bill snapshot with schema_version, BillRecord (STORY-014)
- 2026-03-06: Add live, export and history result models (STORY-011)
- 2026-03-02: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

SNAPSHOT_SCHEMA_VERSION = 1

DEFAULT_INTERNAL_PRICE = 0.15
DEFAULT_GRID_EXPORT_PRICE = 0.08
DEFAULT_GRID_FALLBACK_PRICE = 0.30
DEFAULT_GRID_BUFFER_WATTS = 200


# ---------------------------------------------------------------------------
# Inputs: mappings, users, settings, rules
# ---------------------------------------------------------------------------


class SensorMapping(BaseModel):
    """One line item a user is billed for.

    Attributes:
        id: Persistence identifier (None for ad-hoc mappings).
        user_id: Owning user.
        label: Display name. Virtual group members are labelled
            ``"<group label> - <component>"``.
        usage_sensor_id: Monotonic energy counter series (kWh).
        power_sensor_id: Optional instantaneous power series.
        price_sensor_id: Grid price series for this line.
        factor: Signed scaling factor; negative values subtract.
        is_virtual: Marks a virtual meter or virtual group component.
        virtual_group_id: Group identifier shared by the members of one
            combined meter.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    user_id: str
    label: str
    usage_sensor_id: str | None = None
    power_sensor_id: str | None = None
    price_sensor_id: str
    factor: float = 1.0
    is_virtual: bool = False
    virtual_group_id: str | None = None

    @property
    def is_container(self) -> bool:
        """True for organizational virtual entries without a counter."""
        return self.is_virtual and not self.usage_sensor_id


class UserBillingProfile(BaseModel):
    """Per-user billing policy as stored alongside the user account."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: str = "USER"
    enable_pv_billing: bool = False
    custom_internal_rate: float | None = None
    custom_grid_buffer: int | None = None
    allow_battery_pricing: bool = False


class SystemSettings(BaseModel):
    """Installation-wide sensors and prices, passed explicitly to every call.

    Grid power is either one bidirectional sensor (``grid_power_sensor_id``,
    positive = import) or separate ``grid_import_sensor_id`` /
    ``grid_export_sensor_id`` power sensors. ``grid_export_kwh_sensor_id`` is
    the export energy counter used for export revenue.

    ``invert_battery_sign`` is set when the battery sensor reports charging
    as positive; normalized battery power is always positive when
    discharging. ``invert_grid_sign`` does the same for a bidirectional grid
    sensor that reports export as positive.
    """

    model_config = ConfigDict(from_attributes=True)

    pv_power_sensor_id: str | None = None
    grid_power_sensor_id: str | None = None
    grid_import_sensor_id: str | None = None
    grid_export_sensor_id: str | None = None
    grid_export_kwh_sensor_id: str | None = None
    battery_power_sensor_id: str | None = None
    battery_level_sensor_id: str | None = None
    reference_price_sensor_id: str | None = None
    invert_battery_sign: bool = True
    invert_grid_sign: bool = False
    internal_price: float = DEFAULT_INTERNAL_PRICE
    grid_export_price: float = DEFAULT_GRID_EXPORT_PRICE
    grid_fallback_price: float = DEFAULT_GRID_FALLBACK_PRICE
    global_grid_buffer_watts: int = DEFAULT_GRID_BUFFER_WATTS


class PricingRules(BaseModel):
    """Pricing policy derived per user per calculation.

    ``grid_buffer_watts`` is a large negative sentinel when PV billing is
    disabled for the user, which makes every interval external.
    """

    model_config = ConfigDict(frozen=True)

    internal_price: float
    grid_fallback_price: float
    grid_buffer_watts: float
    allow_battery_pricing: bool = False


# ---------------------------------------------------------------------------
# Engine intermediates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SystemIntervalData:
    """Merged system state for one time bucket.

    Attributes:
        ts: Bucket start (UTC).
        grid_price: Grid price per kWh (carried forward across gaps).
        grid_import: Grid import power in watts (0 when exporting).
        battery_discharge: Battery power in watts, positive = discharging.
        pv_production: PV production power in watts.
    """

    ts: datetime
    grid_price: float = 0.0
    grid_import: float = 0.0
    battery_discharge: float = 0.0
    pv_production: float = 0.0


@dataclass(frozen=True)
class PricedInterval:
    """Usage of one mapping in one bucket after classification and pricing."""

    ts: datetime
    usage: float
    price: float
    cost: float
    is_internal: bool


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class CostBreakdown(BaseModel):
    """Usage and cost totals with their internal/external split."""

    usage: float = 0.0
    cost: float = 0.0
    usage_internal: float = 0.0
    usage_external: float = 0.0
    cost_internal: float = 0.0
    cost_external: float = 0.0

    def add(self, other: CostBreakdown) -> CostBreakdown:
        """Return the field-wise sum of two breakdowns."""
        return CostBreakdown(
            usage=self.usage + other.usage,
            cost=self.cost + other.cost,
            usage_internal=self.usage_internal + other.usage_internal,
            usage_external=self.usage_external + other.usage_external,
            cost_internal=self.cost_internal + other.cost_internal,
            cost_external=self.cost_external + other.cost_external,
        )


class MappingResult(BaseModel):
    """Calculation result for a single sensor mapping."""

    mapping: SensorMapping
    breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    intervals: list[PricedInterval] = Field(default_factory=list, exclude=True)
    reset_intervals: int = 0
    outlier_intervals: int = 0
    degraded: bool = False


class MappingLine(BaseModel):
    """Snapshot line for a standalone mapping."""

    kind: Literal["mapping"] = "mapping"
    label: str
    sensor_id: str | None
    factor: float
    usage: float
    cost: float
    usage_internal: float
    usage_external: float
    cost_internal: float
    cost_external: float


class VirtualGroupLine(BaseModel):
    """Snapshot line for a virtual group folded into one combined meter."""

    kind: Literal["virtual_group"] = "virtual_group"
    group_id: str
    label: str
    components: list[str]
    usage: float
    cost: float
    usage_internal: float
    usage_external: float
    cost_internal: float
    cost_external: float


SnapshotLine = Annotated[MappingLine | VirtualGroupLine, Field(discriminator="kind")]


class BillSnapshot(BaseModel):
    """Versioned per-line breakdown persisted with a bill."""

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    lines: list[SnapshotLine] = Field(default_factory=list)


class UsageReport(BaseModel):
    """Aggregate result of a billing calculation over a date range."""

    start: datetime
    end: datetime
    totals: CostBreakdown
    profit: float
    lines: list[SnapshotLine]
    mappings: list[MappingResult]

    def snapshot(self) -> BillSnapshot:
        """Return the persisted form of the line breakdown."""
        return BillSnapshot(lines=self.lines)


class LiveEstimate(BaseModel):
    """Near-real-time estimate for one mapping."""

    usage_kw: float = 0.0
    cost_per_hour: float = 0.0
    current_price: float = 0.0
    is_live: bool = False


class LiveLine(BaseModel):
    """Dashboard line: one mapping or one folded virtual group."""

    label: str
    usage_kw: float
    cost_per_hour: float
    current_price: float
    is_virtual: bool
    is_live: bool
    component_count: int = 1


class LiveReport(BaseModel):
    """Live dashboard figures for a user."""

    usage_kw: float
    cost_per_hour: float
    price_per_kwh: float
    timestamp: datetime
    mapping_count: int
    details: list[LiveLine]


class SystemStatus(BaseModel):
    """Instantaneous installation readings (kW, battery level unscaled)."""

    pv_power: float = 0.0
    grid_import: float = 0.0
    grid_export: float = 0.0
    battery_power: float = 0.0
    battery_level: float = 0.0


class ExportRevenue(BaseModel):
    """Revenue from energy fed into the grid over a period."""

    total_export_kwh: float = 0.0
    revenue: float = 0.0
    skipped: bool = False


class HistoryPoint(BaseModel):
    """Usage and cost summed across a user's mappings for one bucket."""

    ts: datetime
    usage: float
    cost: float


class UserProfit(BaseModel):
    """Internal-sourcing profit attributed to one user."""

    user_id: str
    email: str
    profit: float
    kwh: float


class ProfitReport(BaseModel):
    """Installation-wide profit for a period."""

    start: datetime
    end: datetime
    total_profit: float
    profit_internal: float
    profit_export: float
    total_internal_kwh: float
    total_export_kwh: float
    users: list[UserProfit]


class BillRecord(BaseModel):
    """A persisted bill as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    start: datetime
    end: datetime
    total_usage: float
    total_amount: float
    profit: float
    snapshot: BillSnapshot
    created_at: datetime
