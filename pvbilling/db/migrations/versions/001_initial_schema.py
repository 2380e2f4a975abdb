"""
Initial schema: users, sensor_mappings, system_settings and bills.

Revision ID: 001
Revises: None
Create Date: 2026-03-03

CHANGELOG:
- 2026-03-10: bills.snapshot stores the typed BillSnapshot JSON (STORY-014)
- 2026-03-03: Initial creation (STORY-003)

TODO:
- None
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the four billing tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="USER"),
        sa.Column(
            "enable_pv_billing", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("custom_internal_rate", sa.Double(), nullable=True),
        sa.Column("custom_grid_buffer", sa.Integer(), nullable=True),
        sa.Column(
            "allow_battery_pricing",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    op.create_table(
        "sensor_mappings",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Text(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("usage_sensor_id", sa.Text(), nullable=True),
        sa.Column("power_sensor_id", sa.Text(), nullable=True),
        sa.Column("price_sensor_id", sa.Text(), nullable=False),
        sa.Column("factor", sa.Double(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_virtual", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("virtual_group_id", sa.Text(), nullable=True),
    )
    op.create_index("ix_sensor_mappings_user_id", "sensor_mappings", ["user_id"])

    op.create_table(
        "system_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("pv_power_sensor_id", sa.Text(), nullable=True),
        sa.Column("grid_power_sensor_id", sa.Text(), nullable=True),
        sa.Column("grid_import_sensor_id", sa.Text(), nullable=True),
        sa.Column("grid_export_sensor_id", sa.Text(), nullable=True),
        sa.Column("grid_export_kwh_sensor_id", sa.Text(), nullable=True),
        sa.Column("battery_power_sensor_id", sa.Text(), nullable=True),
        sa.Column("battery_level_sensor_id", sa.Text(), nullable=True),
        sa.Column("reference_price_sensor_id", sa.Text(), nullable=True),
        sa.Column(
            "invert_battery_sign", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column(
            "invert_grid_sign", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("internal_price", sa.Double(), nullable=False, server_default=sa.text("0.15")),
        sa.Column(
            "grid_export_price", sa.Double(), nullable=False, server_default=sa.text("0.08")
        ),
        sa.Column(
            "grid_fallback_price", sa.Double(), nullable=False, server_default=sa.text("0.30")
        ),
        sa.Column(
            "global_grid_buffer_watts",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("200"),
        ),
    )

    op.create_table(
        "bills",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Text(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_usage", sa.Double(), nullable=False),
        sa.Column("total_amount", sa.Double(), nullable=False),
        sa.Column("profit", sa.Double(), nullable=False),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_bills_user_id", "bills", ["user_id"])


def downgrade() -> None:
    """Drop all billing tables."""
    op.drop_index("ix_bills_user_id", table_name="bills")
    op.drop_table("bills")
    op.drop_table("system_settings")
    op.drop_index("ix_sensor_mappings_user_id", table_name="sensor_mappings")
    op.drop_table("sensor_mappings")
    op.drop_table("users")
