"""create routes and route schedules

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "routes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "route_pickup_points",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("route_id", sa.String(length=36), sa.ForeignKey("routes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pickup_point_id", sa.String(length=36), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=False, server_default=""),
        sa.UniqueConstraint("route_id", "sequence_order", name="uq_route_pickup_points_sequence"),
    )
    op.create_index("ix_route_pickup_points_route_id", "route_pickup_points", ["route_id"], unique=False)

    op.create_table(
        "route_schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("route_id", sa.String(length=36), sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("schedule_id", sa.String(length=36), sa.ForeignKey("schedules.id"), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_route_schedules_route_id", "route_schedules", ["route_id"], unique=False)
    op.create_index("ix_route_schedules_schedule_id", "route_schedules", ["schedule_id"], unique=False)
    op.create_index(
        "ix_route_schedules_route_window",
        "route_schedules",
        ["route_id", "effective_from", "effective_to"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_route_schedules_route_window", table_name="route_schedules")
    op.drop_index("ix_route_schedules_schedule_id", table_name="route_schedules")
    op.drop_index("ix_route_schedules_route_id", table_name="route_schedules")
    op.drop_table("route_schedules")
    op.drop_index("ix_route_pickup_points_route_id", table_name="route_pickup_points")
    op.drop_table("route_pickup_points")
    op.drop_table("routes")
