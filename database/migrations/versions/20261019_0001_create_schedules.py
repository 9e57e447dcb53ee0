"""create schedules

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=False),
        sa.Column("end_time", sa.String(length=8), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("rrule", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("academic_year", sa.String(length=20), nullable=True),
        sa.Column("schedule_type", sa.String(length=50), nullable=True),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("exceptions", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedules_name", "schedules", ["name"], unique=False)
    op.create_index("ix_schedules_schedule_type", "schedules", ["schedule_type"], unique=False)
    op.create_index("ix_schedules_is_deleted", "schedules", ["is_deleted"], unique=False)

    op.create_table(
        "schedule_time_overrides",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "schedule_id",
            sa.String(length=36),
            sa.ForeignKey("schedules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("override_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=True),
        sa.Column("end_time", sa.String(length=8), nullable=True),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_by", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("schedule_id", "override_date", name="uq_schedule_time_overrides_date"),
    )
    op.create_index(
        "ix_schedule_time_overrides_schedule_id", "schedule_time_overrides", ["schedule_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_schedule_time_overrides_schedule_id", table_name="schedule_time_overrides")
    op.drop_table("schedule_time_overrides")
    op.drop_index("ix_schedules_is_deleted", table_name="schedules")
    op.drop_index("ix_schedules_schedule_type", table_name="schedules")
    op.drop_index("ix_schedules_name", table_name="schedules")
    op.drop_table("schedules")
