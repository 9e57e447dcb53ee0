"""create notifications and read receipts

Revision ID: 20261019_0004
Revises: 20261019_0003
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0004"
down_revision = "20261019_0003"
branch_labels = None
depends_on = None


audience_role = sa.Enum("admin", "scheduler", "driver", "supervisor", name="audience_role")
notification_type = sa.Enum("schedule_change", "trip", "system", name="notification_type")


def upgrade() -> None:
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("audience_role", audience_role, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type, nullable=False, server_default="system"),
        sa.Column("related_entity_type", sa.String(length=50), nullable=True),
        sa.Column("related_entity_id", sa.String(length=36), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_audience_role", "notifications", ["audience_role"], unique=False)
    op.create_table(
        "notification_reads",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "notification_id",
            sa.String(length=36),
            sa.ForeignKey("notifications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("principal_id", sa.String(length=128), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("notification_id", "principal_id", name="uq_notification_reads_principal"),
    )
    op.create_index("ix_notification_reads_notification_id", "notification_reads", ["notification_id"], unique=False)
    op.create_index("ix_notification_reads_principal_id", "notification_reads", ["principal_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notification_reads_principal_id", table_name="notification_reads")
    op.drop_index("ix_notification_reads_notification_id", table_name="notification_reads")
    op.drop_table("notification_reads")
    op.drop_index("ix_notifications_audience_role", table_name="notifications")
    op.drop_table("notifications")
    notification_type.drop(op.get_bind(), checkfirst=True)
    audience_role.drop(op.get_bind(), checkfirst=True)
