"""create trips, stops and attendance

Revision ID: 20261019_0003
Revises: 20261019_0002
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0003"
down_revision = "20261019_0002"
branch_labels = None
depends_on = None


trip_status = sa.Enum("Scheduled", "InProgress", "Completed", "Cancelled", "Delayed", name="trip_status")
attendance_state = sa.Enum("Present", "Absent", "Late", "Excused", "Pending", name="attendance_state")


def upgrade() -> None:
    op.create_table(
        "trips",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("route_id", sa.String(length=36), sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("schedule_id", sa.String(length=36), nullable=True),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("planned_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("planned_end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", trip_status, nullable=False, server_default="Scheduled"),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("schedule_snapshot", sa.JSON(), nullable=False),
        sa.Column("is_override", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("override_reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("override_created_by", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("override_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("override_info", sa.JSON(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_trips_route_id", "trips", ["route_id"], unique=False)
    op.create_index("ix_trips_status", "trips", ["status"], unique=False)
    op.create_index("ix_trips_schedule_service_date", "trips", ["schedule_id", "service_date"], unique=False)
    op.create_index(
        "uq_trips_route_service_date_planned_start",
        "trips",
        ["route_id", "service_date", "planned_start_at"],
        unique=True,
        sqlite_where=sa.text("is_deleted = 0"),
        postgresql_where=sa.text("is_deleted = false"),
    )

    op.create_table(
        "trip_stops",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("trip_id", sa.String(length=36), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("pickup_point_id", sa.String(length=36), nullable=False),
        sa.Column("planned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("departed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_snapshot", sa.JSON(), nullable=False),
    )
    op.create_index("ix_trip_stops_trip_id", "trip_stops", ["trip_id"], unique=False)

    op.create_table(
        "trip_attendance",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "stop_id", sa.String(length=36), sa.ForeignKey("trip_stops.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("state", attendance_state, nullable=False, server_default="Pending"),
        sa.Column("boarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("alighted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("stop_id", "student_id", name="uq_trip_attendance_student"),
    )
    op.create_index("ix_trip_attendance_stop_id", "trip_attendance", ["stop_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_trip_attendance_stop_id", table_name="trip_attendance")
    op.drop_table("trip_attendance")
    op.drop_index("ix_trip_stops_trip_id", table_name="trip_stops")
    op.drop_table("trip_stops")
    op.drop_index("uq_trips_route_service_date_planned_start", table_name="trips")
    op.drop_index("ix_trips_schedule_service_date", table_name="trips")
    op.drop_index("ix_trips_status", table_name="trips")
    op.drop_index("ix_trips_route_id", table_name="trips")
    op.drop_table("trips")
    attendance_state.drop(op.get_bind(), checkfirst=True)
    trip_status.drop(op.get_bind(), checkfirst=True)
