"""initial scheduling schema

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-18 09:12:41.503112

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op
from booking_engine.db.types import UTCDateTime

# revision identifiers, used by Alembic.
revision: str = "3f1c2a9b7d10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

INDEX_NAME = "ux_appt_prof_start_active"
ACTIVE_SQL = "status IN ('PENDING','CONFIRMED','WAITING','IN_PROGRESS','COMPLETED')"

appointment_status = sa.Enum(
    "PENDING",
    "CONFIRMED",
    "WAITING",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    "NO_SHOW",
    name="appointment_status_enum",
)
cancellation_reason = sa.Enum(
    "CUSTOMER_REQUEST",
    "PROFESSIONAL_UNAVAILABLE",
    "DUPLICATE",
    "BUSINESS_CLOSED",
    "RESCHEDULED",
    "AUTO_CANCELLED",
    "OTHER",
    name="cancellation_reason_enum",
)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("timezone", sa.String(64)),
        sa.Column("auto_confirm", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("monthly_appointment_limit", sa.Integer()),
        sa.Column("default_slot_interval", sa.Integer()),
        sa.Column("min_advance_booking_hours", sa.Integer()),
        sa.Column("max_advance_booking_days", sa.Integer()),
        sa.Column("created_at", UTCDateTime(), nullable=False),
    )

    op.create_table(
        "professionals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(36),
            sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("slot_interval", sa.Integer()),
        sa.Column("buffer_before", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buffer_after", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
        sa.CheckConstraint("buffer_before >= 0", name="ck_prof_buffer_before"),
        sa.CheckConstraint("buffer_after >= 0", name="ck_prof_buffer_after"),
    )
    op.create_index("ix_prof_tenant_id", "professionals", ["tenant_id"])

    op.create_table(
        "working_hours",
        sa.Column(
            "professional_id",
            sa.String(36),
            sa.ForeignKey("professionals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("break_start", sa.Time()),
        sa.Column("break_end", sa.Time()),
        sa.PrimaryKeyConstraint("professional_id", "weekday", name="pk_working_hours"),
        sa.CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_wh_weekday"),
        sa.CheckConstraint("end_time > start_time", name="ck_wh_time_order"),
        sa.CheckConstraint(
            "(break_start IS NULL AND break_end IS NULL) OR "
            "(break_start IS NOT NULL AND break_end IS NOT NULL "
            "AND break_end > break_start)",
            name="ck_wh_break",
        ),
    )

    op.create_table(
        "blocked_times",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "professional_id",
            sa.String(36),
            sa.ForeignKey("professionals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("starts_at", UTCDateTime(), nullable=False),
        sa.Column("ends_at", UTCDateTime(), nullable=False),
        sa.Column("is_all_day", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reason", sa.String(160)),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.CheckConstraint("ends_at > starts_at", name="ck_block_time_order"),
    )
    op.create_index(
        "ix_block_prof_period", "blocked_times", ["professional_id", "starts_at", "ends_at"]
    )

    op.create_table(
        "services",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(36),
            sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("duration_minutes > 0", name="ck_service_duration"),
    )
    op.create_index("ix_services_tenant_id", "services", ["tenant_id"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(36),
            sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("client_id", sa.String(36), nullable=False),
        sa.Column(
            "professional_id",
            sa.String(36),
            sa.ForeignKey("professionals.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", appointment_status, nullable=False),
        sa.Column("scheduled_at", UTCDateTime(), nullable=False),
        sa.Column("end_time", UTCDateTime(), nullable=False),
        sa.Column("total_duration", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("recurrence_group_id", sa.String(36)),
        sa.Column("recurrence_index", sa.Integer()),
        sa.Column("cancellation_reason", cancellation_reason),
        sa.Column("cancellation_details", sa.Text()),
        sa.Column("rescheduled_from", UTCDateTime()),
        sa.Column("reschedule_reason", sa.Text()),
        sa.Column("rescheduled_at", UTCDateTime()),
        sa.Column("confirmed_at", UTCDateTime()),
        sa.Column("checked_in_at", UTCDateTime()),
        sa.Column("started_at", UTCDateTime()),
        sa.Column("completed_at", UTCDateTime()),
        sa.Column("cancelled_at", UTCDateTime()),
        sa.Column("no_show_at", UTCDateTime()),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
        sa.CheckConstraint("end_time > scheduled_at", name="ck_appt_time_order"),
    )
    # só um agendamento ATIVO por (profissional, início)
    op.create_index(
        INDEX_NAME,
        "appointments",
        ["professional_id", "scheduled_at"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_SQL),
        sqlite_where=sa.text(ACTIVE_SQL),
    )
    op.create_index(
        "ix_appt_prof_period",
        "appointments",
        ["professional_id", "scheduled_at", "end_time"],
    )
    op.create_index("ix_appt_tenant_created", "appointments", ["tenant_id", "created_at"])
    op.create_index("ix_appt_recurrence_group", "appointments", ["recurrence_group_id"])

    op.create_table(
        "appointment_services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "appointment_id",
            sa.String(36),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "service_id",
            sa.String(36),
            sa.ForeignKey("services.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index(
        "ix_appointment_services_appointment_id",
        "appointment_services",
        ["appointment_id"],
    )

    op.create_table(
        "appointment_reminders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "appointment_id",
            sa.String(36),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column("hours_before", sa.Integer(), nullable=False),
        sa.Column("send_at", UTCDateTime(), nullable=False),
        sa.Column("sent_at", UTCDateTime()),
        sa.Column("cancelled_at", UTCDateTime()),
        sa.Column("created_at", UTCDateTime(), nullable=False),
    )
    op.create_index(
        "ix_appointment_reminders_appointment_id",
        "appointment_reminders",
        ["appointment_id"],
    )
    op.create_index(
        "ix_reminder_due", "appointment_reminders", ["sent_at", "cancelled_at", "send_at"]
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("actor_id", sa.String(36)),
        sa.Column("action", sa.String(80), nullable=False),
        sa.Column("entity", sa.String(80), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("details", sa.JSON()),
        sa.Column("timestamp_utc", UTCDateTime(), nullable=False),
    )
    op.create_index("ix_audit_timestamp_utc", "audit_logs", ["timestamp_utc"])
    op.create_index(
        "ix_audit_tenant_entity", "audit_logs", ["tenant_id", "entity", "entity_id"]
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("appointment_reminders")
    op.drop_table("appointment_services")
    op.drop_index(INDEX_NAME, table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("services")
    op.drop_table("blocked_times")
    op.drop_table("working_hours")
    op.drop_table("professionals")
    op.drop_table("tenants")
    cancellation_reason.drop(op.get_bind(), checkfirst=True)
    appointment_status.drop(op.get_bind(), checkfirst=True)
