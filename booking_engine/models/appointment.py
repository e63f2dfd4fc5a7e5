from __future__ import annotations

import datetime as dt
import enum
import uuid
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_engine.db.base_class import Base
from booking_engine.db.types import UTCDateTime, utcnow


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# status que ocupam a agenda do profissional
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.WAITING,
    AppointmentStatus.IN_PROGRESS,
    AppointmentStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }
)


class CancellationReason(str, enum.Enum):
    CUSTOMER_REQUEST = "CUSTOMER_REQUEST"
    PROFESSIONAL_UNAVAILABLE = "PROFESSIONAL_UNAVAILABLE"
    DUPLICATE = "DUPLICATE"
    BUSINESS_CLOSED = "BUSINESS_CLOSED"
    RESCHEDULED = "RESCHEDULED"
    AUTO_CANCELLED = "AUTO_CANCELLED"
    OTHER = "OTHER"


_ACTIVE_SQL = "status IN ({})".format(
    ",".join(f"'{s.value}'" for s in ACTIVE_STATUSES)
)


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False
    )
    client_id: Mapped[str] = mapped_column(String(36), nullable=False)
    professional_id: Mapped[str] = mapped_column(
        ForeignKey("professionals.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status_enum"),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    scheduled_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    total_duration: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )

    recurrence_group_id: Mapped[str | None] = mapped_column(String(36))
    recurrence_index: Mapped[int | None] = mapped_column(Integer)

    cancellation_reason: Mapped[CancellationReason | None] = mapped_column(
        Enum(CancellationReason, name="cancellation_reason_enum")
    )
    cancellation_details: Mapped[str | None] = mapped_column(Text)

    # referência fraca: início anterior ao último reagendamento
    rescheduled_from: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    reschedule_reason: Mapped[str | None] = mapped_column(Text)
    rescheduled_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())

    confirmed_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    checked_in_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    started_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    completed_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    no_show_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow
    )

    services: Mapped[list[AppointmentServiceLine]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentServiceLine.position",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("end_time > scheduled_at", name="ck_appt_time_order"),
        # fingerprint: um único agendamento ativo por (profissional, início)
        Index(
            "ux_appt_prof_start_active",
            "professional_id",
            "scheduled_at",
            unique=True,
            postgresql_where=text(_ACTIVE_SQL),
            sqlite_where=text(_ACTIVE_SQL),
        ),
        Index("ix_appt_prof_period", "professional_id", "scheduled_at", "end_time"),
        Index("ix_appt_tenant_created", "tenant_id", "created_at"),
        Index("ix_appt_recurrence_group", "recurrence_group_id"),
    )


class AppointmentServiceLine(Base):
    __tablename__ = "appointment_services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appointment_id: Mapped[str] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[str] = mapped_column(
        ForeignKey("services.id", ondelete="RESTRICT"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    appointment: Mapped[Appointment] = relationship(back_populates="services")
