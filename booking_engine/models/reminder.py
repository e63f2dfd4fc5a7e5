from __future__ import annotations

import datetime as dt

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_engine.db.base_class import Base
from booking_engine.db.types import UTCDateTime, utcnow


class AppointmentReminder(Base):
    """Lembrete programado; o job ``send_reminders`` dispara os vencidos."""

    __tablename__ = "appointment_reminders"
    __table_args__ = (Index("ix_reminder_due", "sent_at", "cancelled_at", "send_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appointment_id: Mapped[str] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(40), nullable=False)  # ex.: "T-24h"
    hours_before: Mapped[int] = mapped_column(Integer, nullable=False)
    send_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    sent_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )

    appointment = relationship("Appointment")
