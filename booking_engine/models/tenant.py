from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from booking_engine.db.base_class import Base
from booking_engine.db.types import UTCDateTime, utcnow


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(64))

    # política do tenant: novos agendamentos já nascem CONFIRMED
    auto_confirm: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    monthly_appointment_limit: Mapped[int | None] = mapped_column(Integer)

    default_slot_interval: Mapped[int | None] = mapped_column(Integer)
    min_advance_booking_hours: Mapped[int | None] = mapped_column(Integer)
    max_advance_booking_days: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )
