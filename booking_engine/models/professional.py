from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_engine.db.base_class import Base
from booking_engine.db.types import UTCDateTime, utcnow


class Professional(Base):
    __tablename__ = "professionals"
    __table_args__ = (
        CheckConstraint("buffer_before >= 0", name="ck_prof_buffer_before"),
        CheckConstraint("buffer_after >= 0", name="ck_prof_buffer_after"),
        Index("ix_prof_tenant_id", "tenant_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # sobrescreve o intervalo padrão do tenant quando preenchido
    slot_interval: Mapped[int | None] = mapped_column(Integer)
    buffer_before: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    buffer_after: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow
    )

    tenant = relationship("Tenant", lazy="joined")
    working_hours = relationship(
        "WorkingHours", cascade="all, delete-orphan", lazy="selectin"
    )
