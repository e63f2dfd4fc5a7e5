from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from booking_engine.db.base_class import Base
from booking_engine.db.types import UTCDateTime


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_timestamp_utc", "timestamp_utc"),
        Index("ix_audit_tenant_entity", "tenant_id", "entity", "entity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(
        String(80), nullable=False
    )  # e.g. "CREATE","RESCHEDULE","SKIP_CONFLICT_CHECK"
    entity: Mapped[str] = mapped_column(String(80), nullable=False)  # e.g. "appointment"
    entity_id: Mapped[str | None] = mapped_column(String(36))
    details: Mapped[dict | None] = mapped_column(JSON)
    timestamp_utc: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
