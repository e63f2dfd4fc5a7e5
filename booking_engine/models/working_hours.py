from __future__ import annotations

import datetime as dt

from sqlalchemy import CheckConstraint, ForeignKey, Integer, PrimaryKeyConstraint, Time
from sqlalchemy.orm import Mapped, mapped_column

from booking_engine.db.base_class import Base


class WorkingHours(Base):
    """
    Janela semanal de trabalho em hora LOCAL do tenant.
    Uma linha por (profissional, dia); dia sem linha = folga.
    """

    __tablename__ = "working_hours"
    __table_args__ = (
        PrimaryKeyConstraint("professional_id", "weekday", name="pk_working_hours"),
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_wh_weekday"),
        CheckConstraint("end_time > start_time", name="ck_wh_time_order"),
        CheckConstraint(
            "(break_start IS NULL AND break_end IS NULL) OR "
            "(break_start IS NOT NULL AND break_end IS NOT NULL "
            "AND break_end > break_start)",
            name="ck_wh_break",
        ),
    )

    professional_id: Mapped[str] = mapped_column(
        ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    weekday: Mapped[int] = mapped_column(
        Integer, nullable=False
    )  # 0=segunda ... 6=domingo
    start_time: Mapped[dt.time] = mapped_column(Time(), nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time(), nullable=False)
    break_start: Mapped[dt.time | None] = mapped_column(Time())
    break_end: Mapped[dt.time | None] = mapped_column(Time())
