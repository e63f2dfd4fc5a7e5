from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_engine.core.errors import NotFoundError
from booking_engine.core.settings import settings
from booking_engine.models.appointment import ACTIVE_STATUSES, Appointment
from booking_engine.models.blocked_time import BlockedTime
from booking_engine.models.professional import Professional
from booking_engine.models.tenant import Tenant
from booking_engine.models.working_hours import WorkingHours
from booking_engine.services.calendar import (
    BlockedTimeEntry,
    BookedSlot,
    DayHours,
    ProfessionalAvailabilityConfig,
    WorkingHoursTemplate,
)
from booking_engine.services.ports import TenantPolicy
from booking_engine.services.time_ranges import TimeRange


def _first_set(*values):
    for v in values:
        if v is not None:
            return v
    return None


class SqlCalendarReader:
    """
    Leituras da agenda, cada uma na sua própria sessão, para poderem rodar
    em paralelo (ver ``Scheduler``).
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _get_tenant(self, db: Session, tenant_id: str) -> Tenant:
        tenant = db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)
        return tenant

    def get_config(
        self, tenant_id: str, professional_id: str
    ) -> ProfessionalAvailabilityConfig:
        with self._session_factory() as db:
            tenant = self._get_tenant(db, tenant_id)
            prof = db.scalars(
                select(Professional).where(
                    Professional.id == professional_id,
                    Professional.tenant_id == tenant_id,
                )
            ).first()
            if prof is None:
                raise NotFoundError("Profissional", professional_id)

            # profissional > tenant > padrão global
            return ProfessionalAvailabilityConfig(
                professional_id=prof.id,
                timezone=ZoneInfo(tenant.timezone or settings.DEFAULT_TIMEZONE),
                slot_interval=_first_set(
                    prof.slot_interval,
                    tenant.default_slot_interval,
                    settings.DEFAULT_SLOT_INTERVAL,
                ),
                buffer_before=prof.buffer_before or 0,
                buffer_after=prof.buffer_after or 0,
                min_advance_booking_hours=_first_set(
                    tenant.min_advance_booking_hours,
                    settings.DEFAULT_MIN_ADVANCE_BOOKING_HOURS,
                ),
                max_advance_booking_days=_first_set(
                    tenant.max_advance_booking_days,
                    settings.DEFAULT_MAX_ADVANCE_BOOKING_DAYS,
                ),
            )

    def get_tenant_policy(self, tenant_id: str) -> TenantPolicy:
        with self._session_factory() as db:
            tenant = self._get_tenant(db, tenant_id)
            return TenantPolicy(auto_confirm=bool(tenant.auto_confirm))

    def get_working_hours(
        self, tenant_id: str, professional_id: str
    ) -> WorkingHoursTemplate:
        with self._session_factory() as db:
            rows = db.scalars(
                select(WorkingHours)
                .join(Professional, Professional.id == WorkingHours.professional_id)
                .where(
                    WorkingHours.professional_id == professional_id,
                    Professional.tenant_id == tenant_id,
                )
            ).all()
            return {
                r.weekday: DayHours(r.start_time, r.end_time, r.break_start, r.break_end)
                for r in rows
            }

    def get_blocked_times(
        self, tenant_id: str, professional_id: str, start: datetime, end: datetime
    ) -> list[BlockedTimeEntry]:
        # folga de um dia: bloqueios de dia inteiro se expandem no fuso local
        lo, hi = start - timedelta(days=1), end + timedelta(days=1)
        with self._session_factory() as db:
            rows = db.scalars(
                select(BlockedTime)
                .join(Professional, Professional.id == BlockedTime.professional_id)
                .where(
                    BlockedTime.professional_id == professional_id,
                    Professional.tenant_id == tenant_id,
                    BlockedTime.starts_at < hi,
                    BlockedTime.ends_at > lo,
                )
                .order_by(BlockedTime.starts_at)
            ).all()
            return [
                BlockedTimeEntry(
                    id=r.id,
                    professional_id=r.professional_id,
                    range=TimeRange(r.starts_at, r.ends_at),
                    is_all_day=r.is_all_day,
                    reason=r.reason,
                )
                for r in rows
            ]

    def get_appointments(
        self, tenant_id: str, professional_id: str, start: datetime, end: datetime
    ) -> list[BookedSlot]:
        with self._session_factory() as db:
            rows = db.execute(
                select(
                    Appointment.id,
                    Appointment.scheduled_at,
                    Appointment.end_time,
                    Appointment.status,
                )
                .where(
                    Appointment.tenant_id == tenant_id,
                    Appointment.professional_id == professional_id,
                    Appointment.status.in_(ACTIVE_STATUSES),
                    Appointment.scheduled_at < end,
                    Appointment.end_time > start,
                )
                .order_by(Appointment.scheduled_at)
            ).all()
            return [BookedSlot(*row) for row in rows]
