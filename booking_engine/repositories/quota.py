from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from booking_engine.core.errors import InvalidRequestError, NotFoundError, QuotaExceededError
from booking_engine.core.settings import settings
from booking_engine.models.appointment import Appointment
from booking_engine.models.tenant import Tenant
from booking_engine.services.ports import APPOINTMENTS_PER_MONTH


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SqlTenantQuota:
    """Limites do plano do tenant; hoje só agendamentos por mês."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = _utcnow) -> None:
        self.db = db
        self._clock = clock

    def _month_start(self, tenant: Tenant) -> datetime:
        tz = ZoneInfo(tenant.timezone or settings.DEFAULT_TIMEZONE)
        local_today = self._clock().astimezone(tz).date()
        first = local_today.replace(day=1)
        return datetime.combine(first, time.min).replace(tzinfo=tz).astimezone(UTC)

    def enforce_limit(self, tenant_id: str, limit_name: str, amount: int = 1) -> None:
        if limit_name != APPOINTMENTS_PER_MONTH:
            raise InvalidRequestError("Limite desconhecido", limit_name=limit_name)

        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)
        limit = tenant.monthly_appointment_limit
        if limit is None:
            return

        current = self.db.scalar(
            select(func.count(Appointment.id)).where(
                Appointment.tenant_id == tenant_id,
                Appointment.created_at >= self._month_start(tenant),
            )
        )
        if current + amount > limit:
            raise QuotaExceededError(limit_name, limit, current)
