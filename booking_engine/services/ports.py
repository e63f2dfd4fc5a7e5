"""Colaboradores externos do orquestrador.

O ``Scheduler`` só conhece estes protocolos; as implementações SQL ficam em
``booking_engine.repositories`` e os testes usam fakes simples.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from booking_engine.models.appointment import Appointment, AppointmentStatus
from booking_engine.services.calendar import (
    BlockedTimeEntry,
    BookedSlot,
    ProfessionalAvailabilityConfig,
    WorkingHoursTemplate,
)

Clock = Callable[[], datetime]

OVERRIDE_ROLES = frozenset({"admin", "owner"})

APPOINTMENTS_PER_MONTH = "appointments_per_month"


@dataclass(frozen=True)
class Actor:
    id: str | None = None
    role: str = "client"

    @property
    def can_override(self) -> bool:
        # pular verificação de conflito e agendar no passado
        return self.role in OVERRIDE_ROLES


@dataclass(frozen=True)
class ServiceInfo:
    id: str
    name: str
    duration_minutes: int
    price: Decimal


@dataclass(frozen=True)
class TenantPolicy:
    auto_confirm: bool = False


class ServiceCatalog(Protocol):
    def get_services(
        self, tenant_id: str, service_ids: Sequence[str]
    ) -> list[ServiceInfo]:
        """Na mesma ordem pedida; NotFoundError para id ausente ou inativo."""
        ...


class TenantQuota(Protocol):
    def enforce_limit(self, tenant_id: str, limit_name: str, amount: int = 1) -> None:
        """QuotaExceededError quando ``amount`` novos itens estourariam o plano."""
        ...


class ReminderScheduler(Protocol):
    def schedule_reminders(self, appointment: Appointment) -> None: ...

    def cancel_reminders(self, appointment_id: str) -> None: ...

    def reschedule_reminders(self, appointment: Appointment) -> None: ...


class EventPublisher(Protocol):
    def emit(self, event: str, payload: dict[str, Any]) -> None: ...


class CalendarReader(Protocol):
    """Leituras da agenda usadas fora da transação de escrita."""

    def get_config(
        self, tenant_id: str, professional_id: str
    ) -> ProfessionalAvailabilityConfig: ...

    def get_tenant_policy(self, tenant_id: str) -> TenantPolicy: ...

    def get_working_hours(
        self, tenant_id: str, professional_id: str
    ) -> WorkingHoursTemplate: ...

    def get_blocked_times(
        self, tenant_id: str, professional_id: str, start: datetime, end: datetime
    ) -> list[BlockedTimeEntry]: ...

    def get_appointments(
        self, tenant_id: str, professional_id: str, start: datetime, end: datetime
    ) -> list[BookedSlot]: ...


class AppointmentStore(Protocol):
    """Escritas de agendamento; tudo dentro de ``transaction()``."""

    def transaction(self) -> AbstractContextManager[None]:
        """Commit ao sair; conflito de escrita vira StoreConflictError."""
        ...

    def lock_professional(self, tenant_id: str, professional_id: str) -> None: ...

    def find_by_id(
        self, tenant_id: str, appointment_id: str, *, for_update: bool = False
    ) -> Appointment | None: ...

    def find_by_professional_and_date_range(
        self, tenant_id: str, professional_id: str, start: datetime, end: datetime
    ) -> list[Appointment]: ...

    def find_by_recurrence_group(
        self, tenant_id: str, recurrence_group_id: str
    ) -> list[Appointment]: ...

    def find_stale(
        self,
        status: AppointmentStatus,
        *,
        scheduled_before: datetime | None = None,
        created_before: datetime | None = None,
    ) -> list[Appointment]: ...

    def create(self, appointment: Appointment) -> Appointment: ...

    def update(self, appointment: Appointment) -> Appointment: ...

    def record_audit(
        self,
        *,
        tenant_id: str,
        actor_id: str | None,
        action: str,
        entity_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None: ...
