from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from booking_engine.audit.helpers import record_audit
from booking_engine.core.errors import InvalidRequestError, NotFoundError, StoreConflictError
from booking_engine.core.logging import get_logger
from booking_engine.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
)
from booking_engine.models.professional import Professional

# mensagens de contenção que valem uma nova tentativa
_CONTENTION_MARKERS = (
    "database is locked",
    "deadlock",
    "could not serialize",
    "serialization failure",
    "lock timeout",
)


def _is_contention(exc: OperationalError) -> bool:
    msg = str(exc.orig).lower()
    return any(marker in msg for marker in _CONTENTION_MARKERS)


class SqlAppointmentStore:
    def __init__(self, db: Session) -> None:
        self.db = db
        self._log = get_logger(component="appointment_store")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            # corrida: unique parcial (professional_id, scheduled_at)
            self._log.warning("store.integrity_conflict", error=str(exc.orig))
            raise StoreConflictError(
                "O horário acabou de ser reservado por outra pessoa"
            ) from exc
        except OperationalError as exc:
            self.db.rollback()
            if _is_contention(exc):
                self._log.warning("store.contention", error=str(exc.orig))
                raise StoreConflictError("Escrita concorrente na agenda") from exc
            raise
        except BaseException:
            self.db.rollback()
            raise

    def lock_professional(self, tenant_id: str, professional_id: str) -> None:
        # serializa escritas na agenda do profissional (no-op no SQLite)
        prof = self.db.scalars(
            select(Professional)
            .where(
                Professional.id == professional_id,
                Professional.tenant_id == tenant_id,
            )
            .with_for_update()
        ).first()
        if prof is None:
            raise NotFoundError("Profissional", professional_id)
        if not prof.is_active:
            raise InvalidRequestError("Profissional inativo", professional_id=professional_id)

    def find_by_id(
        self, tenant_id: str, appointment_id: str, *, for_update: bool = False
    ) -> Appointment | None:
        stmt = select(Appointment).where(
            Appointment.id == appointment_id, Appointment.tenant_id == tenant_id
        )
        if for_update:
            # recarrega a linha travada por cima do que já está na sessão
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.scalars(stmt).first()

    def find_by_professional_and_date_range(
        self, tenant_id: str, professional_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        return list(
            self.db.scalars(
                select(Appointment)
                .where(
                    Appointment.tenant_id == tenant_id,
                    Appointment.professional_id == professional_id,
                    Appointment.status.in_(ACTIVE_STATUSES),
                    Appointment.scheduled_at < end,
                    Appointment.end_time > start,
                )
                .order_by(Appointment.scheduled_at)
            )
        )

    def find_by_recurrence_group(
        self, tenant_id: str, recurrence_group_id: str
    ) -> list[Appointment]:
        return list(
            self.db.scalars(
                select(Appointment)
                .where(
                    Appointment.tenant_id == tenant_id,
                    Appointment.recurrence_group_id == recurrence_group_id,
                )
                .order_by(Appointment.recurrence_index)
            )
        )

    def find_stale(
        self,
        status: AppointmentStatus,
        *,
        scheduled_before: datetime | None = None,
        created_before: datetime | None = None,
    ) -> list[Appointment]:
        stmt = select(Appointment).where(Appointment.status == status)
        if scheduled_before is not None:
            stmt = stmt.where(Appointment.scheduled_at < scheduled_before)
        if created_before is not None:
            stmt = stmt.where(Appointment.created_at < created_before)
        return list(self.db.scalars(stmt.order_by(Appointment.scheduled_at)))

    def create(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()  # dispara o unique parcial ainda dentro da transação
        return appointment

    def update(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def record_audit(
        self,
        *,
        tenant_id: str,
        actor_id: str | None,
        action: str,
        entity_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        record_audit(
            self.db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=action,
            entity="appointment",
            entity_id=entity_id,
            details=details,
        )
