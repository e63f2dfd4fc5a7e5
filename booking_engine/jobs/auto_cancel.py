"""Manutenção periódica da agenda.

- PENDING sem confirmação depois de ``CONFIRMATION_TIMEOUT_MINUTES`` é
  cancelado com motivo AUTO_CANCELLED.
- CONFIRMED cujo horário passou há mais de ``NO_SHOW_GRACE_MINUTES`` vira
  NO_SHOW.

As duas passam pela máquina de estados (auditoria e hooks incluídos).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import booking_engine.db.base  # noqa: F401
from booking_engine.core.errors import SchedulingError
from booking_engine.core.logging import configure_logging, get_logger
from booking_engine.core.settings import settings
from booking_engine.db.session import SessionLocal
from booking_engine.deps import build_scheduler
from booking_engine.models.appointment import AppointmentStatus, CancellationReason
from booking_engine.services.events import EventBus
from booking_engine.services.ports import Actor
from booking_engine.services.scheduler import Scheduler

SYSTEM_ACTOR = Actor(id=None, role="system")

log = get_logger(job="auto_cancel")


def cancel_unconfirmed(
    scheduler: Scheduler, now: datetime, timeout_minutes: int | None = None
) -> int:
    timeout = timedelta(
        minutes=timeout_minutes or settings.CONFIRMATION_TIMEOUT_MINUTES
    )
    stale = scheduler.store.find_stale(
        AppointmentStatus.PENDING, created_before=now - timeout
    )
    cancelled = 0
    for ap in stale:
        try:
            scheduler.cancel_appointment(
                ap.tenant_id,
                ap.id,
                CancellationReason.AUTO_CANCELLED,
                "Não confirmado dentro do prazo",
                SYSTEM_ACTOR,
                expected=AppointmentStatus.PENDING,
            )
        except SchedulingError as exc:
            # outro processo mexeu no agendamento nesse meio tempo
            log.warning("auto_cancel.skipped", appointment_id=ap.id, error=exc.code)
            continue
        cancelled += 1
    log.info("auto_cancel.cancelled", count=cancelled, candidates=len(stale))
    return cancelled


def mark_no_shows(
    scheduler: Scheduler, now: datetime, grace_minutes: int | None = None
) -> int:
    grace = timedelta(minutes=grace_minutes or settings.NO_SHOW_GRACE_MINUTES)
    stale = scheduler.store.find_stale(
        AppointmentStatus.CONFIRMED, scheduled_before=now - grace
    )
    marked = 0
    for ap in stale:
        try:
            scheduler.mark_no_show(
                ap.tenant_id, ap.id, SYSTEM_ACTOR, expected=AppointmentStatus.CONFIRMED
            )
        except SchedulingError as exc:
            log.warning("auto_no_show.skipped", appointment_id=ap.id, error=exc.code)
            continue
        marked += 1
    log.info("auto_no_show.marked", count=marked, candidates=len(stale))
    return marked


def main() -> None:
    configure_logging(json=settings.LOG_JSON, level=settings.LOG_LEVEL)
    now = datetime.now(UTC)
    with SessionLocal() as db:
        scheduler = build_scheduler(db, SessionLocal, EventBus(), clock=lambda: now)
        cancel_unconfirmed(scheduler, now)
        mark_no_shows(scheduler, now)


if __name__ == "__main__":
    main()
