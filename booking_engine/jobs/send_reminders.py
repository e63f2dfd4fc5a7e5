from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

import booking_engine.db.base  # noqa: F401
from booking_engine.core.logging import configure_logging, get_logger
from booking_engine.core.settings import settings
from booking_engine.db.session import SessionLocal
from booking_engine.models.appointment import TERMINAL_STATUSES
from booking_engine.models.reminder import AppointmentReminder
from booking_engine.services.events import EventBus
from booking_engine.services.lifecycle import appointment_payload
from booking_engine.services.ports import EventPublisher

log = get_logger(job="send_reminders")


def dispatch_due_reminders(db: Session, events: EventPublisher, now: datetime) -> int:
    """Emite ``appointment.reminder`` para cada lembrete vencido. Devolve quantos."""
    due = db.scalars(
        select(AppointmentReminder)
        .options(joinedload(AppointmentReminder.appointment))
        .where(
            AppointmentReminder.sent_at.is_(None),
            AppointmentReminder.cancelled_at.is_(None),
            AppointmentReminder.send_at <= now,
        )
        .order_by(AppointmentReminder.send_at)
    ).all()

    sent = 0
    for reminder in due:
        ap = reminder.appointment
        # agendamento encerrado depois do lembrete ter sido criado
        if ap.status in TERMINAL_STATUSES:
            reminder.cancelled_at = now
            continue
        events.emit(
            "appointment.reminder",
            {**appointment_payload(ap), "kind": reminder.kind},
        )
        reminder.sent_at = now
        sent += 1

    db.commit()
    log.info("reminders.dispatched", sent=sent, due=len(due))
    return sent


def main() -> None:
    configure_logging(json=settings.LOG_JSON, level=settings.LOG_LEVEL)
    with SessionLocal() as db:
        dispatch_due_reminders(db, EventBus(), datetime.now(UTC))


if __name__ == "__main__":
    main()
