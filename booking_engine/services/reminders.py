from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from booking_engine.core.logging import get_logger
from booking_engine.core.settings import settings
from booking_engine.models.appointment import Appointment
from booking_engine.models.reminder import AppointmentReminder


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReminderQueue:
    """
    Lembretes persistidos em ``appointment_reminders``.

    Usa sessões próprias: roda depois do commit do agendamento e não
    participa da transação de escrita.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        offsets_hours: Sequence[int] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._offsets = list(
            settings.REMINDER_OFFSETS_HOURS if offsets_hours is None else offsets_hours
        )
        self._clock = clock
        self._log = get_logger(component="reminders")

    def schedule_reminders(self, appointment: Appointment) -> None:
        now = self._clock()
        with self._session_factory() as db:
            created = 0
            for hours in self._offsets:
                send_at = appointment.scheduled_at - timedelta(hours=hours)
                # janela já passou: não agenda lembrete retroativo
                if send_at <= now:
                    continue
                db.add(
                    AppointmentReminder(
                        appointment_id=appointment.id,
                        kind=f"T-{hours}h",
                        hours_before=hours,
                        send_at=send_at,
                    )
                )
                created += 1
            db.commit()
        self._log.info(
            "reminders.scheduled", appointment_id=appointment.id, count=created
        )

    def cancel_reminders(self, appointment_id: str) -> None:
        with self._session_factory() as db:
            result = db.execute(
                update(AppointmentReminder)
                .where(
                    AppointmentReminder.appointment_id == appointment_id,
                    AppointmentReminder.sent_at.is_(None),
                    AppointmentReminder.cancelled_at.is_(None),
                )
                .values(cancelled_at=self._clock())
            )
            db.commit()
        self._log.info(
            "reminders.cancelled", appointment_id=appointment_id, count=result.rowcount
        )

    def reschedule_reminders(self, appointment: Appointment) -> None:
        self.cancel_reminders(appointment.id)
        self.schedule_reminders(appointment)

    def pending_for(self, appointment_id: str) -> list[AppointmentReminder]:
        with self._session_factory() as db:
            return list(
                db.scalars(
                    select(AppointmentReminder)
                    .where(
                        AppointmentReminder.appointment_id == appointment_id,
                        AppointmentReminder.sent_at.is_(None),
                        AppointmentReminder.cancelled_at.is_(None),
                    )
                    .order_by(AppointmentReminder.send_at)
                )
            )
