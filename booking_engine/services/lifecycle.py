"""Máquina de estados do agendamento.

Só este módulo muda ``Appointment.status``. A validação e a aplicação da
transição acontecem dentro da transação de escrita; os hooks (lembretes e
eventos) rodam depois do commit e suas falhas viram avisos, sem desfazer
a mudança de status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from booking_engine.core.errors import InvalidRequestError, InvalidStatusTransitionError
from booking_engine.core.logging import get_logger
from booking_engine.models.appointment import (
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    CancellationReason,
)
from booking_engine.services.ports import EventPublisher, ReminderScheduler
from booking_engine.utils.tz import iso_utc

S = AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.WAITING, S.CANCELLED, S.NO_SHOW}),
    S.WAITING: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

STATUS_EVENTS = {
    S.CONFIRMED: "appointment.confirmed",
    S.CANCELLED: "appointment.cancelled",
    S.COMPLETED: "appointment.completed",
    S.NO_SHOW: "appointment.no_show",
}

# campo de timestamp preenchido ao entrar em cada status
_STAMPS = {
    S.CONFIRMED: "confirmed_at",
    S.WAITING: "checked_in_at",
    S.IN_PROGRESS: "started_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
    S.NO_SHOW: "no_show_at",
}

RESCHEDULE = "RESCHEDULE"

log = get_logger(component="lifecycle")


@dataclass
class TransitionResult:
    appointment: Appointment
    previous_status: AppointmentStatus | None
    warnings: list[str] = field(default_factory=list)


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_terminal(status: AppointmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(
    appointment: Appointment,
    target: AppointmentStatus,
    now: datetime,
    *,
    reason: CancellationReason | None = None,
) -> None:
    current = appointment.status
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(current, target)

    if target == S.CANCELLED and reason is None:
        raise InvalidRequestError("Motivo do cancelamento é obrigatório")

    if target == S.NO_SHOW and now < appointment.scheduled_at:
        raise InvalidStatusTransitionError(
            current,
            target,
            "Não comparecimento só pode ser marcado após o horário agendado",
        )


def apply_transition(
    appointment: Appointment,
    target: AppointmentStatus,
    now: datetime,
    *,
    reason: CancellationReason | None = None,
    details: str | None = None,
) -> AppointmentStatus:
    """Valida e muda o status em memória; quem chama persiste. Devolve o anterior."""
    validate_transition(appointment, target, now, reason=reason)
    previous = appointment.status
    appointment.status = target
    setattr(appointment, _STAMPS[target], now)
    if target == S.CANCELLED:
        appointment.cancellation_reason = reason
        appointment.cancellation_details = details
    return previous


def assert_reschedulable(appointment: Appointment) -> None:
    # em atendimento também não: o horário já está em uso
    if is_terminal(appointment.status) or appointment.status == S.IN_PROGRESS:
        raise InvalidStatusTransitionError(
            appointment.status,
            RESCHEDULE,
            f"Não é possível reagendar um agendamento {appointment.status.value}",
        )


def apply_reschedule(
    appointment: Appointment,
    new_start: datetime,
    new_end: datetime,
    now: datetime,
    reason: str | None = None,
) -> datetime:
    """Move o horário mantendo o status. Devolve o início anterior."""
    assert_reschedulable(appointment)
    previous_start = appointment.scheduled_at
    appointment.rescheduled_from = previous_start
    appointment.reschedule_reason = reason
    appointment.rescheduled_at = now
    appointment.scheduled_at = new_start
    appointment.end_time = new_end
    return previous_start


def appointment_payload(appointment: Appointment) -> dict[str, Any]:
    return {
        "appointment_id": appointment.id,
        "tenant_id": appointment.tenant_id,
        "professional_id": appointment.professional_id,
        "client_id": appointment.client_id,
        "status": appointment.status.value,
        "scheduled_at": iso_utc(appointment.scheduled_at),
        "end_time": iso_utc(appointment.end_time),
        "recurrence_group_id": appointment.recurrence_group_id,
    }


def _safe_hook(warnings: list[str], name: str, appointment_id: str, fn, *args) -> None:
    try:
        fn(*args)
    except Exception as exc:  # noqa: BLE001
        log.warning(
            "lifecycle.hook_failed",
            hook=name,
            appointment_id=appointment_id,
            error=str(exc),
            exc_info=True,
        )
        warnings.append(f"{name} falhou: {exc}")


def run_transition_hooks(
    appointment: Appointment,
    previous: AppointmentStatus,
    reminders: ReminderScheduler,
    events: EventPublisher,
) -> list[str]:
    warnings: list[str] = []
    target = appointment.status
    payload = appointment_payload(appointment)

    if target in (S.CANCELLED, S.NO_SHOW):
        _safe_hook(
            warnings,
            "reminders.cancel",
            appointment.id,
            reminders.cancel_reminders,
            appointment.id,
        )

    event = STATUS_EVENTS.get(target)
    if event:
        _safe_hook(warnings, event, appointment.id, events.emit, event, payload)

    _safe_hook(
        warnings,
        "appointment.status_changed",
        appointment.id,
        events.emit,
        "appointment.status_changed",
        {**payload, "previous_status": previous.value},
    )
    return warnings


def run_reschedule_hooks(
    appointment: Appointment,
    previous_start: datetime,
    reminders: ReminderScheduler,
    events: EventPublisher,
) -> list[str]:
    warnings: list[str] = []
    payload = {**appointment_payload(appointment), "previous_start": iso_utc(previous_start)}
    _safe_hook(
        warnings,
        "appointment.rescheduled",
        appointment.id,
        events.emit,
        "appointment.rescheduled",
        payload,
    )
    _safe_hook(
        warnings,
        "reminders.reschedule",
        appointment.id,
        reminders.reschedule_reminders,
        appointment,
    )
    return warnings


def run_creation_hooks(
    appointment: Appointment,
    reminders: ReminderScheduler,
    events: EventPublisher,
) -> list[str]:
    warnings: list[str] = []
    _safe_hook(
        warnings,
        "reminders.schedule",
        appointment.id,
        reminders.schedule_reminders,
        appointment,
    )
    _safe_hook(
        warnings,
        "appointment.created",
        appointment.id,
        events.emit,
        "appointment.created",
        appointment_payload(appointment),
    )
    return warnings
