from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from booking_engine.deps import get_actor, get_scheduler, get_tenant_id
from booking_engine.schemas.appointments import (
    AppointmentOut,
    BookingIn,
    BookingOut,
    CancelIn,
    RecurringBookingIn,
    RescheduleIn,
    TransitionOut,
)
from booking_engine.services.lifecycle import TransitionResult
from booking_engine.services.ports import Actor
from booking_engine.services.scheduler import BookingResult, Scheduler

router = APIRouter(prefix="/appointments", tags=["appointments"])

TenantId = Annotated[str, Depends(get_tenant_id)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]


def _booking_out(result: BookingResult) -> BookingOut:
    return BookingOut(
        appointment=AppointmentOut.model_validate(result.appointment),
        conflicts=result.conflicts.to_dict(),
        warnings=result.warnings,
    )


def _transition_out(result: TransitionResult) -> TransitionOut:
    return TransitionOut(
        appointment=AppointmentOut.model_validate(result.appointment),
        previous_status=result.previous_status,
        warnings=result.warnings,
    )


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: BookingIn,
    tenant_id: TenantId,
    actor: CurrentActor,
    scheduler: SchedulerDep,
):
    result = scheduler.create_appointment(payload.to_request(tenant_id), actor)
    return _booking_out(result)


@router.post("/recurring", status_code=status.HTTP_201_CREATED)
def create_recurring_series(
    payload: RecurringBookingIn,
    tenant_id: TenantId,
    actor: CurrentActor,
    scheduler: SchedulerDep,
):
    result = scheduler.create_recurring_series(
        payload.to_request(tenant_id),
        payload.pattern.to_pattern(),
        payload.policy,
        actor,
        excluded_dates=payload.excluded_dates,
    )
    return result.to_dict()


@router.get("/series/{recurrence_group_id}", response_model=list[AppointmentOut])
def get_series(recurrence_group_id: str, tenant_id: TenantId, scheduler: SchedulerDep):
    return [
        AppointmentOut.model_validate(ap)
        for ap in scheduler.get_series(tenant_id, recurrence_group_id)
    ]


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(appointment_id: str, tenant_id: TenantId, scheduler: SchedulerDep):
    return AppointmentOut.model_validate(scheduler.get_appointment(tenant_id, appointment_id))


@router.put("/{appointment_id}/reschedule", response_model=BookingOut)
def reschedule_appointment(
    appointment_id: str,
    payload: RescheduleIn,
    tenant_id: TenantId,
    actor: CurrentActor,
    scheduler: SchedulerDep,
):
    result = scheduler.reschedule_appointment(
        tenant_id,
        appointment_id,
        payload.new_scheduled_at,
        actor,
        reason=payload.reason,
        allow_warnings=payload.allow_warnings,
        skip_conflict_check=payload.skip_conflict_check,
    )
    return _booking_out(result)


@router.post("/{appointment_id}/cancel", response_model=TransitionOut)
def cancel_appointment(
    appointment_id: str,
    payload: CancelIn,
    tenant_id: TenantId,
    actor: CurrentActor,
    scheduler: SchedulerDep,
):
    result = scheduler.cancel_appointment(
        tenant_id, appointment_id, payload.reason, payload.details, actor
    )
    return _transition_out(result)


@router.post("/{appointment_id}/confirm", response_model=TransitionOut)
def confirm(
    appointment_id: str, tenant_id: TenantId, actor: CurrentActor, scheduler: SchedulerDep
):
    return _transition_out(scheduler.confirm(tenant_id, appointment_id, actor))


@router.post("/{appointment_id}/check-in", response_model=TransitionOut)
def check_in(
    appointment_id: str, tenant_id: TenantId, actor: CurrentActor, scheduler: SchedulerDep
):
    return _transition_out(scheduler.check_in(tenant_id, appointment_id, actor))


@router.post("/{appointment_id}/start", response_model=TransitionOut)
def start_service(
    appointment_id: str, tenant_id: TenantId, actor: CurrentActor, scheduler: SchedulerDep
):
    return _transition_out(scheduler.start_service(tenant_id, appointment_id, actor))


@router.post("/{appointment_id}/complete", response_model=TransitionOut)
def complete(
    appointment_id: str, tenant_id: TenantId, actor: CurrentActor, scheduler: SchedulerDep
):
    return _transition_out(scheduler.complete(tenant_id, appointment_id, actor))


@router.post("/{appointment_id}/no-show", response_model=TransitionOut)
def mark_no_show(
    appointment_id: str, tenant_id: TenantId, actor: CurrentActor, scheduler: SchedulerDep
):
    return _transition_out(scheduler.mark_no_show(tenant_id, appointment_id, actor))
