from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from booking_engine.deps import get_scheduler, get_tenant_id
from booking_engine.services.scheduler import Scheduler

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("")
def get_availability(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    scheduler: Annotated[Scheduler, Depends(get_scheduler)],
    professional_id: str,
    day: Annotated[date, Query(alias="date")],
    duration: Annotated[int | None, Query(description="minutos")] = None,
    service_ids: Annotated[list[str] | None, Query()] = None,
):
    """Slots do dia, livres e ocupados (com o motivo)."""
    result = scheduler.get_availability(
        tenant_id, professional_id, day, duration, service_ids
    )
    return result.to_dict()


@router.get("/range")
def get_availability_range(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    scheduler: Annotated[Scheduler, Depends(get_scheduler)],
    professional_ids: Annotated[list[str], Query(min_length=1)],
    start_date: date,
    end_date: date,
    duration: Annotated[int | None, Query(description="minutos")] = None,
    service_ids: Annotated[list[str] | None, Query()] = None,
):
    days = scheduler.get_availability_range(
        tenant_id, professional_ids, start_date, end_date, duration, service_ids
    )
    return {"days": [d.to_dict() for d in days]}
