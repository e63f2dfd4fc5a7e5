from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from booking_engine.core.logging import bind_tenant
from booking_engine.db.session import SessionLocal, get_db
from booking_engine.repositories.appointments import SqlAppointmentStore
from booking_engine.repositories.calendar import SqlCalendarReader
from booking_engine.repositories.catalog import SqlServiceCatalog
from booking_engine.repositories.quota import SqlTenantQuota
from booking_engine.services.events import EventBus
from booking_engine.services.ports import Actor, Clock
from booking_engine.services.reminders import ReminderQueue
from booking_engine.services.scheduler import Scheduler

# um barramento por processo; assinantes extras se registram na subida
event_bus = EventBus()


def get_session_factory() -> Callable[[], Session]:
    """Fábrica usada pelas leituras paralelas e pelos lembretes."""
    return SessionLocal


def get_event_bus() -> EventBus:
    return event_bus


def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header()] = None,
) -> str:
    # autenticação fica fora deste serviço; o gateway injeta o tenant
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cabeçalho X-Tenant-ID obrigatório",
        )
    bind_tenant(x_tenant_id)
    return x_tenant_id


def get_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str, Header()] = "client",
) -> Actor:
    return Actor(id=x_actor_id, role=x_actor_role.strip().lower())


def build_scheduler(
    db: Session,
    session_factory: Callable[[], Session],
    events: EventBus,
    clock: Clock | None = None,
) -> Scheduler:
    kwargs = {"clock": clock} if clock else {}
    return Scheduler(
        store=SqlAppointmentStore(db),
        calendar=SqlCalendarReader(session_factory),
        catalog=SqlServiceCatalog(db),
        quota=SqlTenantQuota(db, **kwargs),
        reminders=ReminderQueue(session_factory, **kwargs),
        events=events,
        **kwargs,
    )


def get_scheduler(
    db: Session = Depends(get_db),  # noqa: B008
    session_factory: Callable[[], Session] = Depends(get_session_factory),  # noqa: B008
    events: EventBus = Depends(get_event_bus),  # noqa: B008
) -> Scheduler:
    return build_scheduler(db, session_factory, events)
