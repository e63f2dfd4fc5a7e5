import os

# leituras sequenciais: o SQLite em memória compartilha uma única conexão
os.environ.setdefault("CALENDAR_READ_CONCURRENCY", "1")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from booking_engine.db.base import Base
from booking_engine.db.session import get_db
from booking_engine.deps import get_scheduler
from booking_engine.main import app
from booking_engine.models.appointment import Appointment, AppointmentStatus
from booking_engine.models.professional import Professional
from booking_engine.models.service import Service
from booking_engine.models.tenant import Tenant
from booking_engine.models.working_hours import WorkingHours
from booking_engine.repositories.appointments import SqlAppointmentStore
from booking_engine.repositories.calendar import SqlCalendarReader
from booking_engine.repositories.catalog import SqlServiceCatalog
from booking_engine.repositories.quota import SqlTenantQuota
from booking_engine.services.events import EventBus
from booking_engine.services.reminders import ReminderQueue
from booking_engine.services.scheduler import Scheduler

SP = ZoneInfo("America/Sao_Paulo")

# sexta-feira 09:00 em São Paulo
NOW = datetime(2025, 9, 12, 12, 0, tzinfo=UTC)
MONDAY = date(2025, 9, 15)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """Hora local de São Paulo convertida para UTC."""
    return datetime.combine(day, time(hour, minute)).replace(tzinfo=SP).astimezone(UTC)


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# Create an in-memory SQLite database for testing
@pytest.fixture
def engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def TestingSessionLocal(engine):
    """Create a session factory for the test database."""
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )


@pytest.fixture
def db_session(TestingSessionLocal):
    """Create a database session for each test."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def event_bus(emitted):
    bus = EventBus()
    bus.subscribe("*", lambda name, payload: emitted.append((name, payload)))
    return bus


@pytest.fixture
def reminders(TestingSessionLocal, clock):
    return ReminderQueue(TestingSessionLocal, offsets_hours=[24, 2], clock=clock)


@pytest.fixture
def scheduler(db_session, TestingSessionLocal, event_bus, reminders, clock):
    return Scheduler(
        store=SqlAppointmentStore(db_session),
        calendar=SqlCalendarReader(TestingSessionLocal),
        catalog=SqlServiceCatalog(db_session),
        quota=SqlTenantQuota(db_session, clock=clock),
        reminders=reminders,
        events=event_bus,
        clock=clock,
        read_concurrency=1,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def make_salon(db_session):
    """Tenant + profissional (seg a sex, 09:00-18:00) + dois serviços."""

    def _make(
        *,
        break_start: time | None = None,
        break_end: time | None = None,
        buffer_before: int = 0,
        buffer_after: int = 0,
        auto_confirm: bool = False,
        monthly_limit: int | None = None,
        weekdays=range(5),
    ):
        tenant = Tenant(
            name="Salão Teste",
            timezone="America/Sao_Paulo",
            auto_confirm=auto_confirm,
            monthly_appointment_limit=monthly_limit,
            max_advance_booking_days=90,
        )
        db_session.add(tenant)
        db_session.flush()

        professional = Professional(
            tenant_id=tenant.id,
            name="Ana",
            slot_interval=30,
            buffer_before=buffer_before,
            buffer_after=buffer_after,
        )
        db_session.add(professional)
        db_session.flush()

        for wd in weekdays:
            db_session.add(
                WorkingHours(
                    professional_id=professional.id,
                    weekday=wd,
                    start_time=time(9, 0),
                    end_time=time(18, 0),
                    break_start=break_start,
                    break_end=break_end,
                )
            )

        cut = Service(
            tenant_id=tenant.id, name="Corte", duration_minutes=60, price=Decimal("80.00")
        )
        wash = Service(
            tenant_id=tenant.id, name="Lavagem", duration_minutes=30, price=Decimal("30.00")
        )
        db_session.add_all([cut, wash])
        db_session.commit()
        return SimpleNamespace(
            tenant=tenant, professional=professional, cut=cut, wash=wash
        )

    return _make


@pytest.fixture
def book(db_session):
    """Grava um agendamento direto no banco, sem passar pelo orquestrador."""

    def _book(salon, start: datetime, minutes: int = 60, status=AppointmentStatus.CONFIRMED):
        ap = Appointment(
            tenant_id=salon.tenant.id,
            client_id="cliente-existente",
            professional_id=salon.professional.id,
            status=status,
            scheduled_at=start,
            end_time=start + timedelta(minutes=minutes),
            total_duration=minutes,
            total_price=Decimal("0"),
        )
        db_session.add(ap)
        db_session.commit()
        return ap

    return _book


@pytest.fixture
def client(db_session, scheduler):
    """Create a test client with dependency overrides."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
