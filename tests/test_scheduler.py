from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from booking_engine.core.errors import (
    BookingConflictError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
    OverrideNotAllowedError,
    QuotaExceededError,
    StoreConflictError,
)
from booking_engine.models.appointment import (
    Appointment,
    AppointmentStatus,
    CancellationReason,
)
from booking_engine.models.audit_log import AuditLog
from booking_engine.repositories.appointments import SqlAppointmentStore
from booking_engine.repositories.calendar import SqlCalendarReader
from booking_engine.repositories.catalog import SqlServiceCatalog
from booking_engine.repositories.quota import SqlTenantQuota
from booking_engine.services.availability import SlotReason
from booking_engine.services.conflict_checker import ConflictType
from booking_engine.services.ports import Actor
from booking_engine.services.recurrence import (
    EndCondition,
    EndType,
    Frequency,
    RecurrencePattern,
    SeriesPolicy,
)
from booking_engine.services.scheduler import (
    BookingRequest,
    Scheduler,
    ServiceLineRequest,
)
from conftest import MONDAY, NOW, SP, at

ADMIN = Actor(id="admin-1", role="admin")
CLIENT = Actor(id="cliente-1", role="client")

WEEKLY_4 = RecurrencePattern(Frequency.WEEKLY, EndCondition(EndType.COUNT, 4))


def _request(salon, start, services=None, **kwargs):
    return BookingRequest(
        tenant_id=salon.tenant.id,
        client_id="cliente-1",
        professional_id=salon.professional.id,
        scheduled_at=start,
        services=services or [ServiceLineRequest(salon.cut.id)],
        **kwargs,
    )


def _count(db, salon):
    return db.scalar(
        select(func.count(Appointment.id)).where(
            Appointment.professional_id == salon.professional.id
        )
    )


def _audit_actions(db, appointment_id):
    return [
        row.action
        for row in db.scalars(
            select(AuditLog)
            .where(AuditLog.entity_id == appointment_id)
            .order_by(AuditLog.id)
        )
    ]


class FlakyStore(SqlAppointmentStore):
    """Simula a corrida perdida para outra requisição nas N primeiras gravações."""

    def __init__(self, db, failures):
        super().__init__(db)
        self.failures = failures
        self.calls = 0

    def create(self, appointment):
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreConflictError("simulado")
        return super().create(appointment)


@pytest.fixture
def flaky_scheduler(db_session, TestingSessionLocal, event_bus, reminders, clock):
    def _make(failures):
        return Scheduler(
            store=FlakyStore(db_session, failures),
            calendar=SqlCalendarReader(TestingSessionLocal),
            catalog=SqlServiceCatalog(db_session),
            quota=SqlTenantQuota(db_session, clock=clock),
            reminders=reminders,
            events=event_bus,
            clock=clock,
            read_concurrency=1,
            retry_backoff_seconds=0,
        )

    return _make


# ---------- criação ----------


def test_create_appointment(scheduler, make_salon, reminders, emitted, db_session):
    salon = make_salon()
    result = scheduler.create_appointment(_request(salon, at(MONDAY, 10)), CLIENT)
    ap = result.appointment

    assert ap.status == AppointmentStatus.PENDING
    assert ap.scheduled_at == at(MONDAY, 10)
    assert ap.end_time == at(MONDAY, 11)
    assert ap.total_price == Decimal("80.00")
    assert result.conflicts.has_conflict is False
    assert result.warnings == []

    assert [r.kind for r in reminders.pending_for(ap.id)] == ["T-24h", "T-2h"]
    assert ("appointment.created", ap.id) in [(n, p["appointment_id"]) for n, p in emitted]
    assert _audit_actions(db_session, ap.id) == ["CREATE"]


def test_service_quantity_multiplies_duration_and_price(scheduler, make_salon):
    salon = make_salon()
    lines = [ServiceLineRequest(salon.cut.id), ServiceLineRequest(salon.wash.id, 2)]
    ap = scheduler.create_appointment(
        _request(salon, at(MONDAY, 9), services=lines)
    ).appointment

    assert ap.total_duration == 120
    assert ap.end_time == at(MONDAY, 11)
    assert ap.total_price == Decimal("140.00")
    assert [(s.position, s.quantity) for s in ap.services] == [(0, 1), (1, 2)]


def test_unknown_service_is_not_found(scheduler, make_salon):
    salon = make_salon()
    with pytest.raises(NotFoundError):
        scheduler.create_appointment(
            _request(salon, at(MONDAY, 10), services=[ServiceLineRequest("nope")])
        )


def test_naive_datetime_is_rejected(scheduler, make_salon):
    salon = make_salon()
    with pytest.raises(InvalidRequestError):
        scheduler.create_appointment(
            _request(salon, at(MONDAY, 10).replace(tzinfo=None))
        )


def test_double_booking_is_rejected(scheduler, make_salon, book, db_session):
    salon = make_salon()
    existing = book(salon, at(MONDAY, 10))

    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_appointment(_request(salon, at(MONDAY, 10, 30)))

    [overlap] = exc_info.value.conflict_result.of_type(ConflictType.OVERLAP)
    assert overlap.conflicting_entity_id == existing.id
    assert _count(db_session, salon) == 1

    # fim exclusivo: 11:00 encosta mas não colide
    touching = scheduler.create_appointment(_request(salon, at(MONDAY, 11)))
    assert touching.appointment.scheduled_at == at(MONDAY, 11)


def test_warnings_need_explicit_acceptance(scheduler, make_salon, book):
    salon = make_salon(buffer_before=15, buffer_after=15)
    book(salon, at(MONDAY, 10))

    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_appointment(_request(salon, at(MONDAY, 11)))
    assert exc_info.value.conflict_result.can_override is True

    result = scheduler.create_appointment(
        _request(salon, at(MONDAY, 11), allow_warnings=True)
    )
    assert [c.type for c in result.conflicts.conflicts] == [ConflictType.TOO_CLOSE]


def test_past_date_only_for_override_actors(scheduler, make_salon, clock):
    salon = make_salon()
    clock.advance(hours=3)  # sexta 12:00 local
    friday_ten = at(NOW.astimezone(SP).date(), 10)

    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_appointment(_request(salon, friday_ten), CLIENT)
    assert exc_info.value.conflict_result.of_type(ConflictType.PAST_DATE)

    result = scheduler.create_appointment(
        _request(salon, friday_ten, allow_warnings=True), ADMIN
    )
    assert result.conflicts.of_type(ConflictType.PAST_DATE)


def test_skip_conflict_check_requires_admin_and_is_audited(
    scheduler, make_salon, book, db_session
):
    salon = make_salon()
    book(salon, at(MONDAY, 10))

    with pytest.raises(OverrideNotAllowedError):
        scheduler.create_appointment(
            _request(salon, at(MONDAY, 10, 30), skip_conflict_check=True), CLIENT
        )

    ap = scheduler.create_appointment(
        _request(salon, at(MONDAY, 10, 30), skip_conflict_check=True), ADMIN
    ).appointment
    assert _audit_actions(db_session, ap.id) == ["CREATE", "SKIP_CONFLICT_CHECK"]


def test_same_start_is_caught_by_the_unique_index(scheduler, make_salon, book, db_session):
    """Even without the conflict check, the storage fingerprint rejects the duplicate."""
    salon = make_salon()
    book(salon, at(MONDAY, 10))

    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_appointment(
            _request(salon, at(MONDAY, 10), skip_conflict_check=True), ADMIN
        )
    assert exc_info.value.conflict_result.of_type(ConflictType.OVERLAP)
    assert _count(db_session, salon) == 1


def test_store_conflict_is_retried_once(flaky_scheduler, make_salon):
    salon = make_salon()
    scheduler = flaky_scheduler(failures=1)

    result = scheduler.create_appointment(_request(salon, at(MONDAY, 10)))

    assert scheduler.store.calls == 2
    assert result.appointment.id is not None


def test_second_store_conflict_becomes_booking_conflict(flaky_scheduler, make_salon):
    salon = make_salon()
    scheduler = flaky_scheduler(failures=2)

    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_appointment(_request(salon, at(MONDAY, 10)))

    assert scheduler.store.calls == 2
    assert exc_info.value.conflict_result.of_type(ConflictType.OVERLAP)


def test_auto_confirm_tenant(scheduler, make_salon):
    salon = make_salon(auto_confirm=True)
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment
    assert ap.status == AppointmentStatus.CONFIRMED
    assert ap.confirmed_at == NOW


def test_quota_runs_before_anything_else(scheduler, make_salon, db_session):
    salon = make_salon(monthly_limit=1)
    scheduler.create_appointment(_request(salon, at(MONDAY, 10)))

    # nem o serviço inexistente chega a ser consultado
    with pytest.raises(QuotaExceededError) as exc_info:
        scheduler.create_appointment(
            _request(salon, at(MONDAY, 14), services=[ServiceLineRequest("nope")])
        )
    assert exc_info.value.limit == 1
    assert exc_info.value.current == 1
    assert _count(db_session, salon) == 1


def test_inactive_professional(scheduler, make_salon, db_session):
    salon = make_salon()
    salon.professional.is_active = False
    db_session.commit()

    with pytest.raises(InvalidRequestError):
        scheduler.create_appointment(_request(salon, at(MONDAY, 10)))


# ---------- séries ----------


def test_best_effort_series_skips_conflicting_occurrence(
    scheduler, make_salon, book, db_session
):
    salon = make_salon()
    book(salon, at(MONDAY + timedelta(weeks=2), 10))

    result = scheduler.create_recurring_series(
        _request(salon, at(MONDAY, 10)), WEEKLY_4, SeriesPolicy.BEST_EFFORT
    )

    assert len(result.created) == 3
    [skipped] = result.skipped
    assert skipped.index == 2
    assert skipped.reason == "OVERLAP"

    series = scheduler.get_series(salon.tenant.id, result.recurrence_group_id)
    assert [ap.recurrence_index for ap in series] == [0, 1, 3]
    assert _count(db_session, salon) == 4

    body = result.to_dict()
    assert body["created_count"] == 3
    assert body["skipped_count"] == 1


def test_all_or_nothing_series_aborts(scheduler, make_salon, book, db_session):
    salon = make_salon()
    book(salon, at(MONDAY + timedelta(weeks=2), 10))

    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_recurring_series(
            _request(salon, at(MONDAY, 10)), WEEKLY_4, SeriesPolicy.ALL_OR_NOTHING
        )

    err = exc_info.value
    assert err.occurrence_index == 2
    assert [o.reason for o in err.outcomes] == [
        "SERIES_ABORTED",
        "SERIES_ABORTED",
        "OVERLAP",
        "SERIES_ABORTED",
    ]
    assert not any(o.created for o in err.outcomes)
    assert _count(db_session, salon) == 1


def test_all_or_nothing_series_creates_everything(scheduler, make_salon, reminders):
    salon = make_salon()
    result = scheduler.create_recurring_series(
        _request(salon, at(MONDAY, 10)), WEEKLY_4, SeriesPolicy.ALL_OR_NOTHING
    )

    assert len(result.created) == 4
    assert result.skipped == []
    ids = [o.appointment_id for o in result.outcomes]
    assert all(ids)
    assert all(reminders.pending_for(i) for i in ids)


def test_series_checks_quota_for_every_occurrence(scheduler, make_salon, db_session):
    salon = make_salon(monthly_limit=3)
    with pytest.raises(QuotaExceededError):
        scheduler.create_recurring_series(_request(salon, at(MONDAY, 10)), WEEKLY_4)
    assert _count(db_session, salon) == 0


def test_series_honours_excluded_dates(scheduler, make_salon):
    salon = make_salon()
    result = scheduler.create_recurring_series(
        _request(salon, at(MONDAY, 10)),
        WEEKLY_4,
        excluded_dates=[MONDAY + timedelta(weeks=1)],
    )
    assert len(result.outcomes) == 3
    assert len(result.created) == 3


def test_unknown_series_is_not_found(scheduler, make_salon):
    salon = make_salon()
    with pytest.raises(NotFoundError):
        scheduler.get_series(salon.tenant.id, "nao-existe")


def test_booking_outside_the_advance_window(scheduler, make_salon, clock):
    salon = make_salon()

    # limite do salão: 90 dias
    far = at(MONDAY + timedelta(weeks=30), 10)
    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_appointment(_request(salon, far), CLIENT)
    assert exc_info.value.conflict_result.of_type(ConflictType.EXCEEDS_MAX_ADVANCE)

    # sexta 10:00 local, às 09:30: menos que a 1h mínima
    clock.advance(minutes=30)
    soon = at(NOW.astimezone(SP).date(), 10)
    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.create_appointment(_request(salon, soon), CLIENT)
    assert exc_info.value.conflict_result.of_type(ConflictType.INSUFFICIENT_ADVANCE)

    result = scheduler.create_appointment(
        _request(salon, soon, allow_warnings=True), ADMIN
    )
    assert result.conflicts.of_type(ConflictType.INSUFFICIENT_ADVANCE)


def test_reschedule_beyond_max_advance_is_rejected(scheduler, make_salon):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment

    with pytest.raises(BookingConflictError) as exc_info:
        scheduler.reschedule_appointment(
            salon.tenant.id, ap.id, at(MONDAY + timedelta(weeks=30), 10), CLIENT
        )
    assert exc_info.value.conflict_result.of_type(ConflictType.EXCEEDS_MAX_ADVANCE)
    assert scheduler.get_appointment(salon.tenant.id, ap.id).scheduled_at == at(MONDAY, 10)


# ---------- reagendamento ----------


def test_noop_reschedule_does_not_conflict_with_itself(scheduler, make_salon):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment

    result = scheduler.reschedule_appointment(salon.tenant.id, ap.id, at(MONDAY, 10))

    assert result.conflicts.has_conflict is False
    assert result.appointment.rescheduled_from == at(MONDAY, 10)


def test_reschedule_moves_and_refreshes_reminders(
    scheduler, make_salon, reminders, emitted, db_session
):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment

    result = scheduler.reschedule_appointment(
        salon.tenant.id, ap.id, at(MONDAY, 15), reason="cliente pediu"
    )

    moved = result.appointment
    assert moved.status == AppointmentStatus.PENDING
    assert moved.scheduled_at == at(MONDAY, 15)
    assert moved.end_time == at(MONDAY, 16)
    assert [r.send_at for r in reminders.pending_for(ap.id)] == [
        at(MONDAY, 15) - timedelta(hours=24),
        at(MONDAY, 13),
    ]
    assert "appointment.rescheduled" in [n for n, _ in emitted]
    assert _audit_actions(db_session, ap.id) == ["CREATE", "RESCHEDULE"]


def test_reschedule_into_another_booking_fails(scheduler, make_salon, book):
    salon = make_salon()
    book(salon, at(MONDAY, 14))
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment

    with pytest.raises(BookingConflictError):
        scheduler.reschedule_appointment(salon.tenant.id, ap.id, at(MONDAY, 14, 30))

    assert scheduler.get_appointment(salon.tenant.id, ap.id).scheduled_at == at(MONDAY, 10)


def test_cancelled_appointment_cannot_be_rescheduled(scheduler, make_salon):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment
    scheduler.cancel_appointment(salon.tenant.id, ap.id, CancellationReason.OTHER)

    with pytest.raises(InvalidStatusTransitionError):
        scheduler.reschedule_appointment(salon.tenant.id, ap.id, at(MONDAY, 15))


def test_reschedule_rechecks_status_under_the_lock(
    scheduler, make_salon, TestingSessionLocal, db_session, monkeypatch
):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment
    read_config = scheduler.calendar.get_config

    def cancel_meanwhile(tenant_id, professional_id):
        # outra requisição cancela entre a primeira leitura e a trava
        with TestingSessionLocal() as other:
            row = other.get(Appointment, ap.id)
            row.status = AppointmentStatus.CANCELLED
            row.cancellation_reason = CancellationReason.CUSTOMER_REQUEST
            other.commit()
        return read_config(tenant_id, professional_id)

    monkeypatch.setattr(scheduler.calendar, "get_config", cancel_meanwhile)

    with pytest.raises(InvalidStatusTransitionError):
        scheduler.reschedule_appointment(salon.tenant.id, ap.id, at(MONDAY, 15))

    db_session.expire_all()
    stored = db_session.get(Appointment, ap.id)
    assert stored.status == AppointmentStatus.CANCELLED
    assert stored.scheduled_at == at(MONDAY, 10)
    assert _audit_actions(db_session, ap.id) == ["CREATE"]


# ---------- transições ----------


def test_full_lifecycle(scheduler, make_salon, clock, db_session, emitted):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment
    tid = salon.tenant.id

    assert scheduler.confirm(tid, ap.id).previous_status == AppointmentStatus.PENDING
    clock.now = at(MONDAY, 9, 50)
    scheduler.check_in(tid, ap.id)
    scheduler.start_service(tid, ap.id)
    done = scheduler.complete(tid, ap.id)

    assert done.appointment.status == AppointmentStatus.COMPLETED
    assert done.previous_status == AppointmentStatus.IN_PROGRESS
    assert _audit_actions(db_session, ap.id) == [
        "CREATE",
        "STATUS_CONFIRMED",
        "STATUS_WAITING",
        "STATUS_IN_PROGRESS",
        "STATUS_COMPLETED",
    ]
    names = [n for n, _ in emitted]
    assert "appointment.confirmed" in names
    assert "appointment.completed" in names
    assert names.count("appointment.status_changed") == 4

    with pytest.raises(InvalidStatusTransitionError):
        scheduler.cancel_appointment(tid, ap.id, CancellationReason.OTHER)


def test_cancel_releases_the_slot(scheduler, make_salon, reminders):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment

    result = scheduler.cancel_appointment(
        salon.tenant.id, ap.id, CancellationReason.CUSTOMER_REQUEST, "viagem"
    )

    assert result.appointment.status == AppointmentStatus.CANCELLED
    assert result.appointment.cancellation_reason == CancellationReason.CUSTOMER_REQUEST
    assert reminders.pending_for(ap.id) == []

    again = scheduler.create_appointment(_request(salon, at(MONDAY, 10)))
    assert again.appointment.id != ap.id


def test_cancel_without_reason(scheduler, make_salon):
    salon = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment
    with pytest.raises(InvalidRequestError):
        scheduler.cancel_appointment(salon.tenant.id, ap.id, None)


def test_no_show_after_scheduled_time(scheduler, make_salon, clock):
    salon = make_salon(auto_confirm=True)
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment

    with pytest.raises(InvalidStatusTransitionError):
        scheduler.mark_no_show(salon.tenant.id, ap.id)

    clock.now = at(MONDAY, 10, 40)
    result = scheduler.mark_no_show(salon.tenant.id, ap.id)
    assert result.appointment.status == AppointmentStatus.NO_SHOW


def test_appointments_are_scoped_by_tenant(scheduler, make_salon):
    salon = make_salon()
    other = make_salon()
    ap = scheduler.create_appointment(_request(salon, at(MONDAY, 10))).appointment

    with pytest.raises(NotFoundError):
        scheduler.get_appointment(other.tenant.id, ap.id)


# ---------- leitura ----------


def test_get_availability_by_services(scheduler, make_salon, book):
    salon = make_salon()
    book(salon, at(MONDAY, 10))

    day = scheduler.get_availability(
        salon.tenant.id, salon.professional.id, MONDAY, service_ids=[salon.cut.id]
    )
    by_start = {s.start: s for s in day.slots}

    assert by_start[at(MONDAY, 9)].available is True
    assert by_start[at(MONDAY, 10)].reason == SlotReason.OVERLAP
    assert day.available_count == 14


def test_get_availability_needs_duration_or_services(scheduler, make_salon):
    salon = make_salon()
    with pytest.raises(InvalidRequestError):
        scheduler.get_availability(salon.tenant.id, salon.professional.id, MONDAY)


def test_get_availability_range(scheduler, make_salon):
    salon = make_salon()
    days = scheduler.get_availability_range(
        salon.tenant.id,
        [salon.professional.id],
        MONDAY,
        MONDAY + timedelta(days=6),
        requested_duration=30,
    )
    assert len(days) == 7
    assert [d.is_working_day for d in days] == [True] * 5 + [False] * 2
