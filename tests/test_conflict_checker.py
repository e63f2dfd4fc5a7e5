from datetime import time, timedelta

from booking_engine.models.appointment import AppointmentStatus
from booking_engine.services.calendar import (
    BlockedTimeEntry,
    BookedSlot,
    CalendarSnapshot,
    DayHours,
    ProfessionalAvailabilityConfig,
)
from booking_engine.services.conflict_checker import (
    ConflictType,
    ProposedBooking,
    Severity,
    check_conflicts,
)
from booking_engine.services.time_ranges import TimeRange
from conftest import MONDAY, NOW, SP, at

HOURS = {
    wd: DayHours(time(9, 0), time(18, 0), time(12, 0), time(13, 0)) for wd in range(5)
}
CONFIG = ProfessionalAvailabilityConfig("prof-1", SP, buffer_before=15, buffer_after=15)


def _booked(start, minutes=60, status=AppointmentStatus.CONFIRMED, id="ap-1"):
    return BookedSlot(id, start, start + timedelta(minutes=minutes), status)


def _check(start, minutes=60, calendar=None, exclude=None, **kwargs):
    calendar = calendar or CalendarSnapshot(HOURS)
    proposed = ProposedBooking("prof-1", TimeRange.of(start, minutes), exclude)
    return check_conflicts(proposed, calendar, CONFIG, NOW, **kwargs)


def test_free_slot_has_no_conflict():
    result = _check(at(MONDAY, 9))
    assert result.has_conflict is False
    assert result.can_override is True
    assert result.blocks_booking() is False


def test_double_booking_is_an_overlap_error():
    calendar = CalendarSnapshot(HOURS, appointments=[_booked(at(MONDAY, 10))])
    result = _check(at(MONDAY, 10, 30), calendar=calendar)

    [overlap] = result.of_type(ConflictType.OVERLAP)
    assert overlap.severity == Severity.ERROR
    assert overlap.conflicting_entity_id == "ap-1"
    assert result.can_override is False
    assert result.blocks_booking(allow_warnings=True) is True


def test_touching_boundary_is_not_an_overlap():
    calendar = CalendarSnapshot(HOURS, appointments=[_booked(at(MONDAY, 10))])
    result = _check(at(MONDAY, 11), calendar=calendar)

    assert result.of_type(ConflictType.OVERLAP) == []
    # encostado, mas sem a folga de 15 min
    [close] = result.of_type(ConflictType.TOO_CLOSE)
    assert close.severity == Severity.WARNING
    assert result.can_override is True
    assert result.blocks_booking() is True
    assert result.blocks_booking(allow_warnings=True) is False


def test_gap_equal_to_buffer_is_fine():
    calendar = CalendarSnapshot(HOURS, appointments=[_booked(at(MONDAY, 14))])
    assert _check(at(MONDAY, 15, 15), calendar=calendar).has_conflict is False


def test_cancelled_appointments_are_ignored():
    calendar = CalendarSnapshot(
        HOURS,
        appointments=[_booked(at(MONDAY, 10), status=AppointmentStatus.CANCELLED)],
    )
    assert _check(at(MONDAY, 10), calendar=calendar).has_conflict is False


def test_excluded_appointment_does_not_conflict_with_itself():
    calendar = CalendarSnapshot(HOURS, appointments=[_booked(at(MONDAY, 10))])
    assert _check(at(MONDAY, 10), calendar=calendar, exclude="ap-1").has_conflict is False


def test_break_and_outside_hours_messages():
    lunch = _check(at(MONDAY, 11, 30))
    [c] = lunch.of_type(ConflictType.OUTSIDE_HOURS)
    assert "intervalo" in c.message

    late = _check(at(MONDAY, 17, 30))
    [c] = late.of_type(ConflictType.OUTSIDE_HOURS)
    assert c.message.startswith("Fora do horário de trabalho")

    saturday = _check(at(MONDAY + timedelta(days=5), 10))
    [c] = saturday.of_type(ConflictType.OUTSIDE_HOURS)
    assert c.message == "Profissional não trabalha neste dia"


def test_blocked_time_is_reported_with_its_reason():
    block = BlockedTimeEntry(
        "blk-1", "prof-1", TimeRange(at(MONDAY, 14), at(MONDAY, 16)), reason="Curso"
    )
    result = _check(at(MONDAY, 15), calendar=CalendarSnapshot(HOURS, blocked=[block]))
    [c] = result.of_type(ConflictType.BLOCKED)
    assert c.conflicting_entity_id == "blk-1"
    assert c.message == "Curso"


def test_all_checks_are_collected():
    block = BlockedTimeEntry(
        "blk-1", "prof-1", TimeRange(at(MONDAY, 17), at(MONDAY, 19))
    )
    calendar = CalendarSnapshot(
        HOURS, blocked=[block], appointments=[_booked(at(MONDAY, 17))]
    )
    result = _check(at(MONDAY, 17, 30), calendar=calendar)
    types = {c.type for c in result.conflicts}
    assert types == {
        ConflictType.OUTSIDE_HOURS,
        ConflictType.BLOCKED,
        ConflictType.OVERLAP,
    }


def test_past_date_severity_depends_on_override():
    friday_morning = NOW - timedelta(hours=1)
    strict = _check(friday_morning)
    [c] = strict.of_type(ConflictType.PAST_DATE)
    assert c.severity == Severity.ERROR

    relaxed = _check(friday_morning, allow_past=True)
    [c] = relaxed.of_type(ConflictType.PAST_DATE)
    assert c.severity == Severity.WARNING


def test_to_dict_shape():
    calendar = CalendarSnapshot(HOURS, appointments=[_booked(at(MONDAY, 10))])
    body = _check(at(MONDAY, 10), calendar=calendar).to_dict()
    assert body["has_conflict"] is True
    assert body["can_override"] is False
    assert body["conflicts"][0]["type"] == "OVERLAP"
    assert body["conflicts"][0]["severity"] == "ERROR"
    assert body["conflicts"][0]["range"]["start"].startswith("2025-09-15T13:00:00")


def test_booking_window_is_enforced():
    # mínimo de 1h e máximo de 30 dias (valores padrão)
    soon = _check(NOW + timedelta(minutes=30))
    [c] = soon.of_type(ConflictType.INSUFFICIENT_ADVANCE)
    assert c.severity == Severity.ERROR
    assert soon.of_type(ConflictType.PAST_DATE) == []

    far_monday = MONDAY + timedelta(weeks=5)
    far = _check(at(far_monday, 10))
    [c] = far.of_type(ConflictType.EXCEEDS_MAX_ADVANCE)
    assert c.severity == Severity.ERROR

    relaxed = _check(at(far_monday, 10), allow_past=True)
    [c] = relaxed.of_type(ConflictType.EXCEEDS_MAX_ADVANCE)
    assert c.severity == Severity.WARNING
    assert relaxed.can_override is True
