"""Cálculo de horários reserváveis de um profissional.

Para cada janela do dia (horário de trabalho menos o intervalo) caminha em
passos de ``slot_interval`` e marca cada início candidato como livre ou
ocupado, com o motivo. Funções puras: quem chama carrega a agenda
(``CalendarSnapshot``) e informa o "agora".
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from booking_engine.core.errors import InvalidRequestError
from booking_engine.models.appointment import ACTIVE_STATUSES
from booking_engine.services.calendar import (
    CalendarSnapshot,
    ProfessionalAvailabilityConfig,
    day_windows,
)
from booking_engine.services.time_ranges import TimeRange, overlaps, round_to_slot
from booking_engine.utils.tz import iso_utc


class SlotReason(str, enum.Enum):
    OUTSIDE_HOURS = "OUTSIDE_HOURS"
    PAST_DATE = "PAST_DATE"
    MIN_ADVANCE = "MIN_ADVANCE"
    MAX_ADVANCE = "MAX_ADVANCE"
    OVERLAP = "OVERLAP"
    BLOCKED = "BLOCKED"


@dataclass(frozen=True)
class Slot:
    range: TimeRange
    available: bool
    reason: SlotReason | None = None

    @property
    def start(self) -> datetime:
        return self.range.start

    @property
    def end(self) -> datetime:
        return self.range.end

    def to_dict(self) -> dict:
        return {
            "start": iso_utc(self.start),
            "end": iso_utc(self.end),
            "available": self.available,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass
class DayAvailability:
    professional_id: str
    date: date
    is_working_day: bool
    slots: list[Slot] = field(default_factory=list)
    past_date: bool = False

    @property
    def available_count(self) -> int:
        return sum(1 for s in self.slots if s.available)

    @property
    def available_slots(self) -> list[Slot]:
        return [s for s in self.slots if s.available]

    def to_dict(self) -> dict:
        return {
            "professional_id": self.professional_id,
            "date": self.date.isoformat(),
            "is_working_day": self.is_working_day,
            "past_date": self.past_date,
            "available_count": self.available_count,
            "slots": [s.to_dict() for s in self.slots],
        }


def _first_aligned_start(window: TimeRange, config: ProfessionalAvailabilityConfig):
    local = window.start.astimezone(config.timezone)
    aligned = round_to_slot(local, config.slot_interval)
    if aligned < local:
        aligned += timedelta(minutes=config.slot_interval)
    return aligned.astimezone(window.start.tzinfo)


def compute_availability(
    professional_id: str,
    day: date,
    requested_duration: int,
    calendar: CalendarSnapshot,
    config: ProfessionalAvailabilityConfig,
    now: datetime,
) -> DayAvailability:
    if requested_duration <= 0:
        raise InvalidRequestError(
            "Duração solicitada deve ser positiva", requested_duration=requested_duration
        )

    tz = config.timezone
    past_date = day < now.astimezone(tz).date()
    windows = day_windows(calendar.working_hours, day, tz)
    if not windows:
        return DayAvailability(
            professional_id, day, is_working_day=False, past_date=past_date
        )

    busy = [
        TimeRange(ap.scheduled_at, ap.end_time)
        for ap in calendar.appointments
        if ap.status in ACTIVE_STATUSES
    ]
    blocked = [b.effective_range(tz) for b in calendar.blocked]

    earliest = now + timedelta(hours=config.min_advance_booking_hours)
    latest = now + timedelta(days=config.max_advance_booking_days)
    step = timedelta(minutes=config.slot_interval)

    slots: list[Slot] = []
    for window in windows:
        t = _first_aligned_start(window, config)
        while t < window.end:
            slot_range = TimeRange.of(t, requested_duration)
            candidate = slot_range.widen(config.buffer_before, config.buffer_after)

            reason = None
            if past_date or t < now:
                reason = SlotReason.PAST_DATE
            elif candidate.end > window.end:
                reason = SlotReason.OUTSIDE_HOURS
            elif t < earliest:
                reason = SlotReason.MIN_ADVANCE
            elif t > latest:
                reason = SlotReason.MAX_ADVANCE
            elif any(overlaps(candidate, b) for b in busy):
                reason = SlotReason.OVERLAP
            elif any(overlaps(candidate, b) for b in blocked):
                reason = SlotReason.BLOCKED

            slots.append(Slot(slot_range, available=reason is None, reason=reason))
            t += step

    slots.sort(key=lambda s: s.start)
    return DayAvailability(
        professional_id, day, is_working_day=True, slots=slots, past_date=past_date
    )


def compute_availability_range(
    calendars: Mapping[str, tuple[ProfessionalAvailabilityConfig, CalendarSnapshot]],
    start_date: date,
    end_date: date,
    requested_duration: int,
    now: datetime,
    max_range_days: int = 31,
) -> list[DayAvailability]:
    """Um ``DayAvailability`` por profissional por dia (intervalo inclusivo)."""
    days = validate_date_range(start_date, end_date, max_range_days)

    result: list[DayAvailability] = []
    for professional_id, (config, calendar) in calendars.items():
        for offset in range(days):
            result.append(
                compute_availability(
                    professional_id,
                    start_date + timedelta(days=offset),
                    requested_duration,
                    calendar,
                    config,
                    now,
                )
            )
    return result


def validate_date_range(start_date: date, end_date: date, max_range_days: int) -> int:
    """Número de dias do intervalo inclusivo; erro se invertido ou longo demais."""
    if end_date < start_date:
        raise InvalidRequestError(
            "Data final anterior à inicial",
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        )
    days = (end_date - start_date).days + 1
    if days > max_range_days:
        raise InvalidRequestError(
            f"Intervalo máximo de {max_range_days} dias", days=days
        )
    return days
