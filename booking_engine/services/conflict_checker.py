"""Verificação e classificação de conflitos de um agendamento proposto.

Todas as verificações rodam de forma independente e o resultado reúne
todos os conflitos encontrados, em vez de parar no primeiro.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from booking_engine.models.appointment import ACTIVE_STATUSES
from booking_engine.services.calendar import (
    CalendarSnapshot,
    ProfessionalAvailabilityConfig,
    day_windows,
)
from booking_engine.services.time_ranges import TimeRange, contains, overlaps


class ConflictType(str, enum.Enum):
    OVERLAP = "OVERLAP"
    BLOCKED = "BLOCKED"
    OUTSIDE_HOURS = "OUTSIDE_HOURS"
    TOO_CLOSE = "TOO_CLOSE"
    PAST_DATE = "PAST_DATE"
    INSUFFICIENT_ADVANCE = "INSUFFICIENT_ADVANCE"
    EXCEEDS_MAX_ADVANCE = "EXCEEDS_MAX_ADVANCE"


class Severity(str, enum.Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Conflict:
    type: ConflictType
    severity: Severity
    message: str
    conflicting_entity_id: str | None = None
    range: TimeRange | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "conflicting_entity_id": self.conflicting_entity_id,
            "range": self.range.to_dict() if self.range else None,
            "message": self.message,
        }


@dataclass(frozen=True)
class ConflictResult:
    conflicts: tuple[Conflict, ...] = field(default_factory=tuple)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    @property
    def can_override(self) -> bool:
        return all(c.severity == Severity.WARNING for c in self.conflicts)

    def of_type(self, conflict_type: ConflictType) -> list[Conflict]:
        return [c for c in self.conflicts if c.type == conflict_type]

    def blocks_booking(self, allow_warnings: bool = False) -> bool:
        if not self.has_conflict:
            return False
        return not (allow_warnings and self.can_override)

    def to_dict(self) -> dict:
        return {
            "has_conflict": self.has_conflict,
            "can_override": self.can_override,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass(frozen=True)
class ProposedBooking:
    professional_id: str
    range: TimeRange
    exclude_appointment_id: str | None = None


def _fmt(t) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


def _outside_hours(
    proposed: ProposedBooking,
    calendar: CalendarSnapshot,
    config: ProfessionalAvailabilityConfig,
) -> Conflict | None:
    tz = config.timezone
    day = proposed.range.start.astimezone(tz).date()
    hours = calendar.working_hours.get(day.weekday())
    if hours is None:
        return Conflict(
            ConflictType.OUTSIDE_HOURS,
            Severity.ERROR,
            "Profissional não trabalha neste dia",
            range=proposed.range,
        )

    windows = day_windows(calendar.working_hours, day, tz)
    if any(contains(w, proposed.range) for w in windows):
        return None

    if hours.break_start is not None and hours.break_end is not None:
        # dentro do expediente, mas invadindo o intervalo
        if len(windows) == 2:
            break_range = TimeRange(windows[0].end, windows[1].start)
            day_range = TimeRange(windows[0].start, windows[1].end)
            if contains(day_range, proposed.range) and overlaps(
                break_range, proposed.range
            ):
                return Conflict(
                    ConflictType.OUTSIDE_HOURS,
                    Severity.ERROR,
                    f"Conflita com intervalo do profissional "
                    f"({_fmt(hours.break_start)} - {_fmt(hours.break_end)})",
                    range=break_range,
                )

    return Conflict(
        ConflictType.OUTSIDE_HOURS,
        Severity.ERROR,
        f"Fora do horário de trabalho "
        f"({_fmt(hours.start_time)} - {_fmt(hours.end_time)})",
        range=proposed.range,
    )


def check_conflicts(
    proposed: ProposedBooking,
    calendar: CalendarSnapshot,
    config: ProfessionalAvailabilityConfig,
    now: datetime,
    *,
    allow_past: bool = False,
) -> ConflictResult:
    """
    ``allow_past``: capacidade administrativa; PAST_DATE e os limites de
    antecedência (mínima e máxima) viram WARNING.
    """
    r = proposed.range
    conflicts: list[Conflict] = []

    outside = _outside_hours(proposed, calendar, config)
    if outside:
        conflicts.append(outside)

    tz = config.timezone
    for block in calendar.blocked:
        block_range = block.effective_range(tz)
        if overlaps(r, block_range):
            conflicts.append(
                Conflict(
                    ConflictType.BLOCKED,
                    Severity.ERROR,
                    block.reason or "Horário bloqueado pelo profissional",
                    conflicting_entity_id=block.id,
                    range=block_range,
                )
            )

    for ap in calendar.appointments:
        if ap.status not in ACTIVE_STATUSES:
            continue
        if proposed.exclude_appointment_id and ap.id == proposed.exclude_appointment_id:
            continue
        other = TimeRange(ap.scheduled_at, ap.end_time)
        if overlaps(r, other):
            conflicts.append(
                Conflict(
                    ConflictType.OVERLAP,
                    Severity.ERROR,
                    "Profissional já possui agendamento neste horário",
                    conflicting_entity_id=ap.id,
                    range=other,
                )
            )
            continue

        # folga mínima entre atendimentos vizinhos
        gap_before = (r.start - other.end).total_seconds() / 60
        gap_after = (other.start - r.end).total_seconds() / 60
        too_close = (other.end <= r.start and gap_before < config.buffer_before) or (
            other.start >= r.end and gap_after < config.buffer_after
        )
        if too_close:
            conflicts.append(
                Conflict(
                    ConflictType.TOO_CLOSE,
                    Severity.WARNING,
                    "Intervalo menor que o buffer configurado entre atendimentos",
                    conflicting_entity_id=ap.id,
                    range=other,
                )
            )

    severity = Severity.WARNING if allow_past else Severity.ERROR
    if r.start < now:
        conflicts.append(
            Conflict(ConflictType.PAST_DATE, severity, "Horário já passou", range=r)
        )
    elif r.start < now + timedelta(hours=config.min_advance_booking_hours):
        conflicts.append(
            Conflict(
                ConflictType.INSUFFICIENT_ADVANCE,
                severity,
                f"Agendamento exige antecedência mínima de "
                f"{config.min_advance_booking_hours}h",
                range=r,
            )
        )
    elif r.start > now + timedelta(days=config.max_advance_booking_days):
        conflicts.append(
            Conflict(
                ConflictType.EXCEEDS_MAX_ADVANCE,
                severity,
                f"Agendamento além do limite de "
                f"{config.max_advance_booking_days} dias de antecedência",
                range=r,
            )
        )

    return ConflictResult(tuple(conflicts))
