"""Tipos de leitura do calendário de um profissional.

Entradas somente-leitura para o cálculo de disponibilidade e para o
verificador de conflitos: janela semanal de trabalho, bloqueios e a
configuração de agenda já resolvida.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from booking_engine.services.time_ranges import TimeRange
from booking_engine.utils.tz import combine_local_to_utc, local_day_bounds


@dataclass(frozen=True)
class DayHours:
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None


# 0=segunda ... 6=domingo; dia ausente = não trabalha
WorkingHoursTemplate = dict[int, DayHours]


@dataclass(frozen=True)
class BlockedTimeEntry:
    id: str
    professional_id: str
    range: TimeRange
    is_all_day: bool = False
    reason: str | None = None

    def effective_range(self, tz: ZoneInfo) -> TimeRange:
        # bloqueio de dia inteiro cobre os dias locais completos
        if not self.is_all_day:
            return self.range
        first, _ = local_day_bounds(self.range.start.astimezone(tz).date(), tz)
        last_day = (self.range.end - timedelta(microseconds=1)).astimezone(tz).date()
        _, end = local_day_bounds(last_day, tz)
        return TimeRange(first, end)


@dataclass(frozen=True)
class ProfessionalAvailabilityConfig:
    professional_id: str
    timezone: ZoneInfo
    slot_interval: int = 30
    buffer_before: int = 0
    buffer_after: int = 0
    min_advance_booking_hours: int = 1
    max_advance_booking_days: int = 30


@dataclass
class CalendarSnapshot:
    """Tudo que os cálculos precisam sobre a agenda, já carregado."""

    working_hours: WorkingHoursTemplate
    blocked: Sequence[BlockedTimeEntry] = field(default_factory=list)
    # objetos com id, scheduled_at, end_time e status (ex.: models.Appointment)
    appointments: Sequence[Any] = field(default_factory=list)


def day_windows(
    template: WorkingHoursTemplate, d: date, tz: ZoneInfo
) -> list[TimeRange]:
    """Janelas reserváveis do dia (em UTC); o intervalo divide o dia em duas."""
    hours = template.get(d.weekday())
    if hours is None:
        return []

    start = combine_local_to_utc(d, hours.start_time, tz)
    end = combine_local_to_utc(d, hours.end_time, tz)
    if start >= end:
        return []

    if hours.break_start is None or hours.break_end is None:
        return [TimeRange(start, end)]

    b_start = combine_local_to_utc(d, hours.break_start, tz)
    b_end = combine_local_to_utc(d, hours.break_end, tz)
    windows = []
    if start < min(b_start, end):
        windows.append(TimeRange(start, min(b_start, end)))
    if max(b_end, start) < end:
        windows.append(TimeRange(max(b_end, start), end))
    return windows


@dataclass(frozen=True)
class BookedSlot:
    """Agendamento já existente, na forma mínima usada pelos cálculos."""

    id: str
    scheduled_at: datetime
    end_time: datetime
    status: Any
