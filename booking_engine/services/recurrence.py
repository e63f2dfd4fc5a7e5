"""Expansão de padrões de recorrência em ocorrências concretas.

Os passos são dados no relógio LOCAL do tenant (09:00 continua 09:00
depois de uma mudança de horário de verão) e o resultado volta em UTC.
A quantidade de ocorrências é sempre limitada por um teto configurável.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from booking_engine.core.errors import (
    InvalidRecurrencePatternError,
    RecurrenceTooLargeError,
)
from booking_engine.services.time_ranges import TimeRange, duration_minutes

# para de contar depois disso ao estimar padrões grandes demais
_PROJECTION_CAP = 10_000

WEEKDAY_NAMES = ("segunda", "terça", "quarta", "quinta", "sexta", "sábado", "domingo")


class Frequency(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class EndType(str, enum.Enum):
    COUNT = "COUNT"
    UNTIL_DATE = "UNTIL_DATE"


class SeriesPolicy(str, enum.Enum):
    ALL_OR_NOTHING = "ALL_OR_NOTHING"
    BEST_EFFORT = "BEST_EFFORT"


@dataclass(frozen=True)
class EndCondition:
    type: EndType
    value: int | date


@dataclass(frozen=True)
class RecurrencePattern:
    frequency: Frequency
    end_condition: EndCondition
    interval: int = 1
    # 0=segunda ... 6=domingo, só para WEEKLY
    days_of_week: frozenset[int] | None = None


@dataclass(frozen=True)
class PatternValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class OccurrenceOutcome:
    index: int
    range: TimeRange
    created: bool
    appointment_id: str | None = None
    reason: str | None = None
    conflicts: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "start": self.range.start.isoformat(),
            "end": self.range.end.isoformat(),
            "created": self.created,
            "appointment_id": self.appointment_id,
            "reason": self.reason,
            "conflicts": self.conflicts,
        }


@dataclass
class SeriesResult:
    recurrence_group_id: str
    policy: SeriesPolicy
    outcomes: list[OccurrenceOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def created(self) -> list[OccurrenceOutcome]:
        return [o for o in self.outcomes if o.created]

    @property
    def skipped(self) -> list[OccurrenceOutcome]:
        return [o for o in self.outcomes if not o.created]

    def to_dict(self) -> dict[str, Any]:
        return {
            "recurrence_group_id": self.recurrence_group_id,
            "policy": self.policy.value,
            "created_count": len(self.created),
            "skipped_count": len(self.skipped),
            "occurrences": [o.to_dict() for o in self.outcomes],
            "warnings": self.warnings,
        }


def generate_recurrence_group_id() -> str:
    return str(uuid.uuid4())


def validate_pattern(pattern: RecurrencePattern) -> PatternValidation:
    """Validação estrutural; não expande o padrão."""
    errors: list[str] = []

    if not isinstance(pattern.interval, int) or pattern.interval < 1:
        errors.append("interval deve ser um inteiro >= 1")

    if pattern.days_of_week is not None:
        if pattern.frequency != Frequency.WEEKLY:
            errors.append("days_of_week só é aceito com frequência WEEKLY")
        if not pattern.days_of_week:
            errors.append("days_of_week não pode ser vazio")
        if any(d not in range(7) for d in pattern.days_of_week):
            errors.append("days_of_week aceita apenas valores de 0 a 6")

    end = pattern.end_condition
    if end.type == EndType.COUNT:
        if isinstance(end.value, bool) or not isinstance(end.value, int):
            errors.append("end_condition COUNT exige um inteiro")
        elif end.value < 1:
            errors.append("end_condition COUNT deve ser >= 1")
    elif end.type == EndType.UNTIL_DATE:
        if not isinstance(end.value, date) or isinstance(end.value, datetime):
            errors.append("end_condition UNTIL_DATE exige uma data")

    return PatternValidation(valid=not errors, errors=errors)


def _candidate_dates(pattern: RecurrencePattern, first: date) -> Iterator[date]:
    """Datas locais em ordem, infinitas; quem consome decide onde parar."""
    step = pattern.interval
    if pattern.frequency == Frequency.DAILY:
        k = 0
        while True:
            yield first + timedelta(days=k * step)
            k += 1

    elif pattern.frequency == Frequency.MONTHLY:
        # sempre a partir da primeira ocorrência: sem deriva após 28/29/30
        k = 0
        while True:
            # 31/jan + 1 mês = 28 ou 29/fev
            yield first + relativedelta(months=k * step)
            k += 1

    elif pattern.days_of_week:
        week_start = first - timedelta(days=first.weekday())
        days = sorted(pattern.days_of_week)
        k = 0
        while True:
            base = week_start + timedelta(weeks=k * step)
            for wd in days:
                candidate = base + timedelta(days=wd)
                if candidate >= first:
                    yield candidate
            k += 1

    else:
        k = 0
        while True:
            yield first + timedelta(weeks=k * step)
            k += 1


def _take(pattern: RecurrencePattern, first: date, ceiling: int) -> list[date]:
    end = pattern.end_condition
    dates: list[date] = []

    if end.type == EndType.COUNT:
        if end.value > ceiling:
            raise RecurrenceTooLargeError(projected=end.value, ceiling=ceiling)
        for d in _candidate_dates(pattern, first):
            if len(dates) == end.value:
                break
            dates.append(d)
        return dates

    projected = 0
    for d in _candidate_dates(pattern, first):
        if d > end.value or projected >= _PROJECTION_CAP:
            break
        projected += 1
        if projected <= ceiling:
            dates.append(d)
    if projected > ceiling:
        raise RecurrenceTooLargeError(projected=projected, ceiling=ceiling)
    return dates


def generate_occurrences(
    pattern: RecurrencePattern,
    first_occurrence: TimeRange,
    tz: ZoneInfo,
    max_occurrences: int = 52,
    excluded_dates: Iterable[date] | None = None,
) -> list[TimeRange]:
    """
    Expande ``pattern`` a partir de ``first_occurrence``.

    - Cada ocorrência mantém a hora local e a duração da primeira.
    - ``excluded_dates`` (datas locais) são removidas depois da expansão,
      então continuam contando para o COUNT.
    - Padrão que geraria mais de ``max_occurrences`` → RecurrenceTooLargeError.
    - Padrão inválido ou que não gera nada → InvalidRecurrencePatternError.
    """
    check = validate_pattern(pattern)
    if not check.valid:
        raise InvalidRecurrencePatternError(check.errors)

    local_start = first_occurrence.start.astimezone(tz)
    wall_time = local_start.time().replace(tzinfo=None)
    minutes = duration_minutes(first_occurrence)

    dates = _take(pattern, local_start.date(), max_occurrences)
    skip = set(excluded_dates or ())

    occurrences = [
        TimeRange.of(
            datetime.combine(d, wall_time).replace(tzinfo=tz).astimezone(UTC),
            minutes,
        )
        for d in dates
        if d not in skip
    ]
    if not occurrences:
        raise InvalidRecurrencePatternError(["O padrão não gera nenhuma ocorrência"])
    return occurrences


def describe_pattern(pattern: RecurrencePattern) -> str:
    """Texto legível do padrão, ex.: "A cada 2 semanas (segunda, quarta), 10 vezes"."""
    units = {
        Frequency.DAILY: ("Diariamente", "dias"),
        Frequency.WEEKLY: ("Semanalmente", "semanas"),
        Frequency.MONTHLY: ("Mensalmente", "meses"),
    }
    single, plural = units[pattern.frequency]
    text = single if pattern.interval == 1 else f"A cada {pattern.interval} {plural}"

    if pattern.frequency == Frequency.WEEKLY and pattern.days_of_week:
        names = ", ".join(WEEKDAY_NAMES[d] for d in sorted(pattern.days_of_week))
        text += f" ({names})"

    end = pattern.end_condition
    if end.type == EndType.COUNT:
        text += f", {end.value} vezes"
    else:
        text += f", até {end.value.strftime('%d/%m/%Y')}"
    return text
