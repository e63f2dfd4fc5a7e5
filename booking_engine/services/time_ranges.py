from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from booking_engine.core.errors import InvalidRangeError


@dataclass(frozen=True)
class TimeRange:
    """Intervalo semiaberto [start, end). Sempre com start < end."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise InvalidRangeError(
                "Intervalo inválido: início deve ser anterior ao fim",
                start=self.start.isoformat(),
                end=self.end.isoformat(),
            )

    @classmethod
    def of(cls, start: datetime, minutes: int) -> TimeRange:
        return cls(start, start + timedelta(minutes=minutes))

    def widen(self, before_minutes: int = 0, after_minutes: int = 0) -> TimeRange:
        return TimeRange(
            self.start - timedelta(minutes=before_minutes),
            self.end + timedelta(minutes=after_minutes),
        )

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    # fim exclusivo: intervalos que só se tocam não colidem
    return a.start < b.end and b.start < a.end


def contains(outer: TimeRange, inner: TimeRange) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def duration_minutes(r: TimeRange) -> int:
    return int((r.end - r.start).total_seconds() // 60)


def round_to_slot(ts: datetime, slot_interval_minutes: int) -> datetime:
    """Arredonda para baixo até a fronteira de slot do relógio local de ``ts``."""
    if slot_interval_minutes <= 0:
        raise ValueError("slot_interval_minutes deve ser positivo")
    minutes = ts.hour * 60 + ts.minute
    floored = minutes - minutes % slot_interval_minutes
    return ts.replace(
        hour=floored // 60, minute=floored % 60, second=0, microsecond=0
    )
