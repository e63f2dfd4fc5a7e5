from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def ensure_aware_utc(dt: datetime) -> datetime:
    """
    Garante que dt é timezone-aware em UTC.
    - Se já vier aware: converte para UTC.
    - Se vier naive: ERRO (evita gravar errado).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Datetime naive recebido. Sempre use datetimes timezone-aware."
        )
    return dt.astimezone(UTC)


def combine_local_to_utc(d: date, t: time, tz: ZoneInfo) -> datetime:
    """
    Combina uma data+hora interpretadas na TZ local e retorna em UTC (aware).
    """
    if t.tzinfo is not None:
        t = time(t.hour, t.minute, t.second, t.microsecond)
    local_dt = datetime.combine(d, t).replace(tzinfo=tz)
    return local_dt.astimezone(UTC)


def local_day_bounds(d: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Meia-noite local de ``d`` até a meia-noite seguinte, ambos em UTC."""
    start_local = datetime.combine(d, time.min).replace(tzinfo=tz)
    end_local = datetime.combine(d + timedelta(days=1), time.min).replace(tzinfo=tz)
    return start_local.astimezone(UTC), end_local.astimezone(UTC)


def iso_utc(dt: datetime) -> str:
    """
    Serializa em ISO 8601 sempre em UTC com sufixo 'Z'.
    """
    return ensure_aware_utc(dt).isoformat().replace("+00:00", "Z")
