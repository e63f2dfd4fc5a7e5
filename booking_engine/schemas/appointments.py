from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from booking_engine.models.appointment import AppointmentStatus, CancellationReason
from booking_engine.services.recurrence import (
    EndCondition,
    EndType,
    Frequency,
    RecurrencePattern,
    SeriesPolicy,
)
from booking_engine.services.scheduler import BookingRequest, ServiceLineRequest


def _aware(v: datetime) -> datetime:
    if v.tzinfo is None:
        raise ValueError("Datetime sem fuso; use ISO-8601 com offset ou sufixo Z")
    return v


class ServiceLineIn(BaseModel):
    service_id: str
    quantity: int = Field(1, ge=1, le=20)


class BookingIn(BaseModel):
    client_id: str
    professional_id: str
    scheduled_at: datetime = Field(
        ..., description="ISO-8601; preferir UTC com sufixo Z (ex.: 2025-09-15T13:00:00Z)"
    )
    services: list[ServiceLineIn] = Field(..., min_length=1)
    allow_warnings: bool = False
    skip_conflict_check: bool = Field(
        False, description="Só administradores; fica registrado na auditoria"
    )

    @field_validator("scheduled_at")
    @classmethod
    def _check_tz(cls, v: datetime) -> datetime:
        return _aware(v)

    def to_request(self, tenant_id: str) -> BookingRequest:
        return BookingRequest(
            tenant_id=tenant_id,
            client_id=self.client_id,
            professional_id=self.professional_id,
            scheduled_at=self.scheduled_at,
            services=[ServiceLineRequest(s.service_id, s.quantity) for s in self.services],
            allow_warnings=self.allow_warnings,
            skip_conflict_check=self.skip_conflict_check,
        )


class EndConditionIn(BaseModel):
    type: EndType
    count: int | None = Field(None, ge=1)
    until: date | None = None

    @model_validator(mode="after")
    def _check_value(self):
        if self.type == EndType.COUNT and self.count is None:
            raise ValueError("count é obrigatório quando type=COUNT")
        if self.type == EndType.UNTIL_DATE and self.until is None:
            raise ValueError("until é obrigatório quando type=UNTIL_DATE")
        return self


class RecurrencePatternIn(BaseModel):
    frequency: Frequency
    interval: int = Field(1, ge=1)
    days_of_week: list[int] | None = Field(
        None, description="0=segunda ... 6=domingo (só WEEKLY)"
    )
    end_condition: EndConditionIn

    def to_pattern(self) -> RecurrencePattern:
        end = self.end_condition
        value = end.count if end.type == EndType.COUNT else end.until
        return RecurrencePattern(
            frequency=self.frequency,
            interval=self.interval,
            days_of_week=(
                frozenset(self.days_of_week) if self.days_of_week is not None else None
            ),
            end_condition=EndCondition(end.type, value),
        )


class RecurringBookingIn(BookingIn):
    pattern: RecurrencePatternIn
    policy: SeriesPolicy = SeriesPolicy.BEST_EFFORT
    excluded_dates: list[date] = Field(default_factory=list)


class RescheduleIn(BaseModel):
    new_scheduled_at: datetime = Field(
        ..., description="ISO-8601; preferir UTC com sufixo Z (ex.: 2025-09-15T13:00:00Z)"
    )
    reason: str | None = Field(None, max_length=500)
    allow_warnings: bool = False
    skip_conflict_check: bool = False

    @field_validator("new_scheduled_at")
    @classmethod
    def _check_tz(cls, v: datetime) -> datetime:
        return _aware(v)


class CancelIn(BaseModel):
    reason: CancellationReason
    details: str | None = Field(None, max_length=500)


# ---------- saída ----------


class ServiceLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    service_id: str
    position: int
    duration: int
    price: Decimal
    quantity: int


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    client_id: str
    professional_id: str
    status: AppointmentStatus
    scheduled_at: datetime
    end_time: datetime
    total_duration: int
    total_price: Decimal
    recurrence_group_id: str | None = None
    recurrence_index: int | None = None
    cancellation_reason: CancellationReason | None = None
    rescheduled_from: datetime | None = None
    services: list[ServiceLineOut] = []


class BookingOut(BaseModel):
    appointment: AppointmentOut
    conflicts: dict
    warnings: list[str] = []


class TransitionOut(BaseModel):
    appointment: AppointmentOut
    previous_status: AppointmentStatus
    warnings: list[str] = []
