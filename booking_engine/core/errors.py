"""Taxonomia de erros do núcleo de agendamento.

Todos são falhas esperadas e tipadas: sobem até quem chamou o orquestrador
e nunca são engolidas. A camada HTTP traduz cada família num status
(ver ``booking_engine.api.errors``).
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    code = "scheduling_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


# ---------- validação (entrada malformada) ----------


class ValidationError(SchedulingError):
    code = "validation_error"


class InvalidRangeError(ValidationError):
    code = "invalid_range"


class InvalidRequestError(ValidationError):
    code = "invalid_request"


class InvalidRecurrencePatternError(ValidationError):
    code = "invalid_recurrence_pattern"

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Padrão de recorrência inválido", errors=list(errors))
        self.errors = list(errors)


class OverrideNotAllowedError(ValidationError):
    code = "override_not_allowed"


# ---------- conflitos ----------


class BookingConflictError(SchedulingError):
    code = "booking_conflict"

    def __init__(
        self,
        conflict_result,
        message: str = "Conflito de horário detectado",
        *,
        occurrence_index: int | None = None,
        outcomes: list | None = None,
    ) -> None:
        super().__init__(message)
        self.conflict_result = conflict_result
        self.occurrence_index = occurrence_index
        self.outcomes = outcomes or []

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["conflicts"] = self.conflict_result.to_dict()
        if self.occurrence_index is not None:
            body["occurrence_index"] = self.occurrence_index
            body["occurrences"] = [o.to_dict() for o in self.outcomes]
        return body


class StoreConflictError(SchedulingError):
    """Escrita concorrente rejeitada pelo banco (unique/serialização/lock)."""

    code = "store_conflict"


# ---------- ciclo de vida ----------


class InvalidStatusTransitionError(SchedulingError):
    code = "invalid_status_transition"

    def __init__(self, current, target, message: str | None = None) -> None:
        current_v = getattr(current, "value", current)
        target_v = getattr(target, "value", target)
        super().__init__(
            message or f"Não é possível mudar status de {current_v} para {target_v}",
            current=current_v,
            target=target_v,
        )
        self.current = current
        self.target = target


# ---------- plano / limites ----------


class QuotaExceededError(SchedulingError):
    code = "quota_exceeded"

    def __init__(self, limit_name: str, limit: int, current: int) -> None:
        super().__init__(
            f"Limite do plano atingido ({limit_name}: {current}/{limit})",
            limit_name=limit_name,
            limit=limit,
            current=current,
        )
        self.limit_name = limit_name
        self.limit = limit
        self.current = current


class RecurrenceTooLargeError(SchedulingError):
    code = "recurrence_too_large"

    def __init__(self, projected: int, ceiling: int) -> None:
        super().__init__(
            f"Recorrência geraria mais de {ceiling} ocorrências",
            projected=projected,
            ceiling=ceiling,
        )
        self.projected = projected
        self.ceiling = ceiling


# ---------- lookup ----------


class NotFoundError(SchedulingError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity} {entity_id} não encontrado", entity=entity, id=entity_id
        )
        self.entity = entity
        self.entity_id = entity_id
