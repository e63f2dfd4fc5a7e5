from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from booking_engine.core.logging import get_logger

Handler = Callable[[str, dict[str, Any]], None]

ALL_EVENTS = "*"


class EventBus:
    """
    Publicador em processo. Handlers rodam em ordem de inscrição; uma falha
    sobe para quem emitiu (o ciclo de vida transforma em aviso).
    """

    def __init__(self, log_events: bool = True) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        if log_events:
            self.subscribe(ALL_EVENTS, _log_event)

    def subscribe(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        for handler in [*self._handlers.get(event, []), *self._handlers.get(ALL_EVENTS, [])]:
            handler(event, payload)


def _log_event(event: str, payload: dict[str, Any]) -> None:
    get_logger().info(
        "event.emitted",
        event_name=event,
        appointment_id=payload.get("appointment_id"),
    )
