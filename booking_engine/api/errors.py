from __future__ import annotations

from fastapi import FastAPI, Request, status
from starlette.responses import JSONResponse

from booking_engine.core.errors import (
    BookingConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    QuotaExceededError,
    RecurrenceTooLargeError,
    SchedulingError,
    StoreConflictError,
    ValidationError,
)
from booking_engine.core.logging import get_logger

# ordem importa: a primeira classe que casar define o status
STATUS_BY_ERROR: list[tuple[type[SchedulingError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (RecurrenceTooLargeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (BookingConflictError, status.HTTP_409_CONFLICT),
    (StoreConflictError, status.HTTP_409_CONFLICT),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (QuotaExceededError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
]


def status_for(exc: SchedulingError) -> int:
    for cls, code in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


async def scheduling_error_handler(request: Request, exc: SchedulingError):
    code = status_for(exc)
    get_logger().info(
        "request.scheduling_error",
        path=request.url.path,
        error=exc.code,
        status_code=code,
    )
    return JSONResponse(exc.to_dict(), status_code=code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
