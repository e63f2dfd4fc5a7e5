from __future__ import annotations

from fastapi import FastAPI

import booking_engine.db.base  # noqa: F401
from booking_engine.api.errors import register_exception_handlers
from booking_engine.api.main import api_router
from booking_engine.core.logging import configure_logging, get_logger
from booking_engine.core.settings import settings
from booking_engine.middlewares.telemetry import RequestContextMiddleware
from booking_engine.version import APP_VERSION, BUILD_TIME_UTC, GIT_SHA

configure_logging(json=settings.LOG_JSON, level=settings.LOG_LEVEL)

app = FastAPI(title="booking-engine", debug=settings.DEBUG, version=APP_VERSION)

# --- Middlewares de contexto/log
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)
app.include_router(api_router)


# --- Endpoints
@app.get("/healthz", tags=["ops"])
def healthz():
    get_logger().info("health.check")
    return {"status": "ok", "env": settings.APP_ENV, "version": APP_VERSION}


@app.get("/version", tags=["ops"])
def version():
    return {
        "version": APP_VERSION,
        "git_sha": GIT_SHA,
        "build_time_utc": BUILD_TIME_UTC,
        "env": settings.APP_ENV,
        "debug": settings.DEBUG,
    }
