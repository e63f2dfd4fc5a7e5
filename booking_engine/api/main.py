"""API router setup."""
from fastapi import APIRouter

from booking_engine.api.routes import appointments, availability

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(appointments.router)
api_router.include_router(availability.router)
