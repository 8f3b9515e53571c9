"""Routers package for the hospital queue API."""

from .auth import router as auth_router
from .patients import router as patients_router
from .appointments import router as appointments_router
from .queue import router as queue_router
from .doctor import router as doctor_router
from .lab import router as lab_router, requests_router as lab_requests_router
from .display import router as display_router
from .notifications import router as notifications_router

__all__ = [
    "auth_router",
    "patients_router",
    "appointments_router",
    "queue_router",
    "doctor_router",
    "lab_router",
    "lab_requests_router",
    "display_router",
    "notifications_router",
]
