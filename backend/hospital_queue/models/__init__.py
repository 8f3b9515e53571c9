"""Pydantic models for the hospital queue."""

from .user import User, UserCreate, UserLogin, UserRole, Token, TokenData, Server, ServerRole
from .patient import Patient, PatientCreate, Appointment, AppointmentCreate, AppointmentStatus, Gender
from .queue import (
    QueueEntry,
    QueueStatus,
    Priority,
    ServiceType,
    CheckInRequest,
    CheckInResult,
    QueueStatusView,
    DispatchOutcome,
    DispatchResult,
    ActiveQueue,
    QueueDisplay,
    QueueEvent,
    DEPARTMENTS,
)
from .lab import LabRequest, LabRequestCreate, LabRequestUpdate, LabRequestStatus

__all__ = [
    # User
    "User", "UserCreate", "UserLogin", "UserRole", "Token", "TokenData",
    "Server", "ServerRole",
    # Patient
    "Patient", "PatientCreate", "Appointment", "AppointmentCreate",
    "AppointmentStatus", "Gender",
    # Queue
    "QueueEntry", "QueueStatus", "Priority", "ServiceType",
    "CheckInRequest", "CheckInResult", "QueueStatusView",
    "DispatchOutcome", "DispatchResult", "ActiveQueue", "QueueDisplay",
    "QueueEvent", "DEPARTMENTS",
    # Lab
    "LabRequest", "LabRequestCreate", "LabRequestUpdate", "LabRequestStatus",
]
