"""Services package for the hospital queue."""

from .auth_service import AuthService
from .patient_service import PatientService
from .appointment_service import AppointmentService
from .queue_service import QueueService
from .dispatch import DispatchEngine
from .lab_gate import LabGate
from .lab_request_service import LabRequestService
from .display_service import DisplayService
from .notification_service import NotificationService
from .activity_log import ActivityLogService
from .numbering import TicketNumberGenerator, CardNumberGenerator
from .wait_time import WaitTimeEstimator
from .state_machine import QueueStateMachine, LabRequestStateMachine

__all__ = [
    "AuthService",
    "PatientService",
    "AppointmentService",
    "QueueService",
    "DispatchEngine",
    "LabGate",
    "LabRequestService",
    "DisplayService",
    "NotificationService",
    "ActivityLogService",
    "TicketNumberGenerator",
    "CardNumberGenerator",
    "WaitTimeEstimator",
    "QueueStateMachine",
    "LabRequestStateMachine",
]
