"""
Queue entry models for patient check-in, dispatch and display.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class QueueStatus(str, Enum):
    """Queue entry lifecycle states."""
    PENDING_LAB_APPROVAL = "PendingLabApproval"
    WAITING = "Waiting"
    IN_PROGRESS = "InProgress"
    COMPLETE = "Complete"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"


ACTIVE_STATUSES = (
    QueueStatus.PENDING_LAB_APPROVAL,
    QueueStatus.WAITING,
    QueueStatus.IN_PROGRESS,
)
TERMINAL_STATUSES = (
    QueueStatus.COMPLETE,
    QueueStatus.CANCELLED,
    QueueStatus.REJECTED,
)


class Priority(str, Enum):
    """Ordinal urgency of an entry; Urgent is served first."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class ServiceType(str, Enum):
    GENERAL_CONSULTATION = "General Consultation"
    SPECIALIST = "Specialist"
    LABORATORY = "Laboratory"
    RADIOLOGY = "Radiology"
    PHARMACY = "Pharmacy"
    EMERGENCY = "Emergency"


DEPARTMENTS = (
    "Cardiology",
    "Laboratory",
    "Radiology",
    "Pharmacy",
    "Emergency",
    "General Medicine",
    "Orthopedics",
    "Pediatrics",
)


class CheckInRequest(BaseModel):
    """Check-in by card number or by an already known patient id."""
    card_number: Optional[str] = None
    patient_id: Optional[str] = None
    department: str
    service_type: ServiceType = ServiceType.GENERAL_CONSULTATION
    priority: Priority = Priority.MEDIUM
    requires_lab_approval: bool = False
    notes: Optional[str] = Field(None, max_length=500)


class QueueEntry(BaseModel):
    """Queue entry (ticket) response model."""
    id: str = Field(..., alias="_id")
    queue_number: str = Field(..., description="Display number like CARD-001")
    sequence: int
    department: str
    service_type: ServiceType
    priority: Priority = Priority.MEDIUM
    status: QueueStatus = QueueStatus.WAITING
    patient_id: str
    patient_name: Optional[str] = None
    server_id: Optional[str] = None
    server_name: Optional[str] = None
    joined_at: datetime
    service_start_time: Optional[datetime] = None
    service_end_time: Optional[datetime] = None
    estimated_wait_time: Optional[int] = None
    actual_wait_time: Optional[int] = None
    notes: Optional[str] = None
    last_updated: Optional[datetime] = None

    class Config:
        populate_by_name = True


class CheckInResult(BaseModel):
    """What the intake desk gets back after a successful check-in."""
    queue_number: str
    estimated_wait_time: int
    status: QueueStatus
    entry: QueueEntry
    patient_name: Optional[str] = None
    card_number: Optional[str] = None


class DepartmentLoad(BaseModel):
    waiting_count: int = 0
    in_progress_count: int = 0
    total_active: int = 0


class QueueStatusView(BaseModel):
    """Status of a single ticket, as asked by its holder."""
    status: QueueStatus
    entry: QueueEntry
    position: Optional[int] = None
    estimated_wait_time: Optional[int] = None
    department_status: DepartmentLoad = DepartmentLoad()


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PhoneSearchResult(BaseModel):
    patient_name: str
    phone_number: str
    active: List[QueueEntry] = []
    completed: List[QueueEntry] = []
    total: int = 0


class DispatchOutcome(str, Enum):
    CALLED = "called"
    EMPTY = "empty"


class CallNextRequest(BaseModel):
    department: Optional[str] = None


class CompleteRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


class DispatchResult(BaseModel):
    """Outcome of a call-next: either the called entry or an empty queue."""
    outcome: DispatchOutcome
    department: str
    server_id: str
    entry: Optional[QueueEntry] = None
    message: str = ""


class QueueStatistics(BaseModel):
    total_waiting: int = 0
    urgent_cases: int = 0
    high_priority: int = 0
    average_wait_time: int = 0


class ActiveQueue(BaseModel):
    """A server's working view of its department."""
    department: str
    server_id: str
    current_patient: Optional[QueueEntry] = None
    waiting_patients: List[QueueEntry] = []
    statistics: QueueStatistics = QueueStatistics()


class StatusBreakdown(BaseModel):
    status: QueueStatus
    count: int
    average_service_time: Optional[float] = None


class ServerStatistics(BaseModel):
    department: str
    date_range: str
    server_id: str
    statistics: List[StatusBreakdown] = []
    total_served: int = 0


class ApproveRequest(BaseModel):
    queue_entry_id: str


class RejectRequest(BaseModel):
    queue_entry_id: str
    reason: Optional[str] = Field(None, max_length=500)


class PendingQueue(BaseModel):
    entries: List[QueueEntry] = []
    total_pending: int = 0


class DisplayEntry(BaseModel):
    queue_number: str
    patient_name: Optional[str] = None
    priority: Priority
    joined_at: datetime
    estimated_wait_time: int


class CurrentlyServing(BaseModel):
    queue_number: str
    patient_name: Optional[str] = None
    server_name: Optional[str] = None
    service_start_time: Optional[datetime] = None
    estimated_duration: int


class DisplayStatistics(BaseModel):
    total_waiting: int = 0
    currently_in_progress: int = 0
    average_wait_time: int = 0
    last_updated: datetime


class DepartmentDisplay(BaseModel):
    """One department panel on the public display."""
    department: str
    currently_serving: Optional[CurrentlyServing] = None
    waiting_patients: List[DisplayEntry] = []
    statistics: DisplayStatistics


class QueueDisplay(BaseModel):
    departments: List[DepartmentDisplay] = []
    timestamp: datetime
    total_departments: int = 0


class QueueEvent(BaseModel):
    """One lifecycle event, delivered after the state change is committed."""
    event_type: str
    department: Optional[str] = None
    queue_number: Optional[str] = None
    patient_id: Optional[str] = None
    queue_entry_id: Optional[str] = None
    status: Optional[str] = None
    actor_id: Optional[str] = None
    context: Dict[str, Any] = {}
    occurred_at: datetime
