"""
Lab test request models.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class LabRequestStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETE = "Complete"
    REJECTED = "Rejected"


class LabRequestCreate(BaseModel):
    """Doctor attaches a lab test request to a queue entry."""
    queue_entry_id: str
    card_number: str = Field(..., min_length=1)
    notes: Optional[str] = None


class LabRequestUpdate(BaseModel):
    """Lab technician moves a request along."""
    status: LabRequestStatus
    test_results: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None


class LabRequest(BaseModel):
    id: str = Field(..., alias="_id")
    queue_entry_id: str
    queue_number: Optional[str] = None
    doctor_id: str
    lab_tech_id: Optional[str] = None
    card_number: str
    patient_name: str
    department: str
    status: LabRequestStatus = LabRequestStatus.PENDING
    test_results: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    requested_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    class Config:
        populate_by_name = True


class LabRequestList(BaseModel):
    lab_requests: List[LabRequest] = []
