"""
Patient and appointment models.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date
from enum import Enum


PHONE_PATTERN = r"^\+251[9][0-9]{8}$"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class PatientBase(BaseModel):
    """Base patient model."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    date_of_birth: Optional[date] = None
    gender: Gender = Gender.OTHER
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)


class PatientCreate(PatientBase):
    """Walk-in registration; the card number is generated."""
    pass


class Patient(PatientBase):
    """Patient response model."""
    id: str = Field(..., alias="_id")
    card_number: str
    medical_record_number: Optional[str] = None
    created_at: datetime

    class Config:
        populate_by_name = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AppointmentStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class AppointmentCreate(BaseModel):
    """Book an appointment; a card number is issued if the caller has none."""
    full_name: str = Field(..., min_length=2, max_length=200)
    email: Optional[str] = None
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    department: str
    appointment_date: date
    appointment_time: str = Field(..., min_length=1, max_length=20)
    notes: Optional[str] = None


class Appointment(BaseModel):
    id: str = Field(..., alias="_id")
    patient_id: Optional[str] = None
    full_name: str
    email: Optional[str] = None
    phone_number: str
    card_number: str
    department: str
    appointment_date: date
    appointment_time: str
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        populate_by_name = True
