"""
Appointment booking API routes.
"""

from typing import List
from fastapi import APIRouter, status, Depends

from ..models.patient import Appointment, AppointmentCreate
from ..models.user import User
from ..services.appointment_service import AppointmentService
from .dependencies import require_staff

router = APIRouter(prefix="/appointments", tags=["Appointments"])


@router.post("/", response_model=Appointment, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def book_appointment(data: AppointmentCreate):
    """Book an appointment; the response carries the patient's card number."""
    return await AppointmentService.create(data)


@router.get("/", response_model=List[Appointment], response_model_by_alias=False)
async def list_appointments(current_user: User = Depends(require_staff)):
    return await AppointmentService.list()
