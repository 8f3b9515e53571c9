"""
Appointment booking; issues the card number used later at check-in.
"""

import logging
from typing import List

from .. import clock
from ..database import Database
from ..errors import ValidationFailed
from ..models.patient import Appointment, AppointmentCreate, AppointmentStatus, PatientCreate
from ..models.queue import DEPARTMENTS
from .patient_service import PatientService

logger = logging.getLogger(__name__)


def to_appointment(doc: dict) -> Appointment:
    doc = dict(doc)
    doc["_id"] = str(doc["_id"])
    return Appointment(**doc)


class AppointmentService:
    """Appointment management service."""

    @classmethod
    async def create(cls, data: AppointmentCreate) -> Appointment:
        """Book an appointment, registering the caller if their phone is unknown."""
        if data.department not in DEPARTMENTS:
            raise ValidationFailed("department", f"Unknown department: {data.department}")

        patient = await PatientService.find_by_phone(data.phone_number)
        if patient is None:
            first_name, _, last_name = data.full_name.strip().partition(" ")
            patient = await PatientService.register_walk_in(PatientCreate(
                first_name=first_name,
                last_name=last_name.strip(),
                phone_number=data.phone_number,
            ))

        appointments = Database.get_collection("appointments")
        doc = {
            "patient_id": patient.id,
            "full_name": data.full_name,
            "email": data.email,
            "phone_number": data.phone_number,
            "card_number": patient.card_number,
            "department": data.department,
            "appointment_date": data.appointment_date.isoformat(),
            "appointment_time": data.appointment_time,
            "status": AppointmentStatus.SCHEDULED.value,
            "notes": data.notes,
            "created_at": clock.now(),
        }
        result = await appointments.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info("Appointment booked for %s in %s", patient.card_number, data.department)
        return to_appointment(doc)

    @classmethod
    async def list(cls) -> List[Appointment]:
        appointments = Database.get_collection("appointments")
        cursor = appointments.find({}, sort=[("appointment_date", 1), ("appointment_time", 1)])

        result = []
        async for doc in cursor:
            result.append(to_appointment(doc))
        return result
