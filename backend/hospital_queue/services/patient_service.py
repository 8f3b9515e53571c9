"""
Patient registry: walk-in registration and card number lookup.
"""

import logging
from datetime import datetime
from typing import Optional, List

from bson import ObjectId
from bson.errors import InvalidId

from .. import clock
from ..database import Database
from ..errors import PatientNotFound, ValidationFailed
from ..models.patient import Patient, PatientCreate
from .numbering import CardNumberGenerator

logger = logging.getLogger(__name__)


def normalize_card_number(card_number: str) -> str:
    return card_number.strip().upper()


def to_patient(doc: dict) -> Patient:
    doc = dict(doc)
    doc["_id"] = str(doc["_id"])
    return Patient(**doc)


class PatientService:
    """Patient management service."""

    @classmethod
    async def register_walk_in(cls, patient_data: PatientCreate) -> Patient:
        """Create a patient record under a freshly generated card number."""
        patients = Database.get_collection("patients")
        document = patient_data.model_dump(mode="json")

        async def insert(card_number: str, number: int) -> dict:
            doc = {
                **document,
                "card_number": card_number,
                "medical_record_number": f"MRN-{card_number}",
                "created_at": clock.now(),
            }
            result = await patients.insert_one(doc)
            doc["_id"] = result.inserted_id
            return doc

        doc = await CardNumberGenerator.issue(insert)
        logger.info("Registered walk-in patient %s", doc["card_number"])
        return to_patient(doc)

    @classmethod
    async def get_patient(cls, patient_id: str) -> Optional[Patient]:
        """Get patient by ID."""
        patients = Database.get_collection("patients")

        try:
            patient = await patients.find_one({"_id": ObjectId(patient_id)})
        except (InvalidId, TypeError):
            return None

        if not patient:
            return None
        return to_patient(patient)

    @classmethod
    async def find_by_card(cls, card_number: str) -> Optional[Patient]:
        patients = Database.get_collection("patients")
        patient = await patients.find_one({"card_number": normalize_card_number(card_number)})
        return to_patient(patient) if patient else None

    @classmethod
    async def find_by_phone(cls, phone_number: str) -> Optional[Patient]:
        patients = Database.get_collection("patients")
        patient = await patients.find_one({"phone_number": phone_number}, sort=[("created_at", -1)])
        return to_patient(patient) if patient else None

    @classmethod
    async def resolve_for_check_in(
        cls,
        card_number: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> Patient:
        """The patient a check-in is for, by card number or by id."""
        if patient_id:
            patient = await cls.get_patient(patient_id)
            if not patient:
                raise PatientNotFound("Patient not found", {"patient_id": patient_id})
            return patient

        if not card_number or not card_number.strip():
            raise ValidationFailed("card_number", "Card number or patient id is required")

        patient = await cls.find_by_card(card_number)
        if not patient:
            raise PatientNotFound(
                "Patient card validation failed",
                {"card_number": normalize_card_number(card_number)},
            )
        return patient

    @classmethod
    async def search_patients(cls, query: str, limit: int = 50) -> List[Patient]:
        """Search patients by name, card or phone."""
        patients = Database.get_collection("patients")
        filter_query = {
            "$or": [
                {"first_name": {"$regex": query, "$options": "i"}},
                {"last_name": {"$regex": query, "$options": "i"}},
                {"card_number": {"$regex": query, "$options": "i"}},
                {"phone_number": query},
            ]
        }
        cursor = patients.find(filter_query, sort=[("created_at", -1)], limit=limit)

        results = []
        async for patient in cursor:
            results.append(to_patient(patient))
        return results
