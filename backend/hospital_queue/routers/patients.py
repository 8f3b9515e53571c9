"""
Patient registration API routes.
"""

from typing import List
from fastapi import APIRouter, HTTPException, status, Depends, Query

from ..models.patient import Patient, PatientCreate
from ..models.user import User
from ..services.patient_service import PatientService
from .dependencies import get_current_user, require_staff

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.post("/", response_model=Patient, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def register_walk_in(
    patient_data: PatientCreate,
    current_user: User = Depends(require_staff)
):
    """Register a walk-in patient and issue a card number."""
    return await PatientService.register_walk_in(patient_data)


@router.get("/", response_model=List[Patient], response_model_by_alias=False)
async def search_patients(
    q: str = Query(..., min_length=1, description="Search by name, card number or phone"),
    limit: int = Query(50, le=100),
    current_user: User = Depends(get_current_user)
):
    """Search patients."""
    return await PatientService.search_patients(query=q, limit=limit)


@router.get("/card/{card_number}", response_model=Patient, response_model_by_alias=False)
async def get_patient_by_card(card_number: str):
    """Validate a card number before check-in."""
    patient = await PatientService.find_by_card(card_number)
    if not patient:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient card validation failed"
        )
    return patient


@router.get("/{patient_id}", response_model=Patient, response_model_by_alias=False)
async def get_patient(
    patient_id: str,
    current_user: User = Depends(get_current_user)
):
    """Get patient by ID."""
    patient = await PatientService.get_patient(patient_id)
    if not patient:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found"
        )
    return patient
