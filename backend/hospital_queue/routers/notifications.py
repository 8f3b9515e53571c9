"""
Notification history API routes.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..models.patient import PHONE_PATTERN
from ..models.user import User
from ..services.notification_service import NotificationService
from .dependencies import require_admin

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/history")
async def get_history(
    recipient: Optional[str] = Query(None, pattern=PHONE_PATTERN),
    patient_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_admin)
):
    """SMS messages sent to patients, newest first."""
    return await NotificationService.history(limit, recipient, patient_id)
