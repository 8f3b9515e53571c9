"""
Queue check-in and ticket lookup API routes.
"""

from typing import Optional
from fastapi import APIRouter, status, Depends, Query

from ..models.patient import PHONE_PATTERN
from ..models.queue import (
    CancelRequest,
    CheckInRequest,
    CheckInResult,
    PhoneSearchResult,
    QueueEntry,
    QueueStatusView,
)
from ..models.user import User
from ..services.activity_log import ActivityLogService
from ..services.queue_service import QueueService
from .dependencies import require_staff

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/check-in", response_model=CheckInResult, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def check_in(request: CheckInRequest):
    """Join a department queue by card number or patient id."""
    return await QueueService.check_in(request)


@router.get("/status/{queue_number}", response_model=QueueStatusView, response_model_by_alias=False)
async def get_queue_status(queue_number: str):
    """Where a ticket stands: status, position and estimated wait."""
    return await QueueService.get_status(queue_number.strip().upper())


@router.get("/search", response_model=PhoneSearchResult, response_model_by_alias=False)
async def search_by_phone(phone_number: str = Query(..., pattern=PHONE_PATTERN)):
    """Recent tickets for the patient registered with this phone number."""
    return await QueueService.search_by_phone(phone_number)


@router.post("/{entry_id}/cancel", response_model=QueueEntry, response_model_by_alias=False)
async def cancel_entry(
    entry_id: str,
    request: Optional[CancelRequest] = None,
    current_user: User = Depends(require_staff)
):
    """Cancel a queue entry on behalf of the patient."""
    reason = request.reason if request else None
    return await QueueService.cancel(entry_id, reason, current_user.id)


@router.get("/activity")
async def get_activity(
    queue_number: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    current_user: User = Depends(require_staff)
):
    """Recent queue activity, optionally for one ticket."""
    number = queue_number.strip().upper() if queue_number else None
    return await ActivityLogService.recent(limit, number)
