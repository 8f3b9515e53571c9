"""
Lab pre-approval and lab request API routes.
"""

from typing import Optional
from fastapi import APIRouter, status, Depends, Query

from ..models.lab import LabRequest, LabRequestCreate, LabRequestList, LabRequestStatus, LabRequestUpdate
from ..models.queue import ApproveRequest, PendingQueue, QueueEntry, RejectRequest
from ..models.user import Server, User
from ..services.lab_gate import LabGate
from ..services.lab_request_service import LabRequestService
from .dependencies import get_current_user, require_doctor, require_lab_technician

router = APIRouter(prefix="/lab", tags=["Lab Approval"])
requests_router = APIRouter(prefix="/lab-requests", tags=["Lab Requests"])


@router.get("/pending", response_model=PendingQueue, response_model_by_alias=False)
async def list_pending(server: Server = Depends(require_lab_technician)):
    """Entries waiting for lab admission."""
    return await LabGate.list_pending(server)


@router.post("/approve", response_model=QueueEntry, response_model_by_alias=False)
async def approve_entry(
    request: ApproveRequest,
    server: Server = Depends(require_lab_technician)
):
    return await LabGate.approve(server, request.queue_entry_id)


@router.post("/reject", response_model=QueueEntry, response_model_by_alias=False)
async def reject_entry(
    request: RejectRequest,
    server: Server = Depends(require_lab_technician)
):
    return await LabGate.reject(server, request.queue_entry_id, request.reason)


@requests_router.post("/", response_model=LabRequest, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def create_lab_request(
    data: LabRequestCreate,
    doctor: Server = Depends(require_doctor)
):
    """Request lab tests for a queue entry."""
    return await LabRequestService.create(doctor, data)


@requests_router.get("/", response_model=LabRequestList, response_model_by_alias=False)
async def list_lab_requests(
    status_filter: Optional[LabRequestStatus] = Query(None, alias="status"),
    department: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user)
):
    return LabRequestList(lab_requests=await LabRequestService.list(status_filter, department))


@requests_router.get("/{request_id}", response_model=LabRequest, response_model_by_alias=False)
async def get_lab_request(
    request_id: str,
    current_user: User = Depends(get_current_user)
):
    return await LabRequestService.get(request_id)


@requests_router.put("/{request_id}", response_model=LabRequest, response_model_by_alias=False)
async def update_lab_request(
    request_id: str,
    data: LabRequestUpdate,
    lab_tech: Server = Depends(require_lab_technician)
):
    """Progress a lab request; rejecting it also rejects the queue entry."""
    return await LabRequestService.update(lab_tech, request_id, data)
