"""
Server-side queue actions: call next, complete, working views.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..models.queue import (
    ActiveQueue,
    CallNextRequest,
    CompleteRequest,
    DispatchResult,
    QueueEntry,
    ServerStatistics,
)
from ..models.user import Server
from ..services.dispatch import DispatchEngine
from .dependencies import require_any_server

router = APIRouter(prefix="/doctor", tags=["Doctor Queue"])


@router.get("/queue", response_model=ActiveQueue, response_model_by_alias=False)
async def get_active_queue(
    department: Optional[str] = Query(None),
    server: Server = Depends(require_any_server)
):
    """The server's current patient and the department's waiting line."""
    return await DispatchEngine.active_queue(server, department)


@router.post("/call-next", response_model=DispatchResult, response_model_by_alias=False)
async def call_next_patient(
    request: Optional[CallNextRequest] = None,
    server: Server = Depends(require_any_server)
):
    """Call the next patient; an empty department is not an error."""
    department = request.department if request else None
    return await DispatchEngine.call_next(server, department)


@router.post("/complete", response_model=QueueEntry, response_model_by_alias=False)
async def complete_service(
    request: Optional[CompleteRequest] = None,
    server: Server = Depends(require_any_server)
):
    """Complete the patient currently being served."""
    notes = request.notes if request else None
    return await DispatchEngine.complete(server, notes)


@router.get("/statistics", response_model=ServerStatistics, response_model_by_alias=False)
async def get_statistics(
    department: str = Query(...),
    date_range: str = Query("today", pattern="^(today|week|month)$"),
    server: Server = Depends(require_any_server)
):
    return await DispatchEngine.statistics(server, department, date_range)
