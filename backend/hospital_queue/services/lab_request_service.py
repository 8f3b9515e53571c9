"""
Lab test requests attached to queue entries by doctors.
"""

import logging
from typing import List, Optional

from pymongo.errors import DuplicateKeyError

from .. import clock
from ..database import Database
from ..errors import (
    ConflictError,
    DuplicateLabRequest,
    InvalidTransition,
    LabRequestNotFound,
    PermissionDenied,
    ValidationFailed,
)
from ..models.lab import LabRequest, LabRequestCreate, LabRequestStatus, LabRequestUpdate
from ..models.queue import QueueStatus, TERMINAL_STATUSES
from ..models.user import Server, ServerRole
from . import events
from .events import EventType, entry_event
from .state_machine import (
    LabRequestStateMachine,
    QueueStateMachine,
    can_transition,
    parse_object_id,
    to_lab_request,
)

logger = logging.getLogger(__name__)


class LabRequestService:
    """Create, list and progress lab requests."""

    @classmethod
    async def create(cls, doctor: Server, data: LabRequestCreate) -> LabRequest:
        if doctor.role is not ServerRole.DOCTOR:
            raise PermissionDenied("Only doctors can request lab tests", {"role": doctor.role.value})

        entry = await QueueStateMachine.load(data.queue_entry_id)
        if QueueStatus(entry["status"]) in TERMINAL_STATUSES:
            raise ConflictError(
                f"Queue entry {entry['queue_number']} is already {entry['status']}",
                {"queue_entry_id": data.queue_entry_id, "status": entry["status"]},
            )

        now = clock.now()
        doc = {
            "queue_entry_id": str(entry["_id"]),
            "queue_number": entry["queue_number"],
            "patient_id": entry["patient_id"],
            "doctor_id": doctor.id,
            "lab_tech_id": None,
            "card_number": data.card_number.strip().upper(),
            "patient_name": entry.get("patient_name") or "",
            "department": entry["department"],
            "status": LabRequestStatus.PENDING.value,
            "test_results": None,
            "notes": data.notes,
            "rejection_reason": None,
            "requested_at": now,
            "started_at": None,
            "completed_at": None,
            "last_updated": now,
        }
        requests = Database.get_collection("lab_requests")
        try:
            result = await requests.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateLabRequest(
                "Lab request already exists for this queue entry",
                {"queue_entry_id": data.queue_entry_id},
            )
        doc["_id"] = result.inserted_id

        events.publish(entry_event(
            EventType.LAB_REQUEST_CREATED, entry, doctor.id,
            lab_request_id=str(doc["_id"]),
        ))
        return to_lab_request(doc)

    @classmethod
    async def list(cls, status: Optional[LabRequestStatus] = None, department: Optional[str] = None) -> List[LabRequest]:
        requests = Database.get_collection("lab_requests")
        query = {}
        if status:
            query["status"] = status.value
        if department:
            query["department"] = department

        cursor = requests.find(query, sort=[("requested_at", 1)])
        return [to_lab_request(doc) async for doc in cursor]

    @classmethod
    async def _load(cls, request_id: str) -> dict:
        requests = Database.get_collection("lab_requests")
        doc = await requests.find_one({"_id": parse_object_id(request_id, LabRequestNotFound)})
        if not doc:
            raise LabRequestNotFound("Lab request not found", {"lab_request_id": request_id})
        return doc

    @classmethod
    async def get(cls, request_id: str) -> LabRequest:
        return to_lab_request(await cls._load(request_id))

    @classmethod
    async def update(cls, lab_tech: Server, request_id: str, data: LabRequestUpdate) -> LabRequest:
        """Progress a request; a rejection also rejects the queue entry."""
        if not lab_tech.is_lab_technician:
            raise PermissionDenied("Only lab technicians can update lab requests", {"role": lab_tech.role.value})
        if data.status is LabRequestStatus.PENDING:
            raise ValidationFailed("status", "Status must be one of: In Progress, Complete, Rejected")

        request = await cls._load(request_id)
        entry = None
        if data.status is LabRequestStatus.REJECTED:
            entry = await QueueStateMachine.load(request["queue_entry_id"])
            if not can_transition(QueueStatus(entry["status"]), QueueStatus.REJECTED):
                raise InvalidTransition(
                    f"Queue entry {entry['queue_number']} is {entry['status']} and cannot be rejected",
                    {"queue_entry_id": request["queue_entry_id"], "status": entry["status"]},
                )

        now = clock.now()
        fields = {"lab_tech_id": lab_tech.id}
        if data.notes is not None:
            fields["notes"] = data.notes
        if data.status is LabRequestStatus.IN_PROGRESS:
            fields["started_at"] = now
        elif data.status is LabRequestStatus.COMPLETE:
            fields["completed_at"] = now
            fields["test_results"] = data.test_results
        elif data.status is LabRequestStatus.REJECTED:
            fields["rejection_reason"] = data.rejection_reason

        updated = await LabRequestStateMachine.apply(request, data.status, fields)

        if entry is not None:
            try:
                rejected = await QueueStateMachine.reject(entry)
            except InvalidTransition as e:
                logger.warning("Queue entry %s moved on before lab rejection: %s", entry["queue_number"], e)
            else:
                events.publish(entry_event(
                    EventType.QUEUE_REJECTED, rejected, lab_tech.id,
                    reason=data.rejection_reason,
                    lab_request_id=request_id,
                ))

        if data.status is LabRequestStatus.COMPLETE:
            logger.info("Lab request %s completed for %s", request_id, updated["patient_name"])

        events.publish(entry_event(
            EventType.LAB_REQUEST_UPDATED,
            {
                "_id": updated["queue_entry_id"],
                "department": updated["department"],
                "queue_number": updated.get("queue_number"),
                "patient_id": updated.get("patient_id"),
                "status": updated["status"],
            },
            lab_tech.id,
            lab_request_id=request_id,
        ))
        return to_lab_request(updated)
