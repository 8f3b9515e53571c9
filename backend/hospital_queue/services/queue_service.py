"""
Check-in, ticket status and administrative cancellation.
"""

import logging
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId

from .. import clock
from ..database import Database
from ..errors import DuplicateActiveEntry, PatientNotFound, QueueEntryNotFound
from ..models.queue import (
    ACTIVE_STATUSES,
    CheckInRequest,
    CheckInResult,
    PhoneSearchResult,
    QueueEntry,
    QueueStatus,
    QueueStatusView,
)
from . import events
from .claims import Claims, active_entry_key, is_stale
from .departments import department_load, normalize_department
from .events import EventType, entry_event
from .numbering import TicketNumberGenerator
from .patient_service import PatientService
from .state_machine import QueueStateMachine, to_entry
from .wait_time import WaitTimeEstimator

logger = logging.getLogger(__name__)

ACTIVE_VALUES = [status.value for status in ACTIVE_STATUSES]


def _duplicate(existing: dict) -> DuplicateActiveEntry:
    return DuplicateActiveEntry(
        "Patient already has an active queue for this department",
        {
            "queue_entry_id": str(existing["_id"]),
            "queue_number": existing["queue_number"],
            "status": existing["status"],
            "joined_at": existing["joined_at"].isoformat(),
        },
    )


class QueueService:
    """Queue entry intake and lookup."""

    @classmethod
    async def _find_active(cls, patient_id: str, department: str) -> Optional[dict]:
        entries = Database.get_collection("queue_entries")
        return await entries.find_one({
            "patient_id": patient_id,
            "department": department,
            "status": {"$in": ACTIVE_VALUES},
        })

    @classmethod
    async def _claim_active_slot(cls, patient_id: str, department: str, entry_id: ObjectId) -> str:
        """Hold the one-active-entry slot of a patient in a department."""
        existing = await cls._find_active(patient_id, department)
        if existing:
            raise _duplicate(existing)

        key = active_entry_key(patient_id, department)
        claim = await Claims.acquire(key, str(entry_id))
        if claim is None:
            return key

        holder = claim["holder"]
        try:
            held = await Database.get_collection("queue_entries").find_one({"_id": ObjectId(holder)})
        except InvalidId:
            held = None
        if held and held["status"] in ACTIVE_VALUES:
            raise _duplicate(held)

        # an unwritten holder may still be checking in until the claim goes stale
        in_flight = held is None and not is_stale(claim)
        if in_flight or not await Claims.takeover(key, holder, str(entry_id)):
            raise DuplicateActiveEntry(
                "Patient already has an active queue for this department",
                {"patient_id": patient_id, "department": department},
            )
        return key

    @classmethod
    async def check_in(cls, request: CheckInRequest, actor_id: Optional[str] = None) -> CheckInResult:
        """Create a queue entry: Waiting, or PendingLabApproval when gated."""
        department = normalize_department(request.department)
        patient = await PatientService.resolve_for_check_in(request.card_number, request.patient_id)

        entries = Database.get_collection("queue_entries")
        entry_id = ObjectId()
        key = await cls._claim_active_slot(patient.id, department, entry_id)

        try:
            estimated_wait = await WaitTimeEstimator.load_based(department)
            status = QueueStateMachine.initial_status(request.requires_lab_approval)
            now = clock.now()

            async def insert(queue_number: str, sequence: int) -> dict:
                doc = {
                    "_id": entry_id,
                    "queue_number": queue_number,
                    "sequence": sequence,
                    "department": department,
                    "service_type": request.service_type.value,
                    "priority": request.priority.value,
                    "priority_rank": request.priority.rank,
                    "status": status.value,
                    "patient_id": patient.id,
                    "patient_name": patient.full_name,
                    "server_id": None,
                    "server_name": None,
                    "joined_at": now,
                    "service_start_time": None,
                    "service_end_time": None,
                    "estimated_wait_time": estimated_wait,
                    "actual_wait_time": None,
                    "notes": request.notes,
                    "created_by": actor_id,
                    "last_updated": now,
                }
                await entries.insert_one(doc)
                return doc

            doc = await TicketNumberGenerator.issue(department, insert)
        except Exception:
            await Claims.release(key, str(entry_id))
            raise

        logger.info("Checked in %s as %s (%s)", patient.card_number, doc["queue_number"], status.value)

        event_type = EventType.QUEUE_CREATED
        if status is QueueStatus.PENDING_LAB_APPROVAL:
            event_type = EventType.QUEUE_PENDING_LAB
        events.publish(entry_event(
            event_type, doc, actor_id,
            service_type=doc["service_type"],
            priority=doc["priority"],
            estimated_wait_time=estimated_wait,
        ))

        return CheckInResult(
            queue_number=doc["queue_number"],
            estimated_wait_time=estimated_wait,
            status=status,
            entry=to_entry(doc),
            patient_name=patient.full_name,
            card_number=patient.card_number,
        )

    @classmethod
    async def get_entry(cls, entry_id: str) -> QueueEntry:
        return to_entry(await QueueStateMachine.load(entry_id))

    @classmethod
    async def get_status(cls, queue_number: str) -> QueueStatusView:
        """Status of a ticket, with its position while it is waiting."""
        entries = Database.get_collection("queue_entries")
        entry = await entries.find_one({"queue_number": queue_number.strip().upper()})
        if not entry:
            raise QueueEntryNotFound("Queue number not found", {"queue_number": queue_number})

        position = None
        estimated_wait = None
        if entry["status"] == QueueStatus.WAITING.value:
            position = await WaitTimeEstimator.position(entry)
            estimated_wait = await WaitTimeEstimator.positional(entry)

        return QueueStatusView(
            status=QueueStatus(entry["status"]),
            entry=to_entry(entry),
            position=position,
            estimated_wait_time=estimated_wait,
            department_status=await department_load(entry["department"]),
        )

    @classmethod
    async def cancel(cls, entry_id: str, reason: Optional[str] = None, actor_id: Optional[str] = None) -> QueueEntry:
        """Administrative cancellation; the queue number stays retired."""
        entry = await QueueStateMachine.load(entry_id)
        updated = await QueueStateMachine.cancel(entry, reason)
        events.publish(entry_event(EventType.QUEUE_CANCELLED, updated, actor_id, reason=reason))
        return to_entry(updated)

    @classmethod
    async def search_by_phone(cls, phone_number: str) -> PhoneSearchResult:
        """The last ten tickets of the patient with this phone number."""
        patient = await PatientService.find_by_phone(phone_number)
        if not patient:
            raise PatientNotFound("No patient found with this phone number", {"phone_number": phone_number})

        entries = Database.get_collection("queue_entries")
        cursor = entries.find({"patient_id": patient.id}, sort=[("joined_at", -1)], limit=10)

        active, completed, total = [], [], 0
        async for doc in cursor:
            total += 1
            if doc["status"] in ACTIVE_VALUES:
                active.append(to_entry(doc))
            elif doc["status"] == QueueStatus.COMPLETE.value:
                completed.append(to_entry(doc))

        return PhoneSearchResult(
            patient_name=patient.full_name,
            phone_number=patient.phone_number,
            active=active,
            completed=completed,
            total=total,
        )
