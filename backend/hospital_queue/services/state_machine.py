"""
Queue entry lifecycle.

Every transition is a compare-and-swap: the update is filtered on the status
the entry is expected to be in, so a transition that lost a race (or was
never allowed) changes nothing. Events are published by the callers, after
the transition returned, never from in here.

    PendingLabApproval -> Waiting | Cancelled
    Waiting            -> InProgress | Cancelled | Rejected
    InProgress         -> Complete | Cancelled | Rejected
"""

import logging
from typing import Any, Dict, FrozenSet, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

from .. import clock
from ..database import Database
from ..errors import InvalidTransition, QueueEntryNotFound, LabRequestNotFound
from ..models.queue import QueueEntry, QueueStatus, TERMINAL_STATUSES
from ..models.lab import LabRequest, LabRequestStatus
from ..models.user import Server
from .claims import Claims, active_entry_key

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[QueueStatus, FrozenSet[QueueStatus]] = {
    QueueStatus.PENDING_LAB_APPROVAL: frozenset({QueueStatus.WAITING, QueueStatus.CANCELLED}),
    QueueStatus.WAITING: frozenset({
        QueueStatus.IN_PROGRESS,
        QueueStatus.CANCELLED,
        QueueStatus.REJECTED,
    }),
    QueueStatus.IN_PROGRESS: frozenset({
        QueueStatus.COMPLETE,
        QueueStatus.CANCELLED,
        QueueStatus.REJECTED,
    }),
    QueueStatus.COMPLETE: frozenset(),
    QueueStatus.CANCELLED: frozenset(),
    QueueStatus.REJECTED: frozenset(),
}

LAB_TRANSITIONS: Dict[LabRequestStatus, FrozenSet[LabRequestStatus]] = {
    LabRequestStatus.PENDING: frozenset({LabRequestStatus.IN_PROGRESS, LabRequestStatus.REJECTED}),
    LabRequestStatus.IN_PROGRESS: frozenset({LabRequestStatus.COMPLETE, LabRequestStatus.REJECTED}),
    LabRequestStatus.COMPLETE: frozenset(),
    LabRequestStatus.REJECTED: frozenset(),
}

# Canonical service order: priority first, then first come first served.
DISPATCH_ORDER = [("priority_rank", -1), ("joined_at", 1), ("_id", 1)]


def can_transition(source: QueueStatus, target: QueueStatus) -> bool:
    return target in TRANSITIONS[source]


def to_entry(doc: dict) -> QueueEntry:
    doc = dict(doc)
    doc["_id"] = str(doc["_id"])
    return QueueEntry(**doc)


def to_lab_request(doc: dict) -> LabRequest:
    doc = dict(doc)
    doc["_id"] = str(doc["_id"])
    return LabRequest(**doc)


def parse_object_id(value: str, not_found=QueueEntryNotFound) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise not_found(f"Unknown id: {value}", {"id": value})


def _conflict(entry: dict, target: QueueStatus, message: str) -> InvalidTransition:
    return InvalidTransition(message, {
        "queue_entry_id": str(entry["_id"]),
        "queue_number": entry.get("queue_number"),
        "status": entry.get("status"),
        "requested": target.value,
    })


class QueueStateMachine:
    """Applies the allowed transitions of a queue entry."""

    @classmethod
    async def load(cls, entry_id: str) -> dict:
        entries = Database.get_collection("queue_entries")
        entry = await entries.find_one({"_id": parse_object_id(entry_id)})
        if not entry:
            raise QueueEntryNotFound("Queue entry not found", {"queue_entry_id": entry_id})
        return entry

    @classmethod
    def initial_status(cls, requires_lab_approval: bool) -> QueueStatus:
        if requires_lab_approval:
            return QueueStatus.PENDING_LAB_APPROVAL
        return QueueStatus.WAITING

    @classmethod
    async def apply(
        cls,
        entry: dict,
        target: QueueStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """Move ``entry`` from its current status to ``target``."""
        entries = Database.get_collection("queue_entries")
        source = QueueStatus(entry["status"])

        if not can_transition(source, target):
            raise _conflict(
                entry, target,
                f"Queue entry {entry.get('queue_number')} cannot move from {source.value} to {target.value}",
            )

        now = clock.now()
        update = {"status": target.value, "last_updated": now}
        if source is QueueStatus.IN_PROGRESS and target in TERMINAL_STATUSES:
            if entry.get("service_end_time") is None:
                update["service_end_time"] = now
                update["actual_wait_time"] = clock.minutes_between(entry.get("service_start_time"), now)
        update.update(fields or {})

        result = await entries.find_one_and_update(
            {"_id": entry["_id"], "status": source.value},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if result is None:
            current = await entries.find_one({"_id": entry["_id"]})
            if current is None:
                raise QueueEntryNotFound("Queue entry not found", {"queue_entry_id": str(entry["_id"])})
            raise _conflict(
                current, target,
                f"Queue entry {current.get('queue_number')} is now {current['status']}",
            )

        if target in TERMINAL_STATUSES:
            await Claims.release(
                active_entry_key(result["patient_id"], result["department"]),
                holder=str(result["_id"]),
            )
        logger.info("Queue %s: %s -> %s", result["queue_number"], source.value, target.value)
        return result

    @classmethod
    async def approve(cls, entry_id: str) -> dict:
        """Lab gate approval; keeps the original ``joined_at``."""
        entry = await cls._load_in(entry_id, QueueStatus.PENDING_LAB_APPROVAL)
        return await cls.apply(entry, QueueStatus.WAITING)

    @classmethod
    async def reject_pending(cls, entry_id: str, reason: str) -> dict:
        entry = await cls._load_in(entry_id, QueueStatus.PENDING_LAB_APPROVAL)
        return await cls.apply(entry, QueueStatus.CANCELLED, {"notes": reason})

    @classmethod
    async def start_next(cls, department: str, server: Server) -> Optional[dict]:
        """Select and start the best waiting entry in one atomic update.

        Selection and the Waiting -> InProgress write are a single
        ``find_one_and_update``: two concurrent callers never get the same
        entry. Returns None when nobody is waiting.
        """
        entries = Database.get_collection("queue_entries")
        now = clock.now()
        result = await entries.find_one_and_update(
            {
                "department": department,
                "status": QueueStatus.WAITING.value,
                "service_start_time": None,
            },
            {"$set": {
                "status": QueueStatus.IN_PROGRESS.value,
                "server_id": server.id,
                "server_name": server.name,
                "service_start_time": now,
                "last_updated": now,
            }},
            sort=DISPATCH_ORDER,
            return_document=ReturnDocument.AFTER,
        )
        if result is not None:
            logger.info("Queue %s: Waiting -> InProgress (server %s)", result["queue_number"], server.id)
        return result

    @classmethod
    async def undo_start(cls, entry: dict) -> None:
        """Put back an entry this process started but may not keep."""
        # compensating rollback of a start no caller ever saw, not a second set
        entries = Database.get_collection("queue_entries")
        await entries.update_one(
            {"_id": entry["_id"], "status": QueueStatus.IN_PROGRESS.value, "server_id": entry["server_id"]},
            {"$set": {
                "status": QueueStatus.WAITING.value,
                "server_id": None,
                "server_name": None,
                "service_start_time": None,
                "last_updated": clock.now(),
            }},
        )

    @classmethod
    async def complete(cls, entry: dict, notes: Optional[str] = None) -> dict:
        fields = {"notes": notes} if notes else None
        return await cls.apply(entry, QueueStatus.COMPLETE, fields)

    @classmethod
    async def cancel(cls, entry: dict, reason: Optional[str] = None) -> dict:
        fields = {"notes": reason} if reason else None
        return await cls.apply(entry, QueueStatus.CANCELLED, fields)

    @classmethod
    async def reject(cls, entry: dict) -> dict:
        """Forced by a rejected lab request."""
        return await cls.apply(entry, QueueStatus.REJECTED)

    @classmethod
    async def _load_in(cls, entry_id: str, status: QueueStatus) -> dict:
        """Load an entry that must currently be in ``status``."""
        entries = Database.get_collection("queue_entries")
        entry = await entries.find_one({"_id": parse_object_id(entry_id), "status": status.value})
        if not entry:
            raise QueueEntryNotFound(
                f"Queue entry not found or not in {status.value} status",
                {"queue_entry_id": entry_id},
            )
        return entry


class LabRequestStateMachine:
    """Lab test requests: Pending -> In Progress -> Complete, or Rejected."""

    @classmethod
    def can_transition(cls, source: LabRequestStatus, target: LabRequestStatus) -> bool:
        return target in LAB_TRANSITIONS[source]

    @classmethod
    async def apply(cls, request: dict, target: LabRequestStatus, fields: Dict[str, Any]) -> dict:
        requests = Database.get_collection("lab_requests")
        source = LabRequestStatus(request["status"])
        if not cls.can_transition(source, target):
            raise InvalidTransition(
                f"Lab request cannot move from {source.value} to {target.value}",
                {"lab_request_id": str(request["_id"]), "status": source.value, "requested": target.value},
            )

        update = {"status": target.value, "last_updated": clock.now(), **fields}
        result = await requests.find_one_and_update(
            {"_id": request["_id"], "status": source.value},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if result is None:
            current = await requests.find_one({"_id": request["_id"]})
            if current is None:
                raise LabRequestNotFound("Lab request not found", {"lab_request_id": str(request["_id"])})
            raise InvalidTransition(
                f"Lab request is now {current['status']}",
                {"lab_request_id": str(request["_id"]), "status": current["status"], "requested": target.value},
            )
        return result
