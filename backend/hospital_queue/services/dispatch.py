"""
Dispatch: hand the next waiting patient of a department to a server.

Selection follows ``DISPATCH_ORDER`` (Urgent before High before Medium
before Low, then earliest arrival). The same order is used by every listing
of entries waiting for attention.
"""

import logging
from typing import List, Optional

from .. import clock
from ..config import get_settings
from ..database import Database
from ..errors import NoActiveService, ServerBusy, ValidationFailed
from ..models.queue import (
    ActiveQueue,
    DispatchOutcome,
    DispatchResult,
    Priority,
    QueueEntry,
    QueueStatistics,
    QueueStatus,
    ServerStatistics,
    StatusBreakdown,
)
from ..models.user import Server
from . import events
from .departments import normalize_department
from .events import EventType, entry_event
from .state_machine import DISPATCH_ORDER, QueueStateMachine, to_entry
from .wait_time import WaitTimeEstimator

settings = get_settings()
logger = logging.getLogger(__name__)


async def ordered_entries(query: dict, limit: int = 0) -> List[dict]:
    """Entries matching ``query`` in canonical service order."""
    entries = Database.get_collection("queue_entries")
    cursor = entries.find(query, sort=DISPATCH_ORDER, limit=limit)
    return [doc async for doc in cursor]


def _busy(current: Optional[dict], server: Server) -> ServerBusy:
    context = {"server_id": server.id}
    if current is not None:
        context["current_entry"] = to_entry(current).model_dump(mode="json")
    return ServerBusy("Server already has a patient in progress", context)


class DispatchEngine:
    """Call-next, complete and the server's working views."""

    @classmethod
    async def current_entry(cls, server_id: str) -> Optional[dict]:
        entries = Database.get_collection("queue_entries")
        return await entries.find_one({
            "server_id": server_id,
            "status": QueueStatus.IN_PROGRESS.value,
        })

    @classmethod
    async def resolve_department(cls, server: Server) -> str:
        """Best guess of where a server works when no department is given."""
        if server.department:
            try:
                return normalize_department(server.department)
            except ValidationFailed:
                logger.warning("Server %s has unknown department %s", server.id, server.department)

        entries = Database.get_collection("queue_entries")
        try:
            recent = await entries.find_one(
                {"server_id": server.id},
                sort=[("service_start_time", -1)],
            )
            if recent:
                return recent["department"]

            busiest = await entries.aggregate([
                {"$match": {"status": QueueStatus.WAITING.value}},
                {"$group": {"_id": "$department", "count": {"$sum": 1}}},
                {"$sort": {"count": -1, "_id": 1}},
                {"$limit": 1},
            ]).to_list(length=1)
            if busiest:
                return busiest[0]["_id"]
        except Exception as e:
            logger.warning("Department lookup failed for server %s: %s", server.id, e)

        return settings.DEFAULT_DEPARTMENT

    @classmethod
    async def call_next(cls, server: Server, department: Optional[str] = None) -> DispatchResult:
        """Start serving the highest priority, earliest waiting entry."""
        if department:
            department = normalize_department(department)
        else:
            department = await cls.resolve_department(server)

        current = await cls.current_entry(server.id)
        if current:
            raise _busy(current, server)

        entry = await QueueStateMachine.start_next(department, server)
        if entry is None:
            return DispatchResult(
                outcome=DispatchOutcome.EMPTY,
                department=department,
                server_id=server.id,
                message="No patients are currently waiting in this department",
            )

        # Two concurrent calls by the same server can each start an entry;
        # only a server with exactly one entry in progress keeps it.
        entries = Database.get_collection("queue_entries")
        serving = await entries.count_documents({
            "server_id": server.id,
            "status": QueueStatus.IN_PROGRESS.value,
        })
        if serving > 1:
            await QueueStateMachine.undo_start(entry)
            raise _busy(await cls.current_entry(server.id), server)

        events.publish(entry_event(
            EventType.QUEUE_CALLED, entry, server.id,
            server_name=server.display_name,
        ))
        return DispatchResult(
            outcome=DispatchOutcome.CALLED,
            department=department,
            server_id=server.id,
            entry=to_entry(entry),
            message="Next patient called successfully",
        )

    @classmethod
    async def complete(cls, server: Server, notes: Optional[str] = None) -> QueueEntry:
        """Finish the server's current patient."""
        current = await cls.current_entry(server.id)
        if not current:
            raise NoActiveService(
                "No patient is currently being served by this server",
                {"server_id": server.id},
            )

        updated = await QueueStateMachine.complete(current, notes)
        events.publish(entry_event(
            EventType.QUEUE_COMPLETED, updated, server.id,
            server_name=server.display_name,
            actual_wait_time=updated.get("actual_wait_time"),
        ))
        return to_entry(updated)

    @classmethod
    async def active_queue(cls, server: Server, department: Optional[str] = None) -> ActiveQueue:
        """Current patient plus the department's waiting line."""
        if department:
            department = normalize_department(department)
        else:
            department = await cls.resolve_department(server)

        waiting = await ordered_entries({
            "department": department,
            "status": QueueStatus.WAITING.value,
        })
        current = await cls.current_entry(server.id)

        stats = QueueStatistics(
            total_waiting=len(waiting),
            urgent_cases=sum(1 for e in waiting if e["priority"] == Priority.URGENT.value),
            high_priority=sum(1 for e in waiting if e["priority"] == Priority.HIGH.value),
            average_wait_time=await WaitTimeEstimator.historical_average(department),
        )
        return ActiveQueue(
            department=department,
            server_id=server.id,
            current_patient=to_entry(current) if current else None,
            waiting_patients=[to_entry(e) for e in waiting],
            statistics=stats,
        )

    @classmethod
    async def statistics(cls, server: Server, department: str, date_range: str = "today") -> ServerStatistics:
        """Counts and mean service time of the server's entries by status."""
        department = normalize_department(department)
        if date_range not in ("today", "week", "month"):
            date_range = "today"

        entries = Database.get_collection("queue_entries")
        match = {
            "server_id": server.id,
            "department": department,
            "joined_at": {"$gte": clock.range_start(date_range)},
        }
        rows = await entries.aggregate([
            {"$match": match},
            {"$group": {
                "_id": "$status",
                "count": {"$sum": 1},
                "avg": {"$avg": "$actual_wait_time"},
            }},
            {"$sort": {"_id": 1}},
        ]).to_list(length=None)

        breakdown = [
            StatusBreakdown(status=QueueStatus(row["_id"]), count=row["count"], average_service_time=row.get("avg"))
            for row in rows
        ]
        total_served = sum(row.count for row in breakdown if row.status is QueueStatus.COMPLETE)

        return ServerStatistics(
            department=department,
            date_range=date_range,
            server_id=server.id,
            statistics=breakdown,
            total_served=total_served,
        )
