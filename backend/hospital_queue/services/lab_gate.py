"""
Lab pre-approval gate.

Entries checked in for lab review start in PendingLabApproval and stay
invisible to dispatch until a lab technician approves them.
"""

import logging
from typing import Optional

from ..errors import PermissionDenied
from ..models.queue import PendingQueue, QueueEntry, QueueStatus
from ..models.user import Server
from . import events
from .dispatch import ordered_entries
from .events import EventType, entry_event
from .state_machine import QueueStateMachine, to_entry

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Rejected by lab technician"


def _require_lab_technician(server: Server) -> None:
    if not server.is_lab_technician:
        raise PermissionDenied(
            "Only lab technicians can review pending entries",
            {"role": server.role.value},
        )


class LabGate:
    """Review of entries waiting for lab admission."""

    @classmethod
    async def list_pending(cls, server: Server) -> PendingQueue:
        _require_lab_technician(server)
        pending = await ordered_entries({"status": QueueStatus.PENDING_LAB_APPROVAL.value})
        return PendingQueue(entries=[to_entry(e) for e in pending], total_pending=len(pending))

    @classmethod
    async def approve(cls, server: Server, entry_id: str) -> QueueEntry:
        """Admit the entry to its department's main queue."""
        _require_lab_technician(server)
        updated = await QueueStateMachine.approve(entry_id)
        logger.info("Lab technician %s approved %s", server.id, updated["queue_number"])

        events.publish(entry_event(EventType.QUEUE_APPROVED, updated, server.id))
        return to_entry(updated)

    @classmethod
    async def reject(cls, server: Server, entry_id: str, reason: Optional[str] = None) -> QueueEntry:
        """Turn the entry away; it never reaches dispatch."""
        _require_lab_technician(server)
        reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
        updated = await QueueStateMachine.reject_pending(entry_id, reason)
        logger.info("Lab technician %s rejected %s: %s", server.id, updated["queue_number"], reason)

        events.publish(entry_event(EventType.QUEUE_LAB_REJECTED, updated, server.id, reason=reason))
        return to_entry(updated)
