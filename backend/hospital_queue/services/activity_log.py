"""
Audit trail of queue activity.
"""

import logging
from typing import List, Optional

from .. import clock
from ..database import Database
from ..models.queue import QueueEvent

logger = logging.getLogger(__name__)


class ActivityLogService:
    """Records every lifecycle event in ``activity_logs``."""

    @classmethod
    async def handle_event(cls, event: QueueEvent) -> None:
        logs = Database.get_collection("activity_logs")
        await logs.insert_one({
            "user_id": event.actor_id,
            "type": event.event_type.split(".")[0].upper(),
            "action": event.event_type,
            "description": f"{event.event_type} {event.queue_number or ''}".strip(),
            "metadata": {
                "queue_entry_id": event.queue_entry_id,
                "queue_number": event.queue_number,
                "department": event.department,
                "status": event.status,
                **{k: v for k, v in event.context.items() if isinstance(v, (str, int, float, bool))},
            },
            "created_at": clock.now(),
        })

    @classmethod
    async def recent(cls, limit: int = 50, queue_number: Optional[str] = None) -> List[dict]:
        logs = Database.get_collection("activity_logs")
        query = {"metadata.queue_number": queue_number} if queue_number else {}
        cursor = logs.find(query, sort=[("created_at", -1)], limit=limit)

        result = []
        async for log in cursor:
            log["_id"] = str(log["_id"])
            result.append(log)
        return result
