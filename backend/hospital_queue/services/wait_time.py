"""
Best-effort wait time estimation.

Nothing in here raises: a failed lookup is logged and the default service
time is returned, so estimation never blocks check-in or status queries.
"""

import logging
from typing import Optional

from .. import clock
from ..config import get_settings
from ..database import Database
from ..models.queue import QueueStatus

settings = get_settings()
logger = logging.getLogger(__name__)


class WaitTimeEstimator:
    """Approximate minutes until service for a department or a ticket."""

    @classmethod
    def default(cls) -> int:
        return settings.DEFAULT_SERVICE_MINUTES

    @classmethod
    async def load_based(cls, department: str) -> int:
        """Active entries in the department times the default service time."""
        entries = Database.get_collection("queue_entries")
        try:
            active = await entries.count_documents({
                "department": department,
                "status": {"$in": [QueueStatus.WAITING.value, QueueStatus.IN_PROGRESS.value]},
            })
        except Exception as e:
            logger.warning("Load based estimate failed for %s: %s", department, e)
            return cls.default()
        return active * settings.DEFAULT_SERVICE_MINUTES

    @classmethod
    async def _average(cls, match: dict) -> Optional[float]:
        entries = Database.get_collection("queue_entries")
        pipeline = [
            {"$match": match},
            {"$group": {"_id": None, "avg": {"$avg": "$actual_wait_time"}}},
        ]
        result = await entries.aggregate(pipeline).to_list(length=1)
        if result and result[0].get("avg") is not None:
            return result[0]["avg"]
        return None

    @classmethod
    async def historical_average(cls, department: str) -> int:
        """Mean actual wait of entries completed in the department today."""
        try:
            avg = await cls._average({
                "department": department,
                "status": QueueStatus.COMPLETE.value,
                "actual_wait_time": {"$ne": None},
                "joined_at": {"$gte": clock.start_of_day()},
            })
        except Exception as e:
            logger.warning("Historical average failed for %s: %s", department, e)
            return cls.default()
        return int(avg + 0.5) if avg is not None else cls.default()

    @classmethod
    async def average_service_time(cls, department: str, service_type: str) -> int:
        """Mean actual wait for a department and service type, all time."""
        try:
            avg = await cls._average({
                "department": department,
                "service_type": service_type,
                "status": QueueStatus.COMPLETE.value,
                "actual_wait_time": {"$ne": None},
            })
        except Exception as e:
            logger.warning("Average service time failed for %s/%s: %s", department, service_type, e)
            return cls.default()
        return int(avg + 0.5) if avg is not None else cls.default()

    @classmethod
    async def position(cls, entry: dict) -> int:
        """1-based place among waiting entries of the same department and service."""
        entries = Database.get_collection("queue_entries")
        try:
            ahead = await entries.count_documents({
                "department": entry["department"],
                "service_type": entry["service_type"],
                "status": QueueStatus.WAITING.value,
                "joined_at": {"$lt": entry["joined_at"]},
            })
        except Exception as e:
            logger.warning("Position lookup failed for %s: %s", entry.get("queue_number"), e)
            return 1
        return ahead + 1

    @classmethod
    async def positional(cls, entry: dict) -> int:
        """Position times the average service time for the entry's line."""
        position = await cls.position(entry)
        average = await cls.average_service_time(entry["department"], entry["service_type"])
        return position * average
