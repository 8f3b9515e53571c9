"""
Public queue display: who is being served and who is next, per department.
"""

from ..config import get_settings
from .. import clock
from ..database import Database
from ..models.queue import (
    DEPARTMENTS,
    CurrentlyServing,
    DepartmentDisplay,
    DisplayEntry,
    DisplayStatistics,
    Priority,
    QueueDisplay,
    QueueStatus,
)
from .departments import department_load
from .dispatch import ordered_entries
from .wait_time import WaitTimeEstimator

settings = get_settings()


class DisplayService:

    @classmethod
    async def department_panel(cls, department: str) -> DepartmentDisplay:
        entries = Database.get_collection("queue_entries")

        serving = await entries.find_one(
            {"department": department, "status": QueueStatus.IN_PROGRESS.value},
            sort=[("service_start_time", 1)],
        )
        waiting = await ordered_entries(
            {"department": department, "status": QueueStatus.WAITING.value},
            limit=settings.DISPLAY_WAITING_LIMIT,
        )
        load = await department_load(department)
        average = await WaitTimeEstimator.historical_average(department)

        currently_serving = None
        if serving:
            currently_serving = CurrentlyServing(
                queue_number=serving["queue_number"],
                patient_name=serving.get("patient_name"),
                server_name=serving.get("server_name") or "Assigned",
                service_start_time=serving.get("service_start_time"),
                estimated_duration=average,
            )

        return DepartmentDisplay(
            department=department,
            currently_serving=currently_serving,
            waiting_patients=[
                DisplayEntry(
                    queue_number=e["queue_number"],
                    patient_name=e.get("patient_name"),
                    priority=Priority(e["priority"]),
                    joined_at=e["joined_at"],
                    estimated_wait_time=(index + 1) * settings.DEFAULT_SERVICE_MINUTES,
                )
                for index, e in enumerate(waiting)
            ],
            statistics=DisplayStatistics(
                total_waiting=load.waiting_count,
                currently_in_progress=load.in_progress_count,
                average_wait_time=average,
                last_updated=clock.now(),
            ),
        )

    @classmethod
    async def get_display(cls) -> QueueDisplay:
        """Panels for every department, alphabetically."""
        panels = [await cls.department_panel(name) for name in sorted(DEPARTMENTS)]
        return QueueDisplay(
            departments=panels,
            timestamp=clock.now(),
            total_departments=len(panels),
        )
