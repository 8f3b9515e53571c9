"""Department names and per-department load counts."""

from typing import Optional

from ..database import Database
from ..errors import ValidationFailed
from ..models.queue import DEPARTMENTS, DepartmentLoad, QueueStatus


def normalize_department(department: Optional[str]) -> str:
    """Canonical spelling of a known department, or a validation error."""
    if not department or len(department.strip()) < 2:
        raise ValidationFailed("department", "Department is required")
    wanted = department.strip().lower()
    for name in DEPARTMENTS:
        if name.lower() == wanted:
            return name
    raise ValidationFailed("department", f"Unknown department: {department}")


async def department_load(department: str) -> DepartmentLoad:
    entries = Database.get_collection("queue_entries")
    waiting = await entries.count_documents({
        "department": department,
        "status": QueueStatus.WAITING.value,
    })
    in_progress = await entries.count_documents({
        "department": department,
        "status": QueueStatus.IN_PROGRESS.value,
    })
    return DepartmentLoad(
        waiting_count=waiting,
        in_progress_count=in_progress,
        total_active=waiting + in_progress,
    )
