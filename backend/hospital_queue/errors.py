"""
Typed errors raised by the queue services.

Each error carries a machine readable ``kind`` so the web layer can pick a
status code, plus an optional ``context`` payload (for conflicts, the
conflicting entry) the caller can act on.
"""

from typing import Any, Dict, Optional


class QueueError(Exception):
    """Base class for every error the queue core reports to its callers."""

    kind = "error"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.kind, "detail": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class ValidationFailed(QueueError):
    """Malformed input rejected before any state change."""
    kind = "validation"

    def __init__(self, field: str, message: str):
        super().__init__(message, {"field": field})
        self.field = field


class NotFoundError(QueueError):
    kind = "not_found"


class PatientNotFound(NotFoundError):
    pass


class QueueEntryNotFound(NotFoundError):
    pass


class LabRequestNotFound(NotFoundError):
    pass


class NoActiveService(NotFoundError):
    """The server has no entry in progress."""
    pass


class ConflictError(QueueError):
    kind = "conflict"


class DuplicateActiveEntry(ConflictError):
    pass


class ServerBusy(ConflictError):
    """The server already has a patient in progress."""
    pass


class InvalidTransition(ConflictError):
    pass


class DuplicateLabRequest(ConflictError):
    pass


class PermissionDenied(QueueError):
    kind = "forbidden"


class GenerationFailed(QueueError):
    """No unique number could be produced; check-in must fail."""
    kind = "generation_failed"
