"""
Patient notifications over a mock SMS gateway.

Sending is simulated: the message is logged and recorded in the
``notifications`` collection, as a real gateway would report delivery.
"""

import asyncio
import logging
import uuid
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId

from .. import clock
from ..config import get_settings
from ..database import Database
from ..models.queue import QueueEvent
from .events import EventType

settings = get_settings()
logger = logging.getLogger(__name__)


TEMPLATES = {
    EventType.QUEUE_CREATED: (
        "Dear {first_name}, your queue number is {queue_number} for {service_type} at "
        "{department}. Current wait time: approximately {estimated_wait_time} minutes. "
        "Please be ready."
    ),
    EventType.QUEUE_PENDING_LAB: (
        "Dear {first_name}, your queue number is {queue_number} for {department}. "
        "It is awaiting lab review before joining the main queue."
    ),
    EventType.QUEUE_APPROVED: (
        "Dear {first_name}, your queue {queue_number} has been approved. You are now "
        "in the main queue. Please wait to be called."
    ),
    EventType.QUEUE_LAB_REJECTED: (
        "Dear {first_name}, your queue {queue_number} has been rejected. Reason: "
        "{reason}. Please contact reception for assistance."
    ),
    EventType.QUEUE_CALLED: (
        "Dear {first_name}, you are now being served by {server_name} at {department}. "
        "Please proceed to the consultation room immediately."
    ),
    EventType.QUEUE_COMPLETED: (
        "Dear {first_name}, your consultation with {server_name} at {department} is "
        "complete. Thank you for your patience."
    ),
    EventType.QUEUE_CANCELLED: (
        "Dear {first_name}, your queue {queue_number} at {department} has been cancelled."
    ),
    EventType.QUEUE_REJECTED: (
        "Dear {first_name}, your lab test was not completed. Please complete the "
        "required lab tests before proceeding. Reason: {reason}"
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return ""


class NotificationService:
    """Formats and sends patient SMS messages."""

    @classmethod
    async def send_sms(
        cls,
        phone_number: str,
        message: str,
        patient_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> dict:
        """Simulate an SMS send and record the delivery."""
        logger.info("[SMS SENT TO %s]: %s", phone_number, message)

        if settings.SMS_SIMULATED_DELAY_SECONDS > 0:
            await asyncio.sleep(settings.SMS_SIMULATED_DELAY_SECONDS)

        record = {
            "type": "SMS",
            "message_id": f"SMS-{uuid.uuid4().hex[:12]}",
            "sender": settings.SMS_SENDER_ID,
            "recipient": phone_number,
            "message": message,
            "status": "sent",
            "patient_id": patient_id,
            "event_type": event_type,
            "cost": settings.SMS_COST,
            "sent_at": clock.now(),
        }
        notifications = Database.get_collection("notifications")
        await notifications.insert_one(record)
        logger.info("[SMS DELIVERY CONFIRMED] Message ID: %s", record["message_id"])
        return record

    @classmethod
    async def history(
        cls,
        limit: int = 50,
        recipient: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> List[dict]:
        """Recorded SMS deliveries, newest first."""
        notifications = Database.get_collection("notifications")
        query = {}
        if recipient:
            query["recipient"] = recipient
        if patient_id:
            query["patient_id"] = patient_id

        result = []
        async for record in notifications.find(query, sort=[("sent_at", -1)], limit=limit):
            record["_id"] = str(record["_id"])
            result.append(record)
        return result

    @classmethod
    def format_message(cls, event: QueueEvent, patient: dict) -> Optional[str]:
        template = TEMPLATES.get(event.event_type)
        if template is None:
            return None
        values = _Defaults(
            first_name=patient.get("first_name", ""),
            queue_number=event.queue_number or "",
            department=event.department or "",
        )
        values.update({k: v for k, v in event.context.items() if v is not None})
        if event.event_type == EventType.QUEUE_LAB_REJECTED:
            values.setdefault("reason", "Invalid information")
        if event.event_type == EventType.QUEUE_REJECTED and not values.get("reason"):
            values["reason"] = "Contact the lab for details"
        return template.format_map(values)

    @classmethod
    async def _patient(cls, patient_id: Optional[str]) -> Optional[dict]:
        if not patient_id:
            return None
        patients = Database.get_collection("patients")
        try:
            return await patients.find_one({"_id": ObjectId(patient_id)})
        except InvalidId:
            return None

    @classmethod
    async def handle_event(cls, event: QueueEvent) -> Optional[dict]:
        """Event sink: text the patient the event concerns, if anyone."""
        if event.event_type not in TEMPLATES:
            return None

        patient = await cls._patient(event.patient_id)
        if not patient or not patient.get("phone_number"):
            logger.warning("No phone number for patient %s, skipping %s", event.patient_id, event.event_type)
            return None

        message = cls.format_message(event, patient)
        try:
            return await cls.send_sms(patient["phone_number"], message, event.patient_id, event.event_type)
        except Exception as e:
            logger.error("Failed to send %s SMS for %s: %s", event.event_type, event.queue_number, e)
            return None
