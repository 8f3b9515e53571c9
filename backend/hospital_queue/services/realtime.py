"""
WebSocket publish/subscribe for live queue updates.

Clients subscribe to topics when they connect: ``department:<name>`` for a
department's screens, ``patient:<id>`` for one patient's ticket, ``display``
for the public board and ``lab`` for lab technicians.
"""

import logging
from typing import Dict, Iterable, List, Set

from fastapi import WebSocket

from ..models.queue import QueueEvent, QueueStatus
from .events import EventType

logger = logging.getLogger(__name__)


def department_topic(department: str) -> str:
    return f"department:{department}"


def patient_topic(patient_id: str) -> str:
    return f"patient:{patient_id}"


DISPLAY_TOPIC = "display"
LAB_TOPIC = "lab"


class ConnectionManager:
    """Registry of WebSocket subscribers per topic."""

    def __init__(self):
        self.topics: Dict[str, List[WebSocket]] = {}

    def subscribe(self, websocket: WebSocket, topics: Iterable[str]) -> None:
        for topic in topics:
            self.topics.setdefault(topic, []).append(websocket)
        logger.debug("WebSocket subscribed to %s", list(topics))

    def unsubscribe(self, websocket: WebSocket) -> None:
        for topic in list(self.topics):
            remaining = [ws for ws in self.topics[topic] if ws is not websocket]
            if remaining:
                self.topics[topic] = remaining
            else:
                del self.topics[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self.topics.get(topic, []))

    async def broadcast(self, topic: str, data: dict) -> int:
        """Send a JSON message to every subscriber of a topic."""
        sent = 0
        for websocket in list(self.topics.get(topic, [])):
            try:
                await websocket.send_json(data)
                sent += 1
            except Exception as e:
                logger.warning("Dropping subscriber of %s: %s", topic, e)
                self.unsubscribe(websocket)
        return sent

    @staticmethod
    def topics_for(event: QueueEvent) -> Set[str]:
        topics = set()
        if event.department:
            topics.add(department_topic(event.department))
        if event.patient_id:
            topics.add(patient_topic(event.patient_id))
        if event.event_type.startswith("lab_request.") or event.status == QueueStatus.PENDING_LAB_APPROVAL.value:
            topics.add(LAB_TOPIC)
        if event.event_type in (EventType.QUEUE_APPROVED, EventType.QUEUE_LAB_REJECTED):
            topics.add(LAB_TOPIC)
        if not event.event_type.startswith("lab_request."):
            topics.add(DISPLAY_TOPIC)
        return topics

    async def handle_event(self, event: QueueEvent) -> int:
        """Event sink: push the event to every interested topic."""
        payload = event.model_dump(mode="json")
        sent = 0
        for topic in sorted(self.topics_for(event)):
            sent += await self.broadcast(topic, payload)
        return sent


manager = ConnectionManager()
