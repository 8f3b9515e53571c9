"""
Public queue display and live updates.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ..models.queue import QueueDisplay, QueueStatusView
from ..services.display_service import DisplayService
from ..services.queue_service import QueueService
from ..services.realtime import DISPLAY_TOPIC, department_topic, manager, patient_topic

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Display"])


@router.get("/display", response_model=QueueDisplay, response_model_by_alias=False)
async def get_queue_display():
    """Currently serving and next waiting patients for every department."""
    return await DisplayService.get_display()


@router.get("/display/search/{queue_number}", response_model=QueueStatusView, response_model_by_alias=False)
async def search_ticket(queue_number: str):
    return await QueueService.get_status(queue_number.strip().upper())


def requested_topics(
    department: Optional[str],
    patient_id: Optional[str],
    topics: Optional[List[str]],
) -> List[str]:
    selected = list(topics or [])
    if department:
        selected.append(department_topic(department))
    if patient_id:
        selected.append(patient_topic(patient_id))
    return selected or [DISPLAY_TOPIC]


@router.websocket("/ws")
async def queue_updates(
    websocket: WebSocket,
    department: Optional[str] = Query(None),
    patient_id: Optional[str] = Query(None),
    topic: Optional[List[str]] = Query(None),
):
    """
    Live queue events. Without filters the socket follows the public display;
    ``department``, ``patient_id`` and repeated ``topic`` narrow it down.
    """
    await websocket.accept()
    topics = requested_topics(department, patient_id, topic)
    manager.subscribe(websocket, topics)
    await websocket.send_json({"event_type": "subscribed", "topics": topics})
    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"event_type": "pong"})
    except WebSocketDisconnect:
        logger.info("WebSocket for %s disconnected", topics)
    finally:
        manager.unsubscribe(websocket)
