"""Live feed endpoint."""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..dependencies import get_subscriber_registry
from .broadcast import SubscriberRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


@router.websocket("/subscribe")
async def subscribe(
    websocket: WebSocket,
    registry: SubscriberRegistry = Depends(get_subscriber_registry),
):
    """Every published or ingested upload is pushed as a JSON text frame.

    Inbound frames are read and ignored; they only keep the connection
    alive until the client disconnects.
    """
    await registry.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Subscriber disconnected")
    finally:
        registry.unregister(websocket)
