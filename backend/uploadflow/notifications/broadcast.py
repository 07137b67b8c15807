"""Broadcast sink: push serialized uploads to live WebSocket subscribers."""

import logging
import threading
from typing import List, Protocol

from fastapi import WebSocket

from ..observability.metrics import live_subscribers

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    async def send_text(self, data: str) -> None:
        ...


class SubscriberRegistry:
    """Set of currently connected subscribers.

    Mutation happens under a lock; broadcast works on a snapshot so
    subscribers may come and go while a broadcast is in flight. A subscriber
    whose send fails is dropped without affecting the others.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def register(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)
            count = len(self._subscribers)
        live_subscribers.set(count)
        logger.info(f"Subscriber registered. Total subscribers: {count}")

    def unregister(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                return
            self._subscribers.remove(subscriber)
            count = len(self._subscribers)
        live_subscribers.set(count)
        logger.info(f"Subscriber unregistered. Total subscribers: {count}")

    def snapshot(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subscribers)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a WebSocket and register it."""
        await websocket.accept()
        self.register(websocket)

    async def broadcast(self, payload: str) -> int:
        """Send the payload to every current subscriber.

        Returns:
            Number of subscribers that received it
        """
        delivered = 0
        for subscriber in self.snapshot():
            try:
                await subscriber.send_text(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Could not send to subscriber (dropping it): {e}")
                self.unregister(subscriber)
        return delivered
