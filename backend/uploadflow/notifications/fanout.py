"""Notification fanout to the webhook and broadcast sinks.

Both producers (HTTP publish and mail ingestion) hand finalized uploads to
NotificationFanout.dispatch. Delivery runs as a background task on the
running event loop; a failure in one sink never affects the other, and no
failure ever reaches the producer.
"""

import asyncio
import logging
from typing import Set

from ..errors import AppError
from ..models.upload import Upload
from ..observability.metrics import notifications_total
from ..uploads.schemas import serialize_upload
from .broadcast import SubscriberRegistry
from .webhook import WebhookNotifier

logger = logging.getLogger(__name__)


class NotificationFanout:
    """Deliver finalized uploads to every sink.

    Example:
        fanout = NotificationFanout(WebhookNotifier(url), SubscriberRegistry())
        fanout.dispatch(upload)   # returns immediately
        await fanout.drain()      # wait for pending deliveries
    """

    def __init__(self, webhook: WebhookNotifier, registry: SubscriberRegistry):
        self.webhook = webhook
        self.registry = registry
        self._pending: Set[asyncio.Task] = set()

    async def _send_webhook(self, payload: str, upload_id: str) -> None:
        try:
            delivered = await self.webhook.notify(payload)
        except AppError as e:
            notifications_total.labels(sink="webhook", status="error").inc()
            logger.error(
                f"Webhook notification failed for upload {upload_id}: {e.message}",
                extra={"upload_id": upload_id, "sink": "webhook"},
            )
            return
        except Exception:
            notifications_total.labels(sink="webhook", status="error").inc()
            logger.exception(f"Unexpected webhook failure for upload {upload_id}")
            return
        notifications_total.labels(sink="webhook", status="success" if delivered else "skipped").inc()

    async def _send_broadcast(self, payload: str, upload_id: str) -> None:
        try:
            count = await self.registry.broadcast(payload)
        except Exception:
            notifications_total.labels(sink="broadcast", status="error").inc()
            logger.exception(f"Broadcast failed for upload {upload_id}")
            return
        notifications_total.labels(sink="broadcast", status="success").inc()
        logger.debug(f"Broadcast upload {upload_id} to {count} subscribers")

    async def deliver(self, payload: str, upload_id: str) -> None:
        """Run both sinks concurrently on an already serialized upload."""
        await asyncio.gather(
            self._send_webhook(payload, upload_id),
            self._send_broadcast(payload, upload_id),
        )

    async def notify(self, upload: Upload) -> None:
        """Serialize once and deliver to both sinks, waiting for completion."""
        await self.deliver(serialize_upload(upload), str(upload.id))

    def dispatch(self, upload: Upload) -> asyncio.Task:
        """Schedule delivery in the background and return immediately.

        The upload is serialized before returning, so the caller may close
        its session straight away.
        """
        payload = serialize_upload(upload)
        task = asyncio.get_running_loop().create_task(self.deliver(payload, str(upload.id)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
