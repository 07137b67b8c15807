"""Webhook sink: POST each finalized upload to a configured URL."""

import logging
from typing import Optional

import httpx

from ..errors import AppError, ErrorKind

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Deliver serialized uploads to a single webhook endpoint.

    Delivery is best-effort: one attempt, bounded by `timeout`. A missing
    URL disables the sink.
    """

    def __init__(
        self,
        url: Optional[str],
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def notify(self, payload: str) -> bool:
        """POST the JSON payload.

        Returns:
            False if no webhook is configured, True once delivered

        Raises:
            AppError WEBHOOK_NOTIFY_FAILED: Transport failure or non-2xx answer
        """
        if not self.enabled:
            logger.debug("No webhook configured, skipping")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    content=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Webhook request to {self.url} failed: {e}")
            raise AppError(ErrorKind.WEBHOOK_NOTIFY_FAILED)

        if not response.is_success:
            logger.error(f"Webhook {self.url} answered {response.status_code}")
            raise AppError(ErrorKind.WEBHOOK_NOTIFY_FAILED)

        return True
