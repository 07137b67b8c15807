"""SMTP handler for mail ingestion.

Each accepted message becomes a published upload: the MIME body is parsed,
attachments are stored individually and the upload is handed to the
notification fanout. The SMTP server runs on the API's event loop.

Replies:
    250 Message accepted              - Upload created (or nothing usable to store)
    550 No valid recipients           - Empty or unknown envelope recipient
    451 Message parsing failed        - Body is not valid MIME
    451 Temporary server error        - Persistence failure
"""

import asyncio
import logging
from typing import Callable, ContextManager, Iterable, List, Optional

from aiosmtpd.smtp import SMTP, Envelope, Session as SMTPSession
from sqlalchemy.orm import Session

from ...domain.attachments.ports import AttachmentStoragePort
from ...errors import AppError
from ...notifications.fanout import NotificationFanout
from ...observability.metrics import mail_messages_total
from ...uploads.service import UploadLifecycleManager
from .mime_parser import parse_message

logger = logging.getLogger(__name__)


class UploadFlowSMTPHandler:
    """aiosmtpd handler turning inbound mail into published uploads.

    Recipients can be restricted to a fixed list; an empty list accepts any
    recipient.
    """

    def __init__(
        self,
        get_db_session: Callable[[], ContextManager[Session]],
        storage: AttachmentStoragePort,
        fanout: NotificationFanout,
        accepted_recipients: Optional[Iterable[str]] = None,
    ):
        """Initialize SMTP handler.

        Args:
            get_db_session: Context manager factory yielding a Session
            storage: Attachment store
            fanout: Notification fanout for ingested uploads
            accepted_recipients: Allowed envelope recipients (lower-cased)
        """
        self.get_db_session = get_db_session
        self.storage = storage
        self.fanout = fanout
        self.accepted_recipients: List[str] = [r.lower() for r in accepted_recipients or []]

    def is_accepted_recipient(self, address: str) -> bool:
        if not self.accepted_recipients:
            return True
        return address.lower() in self.accepted_recipients

    async def handle_DATA(self, server: SMTP, session: SMTPSession, envelope: Envelope) -> str:
        """Handle the DATA command (aiosmtpd entry point)."""
        recipients = [r for r in envelope.rcpt_tos if self.is_accepted_recipient(r)]
        if not recipients:
            logger.warning(f"Email with no accepted recipient: rcpt_tos={envelope.rcpt_tos}")
            mail_messages_total.labels(status="rejected").inc()
            return "550 No valid recipients"

        content = envelope.original_content or envelope.content
        if isinstance(content, str):
            content = content.encode("utf-8")

        logger.info(
            f"Received email: from={envelope.mail_from}, to={recipients[0]}, "
            f"size={len(content)} bytes"
        )

        try:
            message = parse_message(content, envelope_to=recipients[0])
        except ValueError as e:
            logger.error(f"Failed to parse MIME message: {e}")
            mail_messages_total.labels(status="failed").inc()
            return "451 Message parsing failed"

        if not message.from_address:
            message.from_address = envelope.mail_from

        try:
            with self.get_db_session() as db:
                manager = UploadLifecycleManager(db, self.storage, self.fanout)
                upload = await manager.ingest_mail(message)
        except AppError as e:
            logger.error(f"Unable to ingest email from {message.from_address}: {e.message}")
            mail_messages_total.labels(status="failed").inc()
            return "451 Temporary server error"

        if upload is None:
            mail_messages_total.labels(status="empty").inc()
            return "250 Message accepted (no attachments stored)"

        mail_messages_total.labels(status="accepted").inc()
        return "250 Message accepted"


async def start_smtp_server(
    handler: UploadFlowSMTPHandler,
    host: str,
    port: int,
    data_size_limit: int,
) -> asyncio.AbstractServer:
    """Listen for SMTP on the running event loop.

    Close the returned server (and await wait_closed) on shutdown.
    """
    loop = asyncio.get_running_loop()
    server = await loop.create_server(
        lambda: SMTP(handler, data_size_limit=data_size_limit),
        host=host,
        port=port,
    )
    logger.info(f"SMTP server listening on {host}:{port}")
    return server
