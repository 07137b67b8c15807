"""Upload lifecycle manager.

Owns the DRAFT → ATTACHMENTS_ADDED → PUBLISHED state machine. Every
transition is a single conditional UPDATE whose WHERE clause restates the
eligibility rule; zero matched rows means the upload was not eligible
(wrong owner, already locked, already published, concurrent winner) and is
reported as such, never retried.

Two producers finalize uploads: publish_upload (HTTP) and ingest_mail
(SMTP). Both persist through _persist and hand the result to
NotificationFanout.dispatch, which delivers in the background.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.attachments.ports import (
    AttachmentStoragePort,
    StorageError,
    StoredAttachment,
    UnsupportedAttachmentError,
)
from ..domain.uploads import UploadState, can_transition, derive_state
from ..errors import AppError, ErrorKind
from ..infrastructure.ingest.mime_parser import ParsedMessage
from ..models.upload import Upload, UploadSource, utcnow
from ..notifications.fanout import NotificationFanout
from ..observability.metrics import (
    attachment_size_bytes,
    attachments_stored_total,
    lifecycle_rejections_total,
    uploads_created_total,
    uploads_published_total,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3


def _parse_upload_id(upload_id) -> Optional[UUID]:
    if isinstance(upload_id, UUID):
        return upload_id
    try:
        return UUID(str(upload_id))
    except ValueError:
        return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def mail_owner_id(address: Optional[str]) -> str:
    """Ownership identity for uploads created from mail"""
    return f"mail:{(address or '').strip().lower()}"


class UploadLifecycleManager:
    """Lifecycle operations on uploads.

    Args:
        db: Document store session (one per request or SMTP message)
        storage: Content-addressed attachment store
        fanout: Notification fanout for finalized uploads
        clock: Returns the current UTC time (injectable for tests)

    Example:
        manager = UploadLifecycleManager(db, storage, fanout)
        upload_id = await manager.create_upload(user)
        await manager.add_attachment(upload_id, str(user["id"]), data, "cat.png")
        await manager.publish_upload(upload_id, str(user["id"]))
    """

    def __init__(
        self,
        db: Session,
        storage: AttachmentStoragePort,
        fanout: NotificationFanout,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.storage = storage
        self.fanout = fanout
        self.clock = clock

    def _fail(self, operation: str, kind: ErrorKind) -> AppError:
        lifecycle_rejections_total.labels(operation=operation, kind=kind.name).inc()
        return AppError(kind)

    def _persist(self, upload: Upload, failure: ErrorKind) -> Upload:
        """Insert a new upload, mapping database failures onto `failure`."""
        if upload.id is None:
            upload.id = uuid4()
        if upload.timestamp is None:
            upload.timestamp = self.clock()
        try:
            self.db.add(upload)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Unable to insert upload", exc_info=True)
            raise self._fail("persist", failure)
        return upload

    def _record_stored(self, stored: StoredAttachment) -> None:
        attachments_stored_total.labels(
            result="deduplicated" if stored.deduplicated else "written"
        ).inc()
        attachment_size_bytes.observe(stored.size_bytes)

    async def create_upload(self, owner: Dict[str, Any]) -> UUID:
        """Create an empty, unpublished upload owned by `owner`.

        Raises:
            ValueError: Owner profile missing or without an id
            AppError CREATE_FAILED: Persistence failure
        """
        if not owner or owner.get("id") is None:
            raise ValueError("owner profile with an id is required")

        upload = self._persist(
            Upload(
                owner_id=str(owner["id"]),
                owner=owner,
                attachments=[],
                published=False,
                allow_additional_attachments=True,
                source=UploadSource.HTTP.value,
            ),
            ErrorKind.CREATE_FAILED,
        )
        uploads_created_total.inc()
        logger.info(
            f"Created upload {upload.id}",
            extra={"upload_id": upload.id, "owner_id": upload.owner_id},
        )
        return upload.id

    async def add_attachment(self, upload_id, owner_id: str, content: bytes, filename: str) -> str:
        """Store a blob and append its key to the owner's unlocked draft.

        The first successful attachment locks the upload against further
        additions.

        Returns:
            The store key appended to the upload

        Raises:
            AppError NO_ELIGIBLE_UPLOAD_FOR_ATTACHMENT: Not found, not owned,
                locked or published
            AppError ILLEGAL_ATTACHMENT: Extension not allowed (nothing stored)
            AppError ATTACHMENT_PERSIST_FAILED: Storage or database failure
        """
        not_eligible = ErrorKind.NO_ELIGIBLE_UPLOAD_FOR_ATTACHMENT
        uid = _parse_upload_id(upload_id)
        if uid is None:
            raise self._fail("add_attachment", not_eligible)

        eligible = and_(
            Upload.id == uid,
            Upload.owner_id == owner_id,
            Upload.allow_additional_attachments.is_(True),
            Upload.published.is_(False),
        )

        try:
            upload = self.db.execute(select(Upload).where(eligible)).scalar_one_or_none()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Unable to load upload {uid}", exc_info=True)
            raise self._fail("add_attachment", ErrorKind.ATTACHMENT_PERSIST_FAILED)

        if upload is None:
            raise self._fail("add_attachment", not_eligible)

        try:
            stored = await self.storage.store_attachment(content, filename)
        except UnsupportedAttachmentError:
            attachments_stored_total.labels(result="rejected").inc()
            raise self._fail("add_attachment", ErrorKind.ILLEGAL_ATTACHMENT)
        except StorageError as e:
            attachments_stored_total.labels(result="failed").inc()
            logger.error(f"Unable to store attachment for upload {uid}: {e}")
            raise self._fail("add_attachment", ErrorKind.ATTACHMENT_PERSIST_FAILED)
        self._record_stored(stored)

        # The filter also matches allow_additional_attachments, so only one
        # concurrent append can win.
        attachments = list(upload.attachments or []) + [stored.key]
        try:
            result = self.db.execute(
                update(Upload)
                .where(eligible)
                .values(attachments=attachments, allow_additional_attachments=False)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Unable to append attachment to upload {uid}", exc_info=True)
            raise self._fail("add_attachment", ErrorKind.ATTACHMENT_PERSIST_FAILED)

        if result.rowcount == 0:
            raise self._fail("add_attachment", not_eligible)

        self.db.expire(upload)
        logger.info(
            f"Added attachment {stored.key} to upload {uid}",
            extra={"upload_id": uid, "owner_id": owner_id, "store_key": stored.key},
        )
        return stored.key

    async def publish_upload(self, upload_id, owner_id: str) -> Upload:
        """Publish the owner's upload and notify subscribers.

        Returns:
            The published upload

        Raises:
            AppError NO_ELIGIBLE_UPLOAD_FOR_PUBLISH: Not found, not owned,
                already published, or lost a concurrent publish
            AppError ATTACHMENT_REQUIRED: Upload has no attachments
            AppError PUBLISH_FAILED: Database failure
        """
        not_eligible = ErrorKind.NO_ELIGIBLE_UPLOAD_FOR_PUBLISH
        uid = _parse_upload_id(upload_id)
        if uid is None:
            raise self._fail("publish", not_eligible)

        candidate = and_(
            Upload.id == uid,
            Upload.owner_id == owner_id,
            Upload.published.is_(False),
        )

        try:
            upload = self.db.execute(select(Upload).where(candidate)).scalar_one_or_none()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Unable to load upload {uid}", exc_info=True)
            raise self._fail("publish", ErrorKind.PUBLISH_FAILED)

        if upload is None:
            raise self._fail("publish", not_eligible)

        state = derive_state(upload.published, upload.attachments or [])
        if not can_transition(state, UploadState.PUBLISHED):
            raise self._fail("publish", ErrorKind.ATTACHMENT_REQUIRED)

        try:
            result = self.db.execute(
                update(Upload)
                .where(candidate)
                .values(published=True)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Unable to publish upload {uid}", exc_info=True)
            raise self._fail("publish", ErrorKind.PUBLISH_FAILED)

        if result.rowcount == 0:
            raise self._fail("publish", not_eligible)

        try:
            self.db.refresh(upload)
        except SQLAlchemyError:
            # The transition is committed; report it rather than fail it.
            self.db.rollback()
            logger.warning(f"Unable to reload published upload {uid}", exc_info=True)
            upload.published = True

        uploads_published_total.labels(source=UploadSource.HTTP.value).inc()
        logger.info(
            f"Published upload {uid}",
            extra={"upload_id": uid, "owner_id": owner_id},
        )
        self.fanout.dispatch(upload)
        return upload

    async def get_uploads(
        self,
        starting_from: Optional[datetime] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[Upload]:
        """Published uploads, newest first, strictly older than `starting_from`.

        Raises:
            AppError QUERY_FAILED: Database failure
        """
        query = select(Upload).where(Upload.published.is_(True))
        if starting_from is not None:
            query = query.where(Upload.timestamp < _as_utc(starting_from))
        query = query.order_by(Upload.timestamp.desc()).limit(limit)

        try:
            return list(self.db.execute(query).scalars().all())
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Unable to query uploads", exc_info=True)
            raise self._fail("get_uploads", ErrorKind.QUERY_FAILED)

    async def ingest_mail(self, message: ParsedMessage) -> Optional[Upload]:
        """Turn an inbound message into a published upload.

        Attachments with a disallowed extension, or whose write failed, are
        dropped silently. A message left without attachments is not
        persisted.

        Returns:
            The published upload, or None if no attachment survived

        Raises:
            AppError CREATE_FAILED: Persistence failure
        """
        keys = []
        for attachment in message.attachments:
            try:
                stored = await self.storage.store_attachment(attachment.content, attachment.file_name)
            except UnsupportedAttachmentError:
                attachments_stored_total.labels(result="rejected").inc()
                logger.info(f"Dropping mail attachment {attachment.file_name!r}: extension not allowed")
                continue
            except StorageError as e:
                attachments_stored_total.labels(result="failed").inc()
                logger.warning(f"Dropping mail attachment {attachment.file_name!r}: {e}")
                continue
            self._record_stored(stored)
            keys.append(stored.key)

        if not keys:
            logger.info(f"Mail from {message.from_address} has no usable attachments, not stored")
            return None

        owner = {
            "email": message.from_address,
            "name": message.from_name or message.from_address,
        }
        upload = self._persist(
            Upload(
                owner_id=mail_owner_id(message.from_address),
                owner=owner,
                attachments=keys,
                published=True,
                allow_additional_attachments=False,
                source=UploadSource.MAIL.value,
                mail_from=message.from_address,
                mail_to=message.to_address,
                mail_subject=message.subject,
                mail_text=message.text,
                mail_html=message.html,
            ),
            ErrorKind.CREATE_FAILED,
        )

        uploads_published_total.labels(source=UploadSource.MAIL.value).inc()
        logger.info(
            f"Ingested mail as upload {upload.id} with {len(keys)} attachments",
            extra={"upload_id": upload.id, "owner_id": upload.owner_id, "source": "MAIL"},
        )
        self.fanout.dispatch(upload)
        return upload
