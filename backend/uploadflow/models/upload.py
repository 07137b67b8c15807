"""Upload model - one user-contributed submission.

An upload is created empty (HTTP) or already published (mail), receives
attachment references (content-addressed store keys) and is published once.
Blobs themselves live in the attachment store; the upload only holds keys.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text, Uuid

from .base import Base, PortableJSONB


class UploadSource(str, Enum):
    """Producer that created the upload.

    HTTP: Created as a draft through the authenticated API
    MAIL: Built directly in the published state from an inbound email
    """
    HTTP = "HTTP"
    MAIL = "MAIL"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Upload(Base):
    """Upload model - the persisted submission record.

    Ownership: owner_id is the identity used in every conditional write;
    owner holds the profile as returned by the identity provider.

    Invariants (enforced by the lifecycle manager through conditional
    UPDATEs, never retroactively):
    - published implies attachments is non-empty
    - once published, attachments and published never change again
    """
    __tablename__ = "upload"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    owner_id = Column(String(255), nullable=False, index=True)
    owner = Column(PortableJSONB, nullable=False)

    # Ordered list of store keys ("<md5>.<ext>"), display order
    attachments = Column(PortableJSONB, nullable=False, default=list)

    published = Column(Boolean, nullable=False, default=False)
    allow_additional_attachments = Column(Boolean, nullable=False, default=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    source = Column(String(16), nullable=False, default=UploadSource.HTTP.value)

    # Mail metadata (MAIL source only)
    mail_from = Column(Text, nullable=True)
    mail_to = Column(Text, nullable=True)
    mail_subject = Column(Text, nullable=True)
    mail_text = Column(Text, nullable=True)
    mail_html = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_upload_published_timestamp", "published", "timestamp"),
    )

    def __repr__(self):
        return (
            f"<Upload(id={self.id}, owner_id={self.owner_id}, "
            f"published={self.published}, attachments={len(self.attachments or [])})>"
        )
