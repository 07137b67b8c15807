"""Upload API request/response schemas

The same UploadOut shape is used for HTTP listings, webhook bodies and
broadcast frames.
"""

import base64
import binascii
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.upload import Upload, UploadSource


class MailMessageOut(BaseModel):
    """Mail metadata carried by uploads ingested from email"""
    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None

    class Config:
        populate_by_name = True


class UploadOut(BaseModel):
    """Serialized upload"""
    id: UUID
    user: Dict[str, Any] = Field(..., description="Owner profile")
    attachments: List[str] = Field(..., description="Store keys in display order")
    published: bool
    allow_additional_attachments: bool = Field(..., alias="allowAdditionalAttachments")
    timestamp: datetime
    source: str = UploadSource.HTTP.value
    message: Optional[MailMessageOut] = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_model(cls, upload: Upload) -> "UploadOut":
        timestamp = upload.timestamp
        if timestamp is not None and timestamp.tzinfo is None:
            # SQLite drops the offset; stored values are UTC
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        message = None
        if upload.source == UploadSource.MAIL.value:
            message = MailMessageOut(
                from_=upload.mail_from,
                to=upload.mail_to,
                subject=upload.mail_subject,
                text=upload.mail_text,
                html=upload.mail_html,
            )
        return cls(
            id=upload.id,
            user=upload.owner or {},
            attachments=list(upload.attachments or []),
            published=upload.published,
            allow_additional_attachments=upload.allow_additional_attachments,
            timestamp=timestamp,
            source=upload.source or UploadSource.HTTP.value,
            message=message,
        )

    def _exclude(self):
        return {"message"} if self.message is None else None

    def to_payload(self) -> Dict[str, Any]:
        """JSON-compatible dict with public field names"""
        return self.model_dump(mode="json", by_alias=True, exclude=self._exclude())

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude=self._exclude())


def serialize_upload(upload: Upload) -> str:
    """Serialize an upload to the JSON text sent to webhook and subscribers"""
    return UploadOut.from_model(upload).to_json()


class CreateUploadResponse(BaseModel):
    id: UUID = Field(..., description="UUID of the created draft upload")


class AttachmentRequest(BaseModel):
    """Body of POST /uploads/{id}/attachment"""
    content: str = Field(..., description="Base64 encoded file content")
    filename: str = Field(..., description="Original filename, used for its extension")

    def decoded_content(self) -> Optional[bytes]:
        """Decode the base64 content, or None if it is not valid base64"""
        try:
            return base64.b64decode(self.content, validate=True)
        except (binascii.Error, ValueError):
            return None


class PublishRequest(BaseModel):
    """Body of PATCH /uploads/{id}. Publishing is the only supported change."""
    published: Optional[bool] = True
