"""Upload API endpoints

GET   /                          - published uploads, newest first
POST  /                          - create a draft upload
POST  /uploads/{id}/attachment   - add the (single) attachment
PATCH /uploads/{id}              - publish
GET   /attachments/{key}         - download a stored blob
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from ..auth.dependencies import CurrentUser, owner_id_of
from ..config import Settings, get_settings
from ..dependencies import get_lifecycle_manager, get_storage
from ..domain.attachments.ports import AttachmentStoragePort
from ..domain.uploads import content_type_for_key
from ..errors import AppError, ErrorKind
from .schemas import AttachmentRequest, CreateUploadResponse, PublishRequest, UploadOut
from .service import UploadLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])


def clamp_limit(raw_limit: Optional[str], config: Settings) -> int:
    """Page size within [1, MAX_PAGE_SIZE].

    Absent, zero or non-numeric values mean DEFAULT_PAGE_SIZE.
    """
    try:
        limit = int(raw_limit) if raw_limit is not None else 0
    except ValueError:
        limit = 0
    if limit == 0:
        limit = config.DEFAULT_PAGE_SIZE
    return max(1, min(limit, config.MAX_PAGE_SIZE))


@router.get("/", response_model=List[Dict[str, Any]])
async def list_uploads(
    starting_from: Optional[datetime] = Query(
        None, alias="startingFrom", description="Only uploads strictly older than this"
    ),
    limit: Optional[str] = Query(None, description="Page size (clamped to 1..MAX_PAGE_SIZE)"),
    manager: UploadLifecycleManager = Depends(get_lifecycle_manager),
    config: Settings = Depends(get_settings),
):
    """List published uploads.

    Pass the timestamp of the last item as startingFrom to get the next page.
    """
    uploads = await manager.get_uploads(starting_from, clamp_limit(limit, config))
    return [UploadOut.from_model(upload).to_payload() for upload in uploads]


@router.post("/", response_model=CreateUploadResponse)
async def create_upload(
    user: CurrentUser,
    manager: UploadLifecycleManager = Depends(get_lifecycle_manager),
):
    upload_id = await manager.create_upload(user)
    return CreateUploadResponse(id=upload_id)


@router.post("/uploads/{upload_id}/attachment")
async def add_attachment(
    upload_id: str,
    request: AttachmentRequest,
    user: CurrentUser,
    manager: UploadLifecycleManager = Depends(get_lifecycle_manager),
):
    """Attach a file to a draft upload.

    Only the first attachment is accepted; the upload is locked afterwards.
    """
    content = request.decoded_content()
    if content is None:
        logger.info(f"Rejecting attachment for upload {upload_id}: content is not base64")
        raise AppError(ErrorKind.ILLEGAL_ATTACHMENT)

    await manager.add_attachment(upload_id, owner_id_of(user), content, request.filename)
    return Response(status_code=status.HTTP_200_OK)


@router.patch("/uploads/{upload_id}")
async def publish_upload(
    upload_id: str,
    user: CurrentUser,
    request: Optional[PublishRequest] = Body(None),
    manager: UploadLifecycleManager = Depends(get_lifecycle_manager),
):
    """Publish an upload. The request body is accepted but not interpreted."""
    await manager.publish_upload(upload_id, owner_id_of(user))
    return Response(status_code=status.HTTP_200_OK)


@router.get("/attachments/{key}")
async def get_attachment(
    key: str,
    storage: AttachmentStoragePort = Depends(get_storage),
):
    try:
        content = await storage.retrieve_attachment(key)
    except FileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="attachment not found")
    return Response(
        content=content,
        media_type=content_type_for_key(key),
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
