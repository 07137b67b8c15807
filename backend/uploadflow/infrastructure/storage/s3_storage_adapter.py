"""Attachment store backed by an S3-compatible bucket (AWS S3, MinIO).

Object keys are the content-addressed store keys, optionally under a
prefix, so an existing object means the blob is already stored.
"""

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ...domain.attachments.ports.attachment_storage_port import (
    AttachmentStoragePort,
    StoredAttachment,
    StorageError,
    StorageWriteError,
    build_store_key,
)
from ...domain.uploads.validation import CONTENT_TYPES, is_valid_store_key

logger = logging.getLogger(__name__)

MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def _client_error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


class S3StorageAdapter(AttachmentStoragePort):
    """Write-once blobs in a bucket; HEAD before PUT skips known content.

    Example:
        storage = S3StorageAdapter(
            endpoint_url="http://localhost:9000",
            access_key="minioadmin",
            secret_key="minioadmin",
            bucket_name="uploadflow-attachments",
        )
        stored = await storage.store_attachment(data, "clip.webm")
    """

    def __init__(
        self,
        endpoint_url: Optional[str],
        access_key: str,
        secret_key: str,
        bucket_name: str,
        region: str = "us-east-1",
        key_prefix: str = "",
    ):
        """
        Args:
            endpoint_url: None for AWS itself, the service URL otherwise
            access_key: Access key id
            secret_key: Secret access key
            bucket_name: Bucket holding the blobs (must already exist)
            region: Region name passed to the client
            key_prefix: Prepended to every object key

        Raises:
            StorageError: The client could not be created
        """
        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
        except NoCredentialsError as e:
            raise StorageError(f"S3 credentials rejected: {e}")
        except (BotoCoreError, ValueError) as e:
            raise StorageError(f"Unable to create S3 client: {e}")

        self.bucket_name = bucket_name
        self.region = region
        self.key_prefix = key_prefix

        logger.info(
            f"Attachment store: s3 bucket {bucket_name} "
            f"({endpoint_url or 'aws'}, {region}, prefix={key_prefix!r})"
        )

    def _object_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def store_attachment(self, content: bytes, filename: str) -> StoredAttachment:
        """
        Raises:
            UnsupportedAttachmentError: Extension absent or not allowed
            StorageWriteError: PUT failed
        """
        key = build_store_key(content, filename)
        md5, extension = key.split(".", 1)

        if await self.attachment_exists(key):
            logger.info(f"{key} already in bucket, skipping upload")
            return StoredAttachment(key=key, md5=md5, size_bytes=len(content), deduplicated=True)

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=self._object_key(key),
                Body=content,
                ContentType=CONTENT_TYPES.get(extension, "application/octet-stream"),
                Metadata={"md5": md5},
            )
        except ClientError as e:
            code = _client_error_code(e)
            logger.error(f"PUT {key} rejected by S3 ({code}): {e}")
            raise StorageWriteError(f"Unable to write attachment {key}: {code}")
        except BotoCoreError as e:
            logger.error(f"PUT {key} failed: {e}")
            raise StorageWriteError(f"Unable to write attachment {key}: {e}")

        logger.info(f"{key} written to bucket ({len(content)} bytes)")
        return StoredAttachment(key=key, md5=md5, size_bytes=len(content))

    async def retrieve_attachment(self, key: str) -> bytes:
        if not is_valid_store_key(key):
            raise FileNotFoundError(f"Attachment not found: {key}")
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=self._object_key(key))
        except ClientError as e:
            code = _client_error_code(e)
            if code in MISSING_CODES:
                logger.warning(f"Attachment not found: key={key}")
                raise FileNotFoundError(f"Attachment not found: {key}")
            logger.error(f"GET {key} failed ({code})")
            raise StorageError(f"Unable to read attachment {key}: {code}")
        return response["Body"].read()

    async def attachment_exists(self, key: str) -> bool:
        if not is_valid_store_key(key):
            return False
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=self._object_key(key))
        except ClientError as e:
            code = _client_error_code(e)
            if code not in MISSING_CODES:
                logger.warning(f"HEAD {key} failed ({code}), treating as absent")
            return False
        return True

    async def verify_storage_ready(self) -> bool:
        """The configured bucket must exist and be reachable."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            code = _client_error_code(e)
            if code in MISSING_CODES:
                raise StorageError(f"Bucket '{self.bucket_name}' does not exist")
            raise StorageError(f"Bucket '{self.bucket_name}' not usable: {code}")
        except BotoCoreError as e:
            raise StorageError(f"Bucket '{self.bucket_name}' not reachable: {e}")
        return True
