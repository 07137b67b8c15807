"""Storage configuration for the attachment store.

Selects and builds the attachment storage adapter from settings. Supports the
local filesystem (default) and S3-compatible storage with the same interface.
"""

from dataclasses import dataclass
from typing import Optional

from ...config import Settings
from ...domain.attachments.ports.attachment_storage_port import AttachmentStoragePort
from .local_storage_adapter import LocalStorageAdapter
from .s3_storage_adapter import S3StorageAdapter

SUPPORTED_BACKENDS = ("local", "s3")


@dataclass
class StorageConfig:
    """Which attachment store to build; the s3 fields are ignored for local."""
    backend: str
    storage_path: str
    endpoint_url: Optional[str] = None
    access_key: str = ""
    secret_key: str = ""
    bucket_name: str = ""
    region: str = "us-east-1"


def load_storage_config(settings: Settings) -> StorageConfig:
    """Build a StorageConfig from application settings."""
    return StorageConfig(
        backend=settings.STORAGE_BACKEND.strip().lower(),
        storage_path=settings.STORAGE_PATH,
        endpoint_url=settings.S3_ENDPOINT_URL,
        access_key=settings.S3_ACCESS_KEY_ID,
        secret_key=settings.S3_SECRET_ACCESS_KEY,
        bucket_name=settings.S3_BUCKET_NAME,
        region=settings.S3_REGION,
    )


def validate_storage_config(config: StorageConfig) -> None:
    """Raise ValueError describing the first missing or malformed setting."""
    if config.backend not in SUPPORTED_BACKENDS:
        raise ValueError(
            f"Unsupported STORAGE_BACKEND: {config.backend!r}. "
            f"Expected one of {', '.join(SUPPORTED_BACKENDS)}"
        )

    if config.backend == "local":
        if not config.storage_path:
            raise ValueError("STORAGE_PATH is required for the local storage backend")
        return

    if not config.access_key or not config.secret_key:
        raise ValueError("S3 access key and secret key are required")
    if not config.bucket_name:
        raise ValueError("S3 bucket name is required")
    if config.endpoint_url and not config.endpoint_url.startswith(("http://", "https://")):
        raise ValueError(
            f"S3_ENDPOINT_URL must be an http(s) URL, got {config.endpoint_url!r}"
        )


def create_attachment_storage(config: StorageConfig) -> AttachmentStoragePort:
    """Create the configured attachment storage adapter."""
    validate_storage_config(config)
    if config.backend == "s3":
        return S3StorageAdapter(
            endpoint_url=config.endpoint_url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            bucket_name=config.bucket_name,
            region=config.region,
        )
    return LocalStorageAdapter(config.storage_path)
