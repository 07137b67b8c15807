"""Attachment storage adapters (local filesystem and S3-compatible)"""

from .local_storage_adapter import LocalStorageAdapter
from .s3_storage_adapter import S3StorageAdapter
from .storage_config import StorageConfig, create_attachment_storage, load_storage_config

__all__ = [
    "LocalStorageAdapter",
    "S3StorageAdapter",
    "StorageConfig",
    "create_attachment_storage",
    "load_storage_config",
]
