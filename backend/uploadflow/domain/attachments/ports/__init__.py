from .attachment_storage_port import (
    AttachmentStoragePort,
    StoredAttachment,
    StorageError,
    StorageWriteError,
    UnsupportedAttachmentError,
    build_store_key,
)

__all__ = [
    "AttachmentStoragePort",
    "StoredAttachment",
    "StorageError",
    "StorageWriteError",
    "UnsupportedAttachmentError",
    "build_store_key",
]
