"""Attachment Storage Port - Domain interface for content-addressed blob storage.

Adapters implement this contract for the local filesystem or an S3-compatible
bucket. Keys are derived from content, so storage is naturally deduplicating
and blobs are never deleted.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ...uploads.validation import allowed_extension


class StorageError(Exception):
    """Base exception for attachment storage operations."""
    pass


class StorageWriteError(StorageError):
    """Raised when a blob could not be written (I/O or backend failure)."""
    pass


class UnsupportedAttachmentError(ValueError):
    """Raised when a filename has no allowed extension. Nothing is written."""

    def __init__(self, filename: str):
        super().__init__(f"Unsupported attachment: {filename!r}")
        self.filename = filename


@dataclass(frozen=True)
class StoredAttachment:
    """Result of storing an attachment.

    Attributes:
        key: Store key, '<md5 hex>.<lower-cased extension>'
        md5: MD5 hex digest of the content
        size_bytes: Content size in bytes
        deduplicated: True if an identical blob already existed under the key
    """
    key: str
    md5: str
    size_bytes: int
    deduplicated: bool = False


def build_store_key(content: bytes, filename: str) -> str:
    """Compute the content-addressed key for an attachment.

    Raises:
        UnsupportedAttachmentError: If the extension is absent or not allowed

    Example:
        >>> build_store_key(b"", "a.PNG")
        'd41d8cd98f00b204e9800998ecf8427e.png'
    """
    extension = allowed_extension(filename)
    if extension is None:
        raise UnsupportedAttachmentError(filename)
    return f"{hashlib.md5(content).hexdigest()}.{extension}"


class AttachmentStoragePort(ABC):
    """Port interface for content-addressed attachment storage.

    Key Design Principles:
    - Key = md5(content) + "." + extension; same bytes + extension, same key
    - Writes are idempotent: storing an existing key never fails and never
      changes the retrievable content
    - Extension allow-listing happens before hashing; rejected input has no
      side effect
    """

    @abstractmethod
    async def store_attachment(self, content: bytes, filename: str) -> StoredAttachment:
        """Store attachment bytes under their content-addressed key.

        Args:
            content: Raw attachment bytes
            filename: Client-supplied filename (only the extension is used)

        Returns:
            StoredAttachment: Key and metadata

        Raises:
            UnsupportedAttachmentError: Extension absent or not allowed
            StorageWriteError: Blob could not be written
        """
        pass

    @abstractmethod
    async def retrieve_attachment(self, key: str) -> bytes:
        """Return the bytes stored under key.

        Raises:
            FileNotFoundError: If no blob exists under key (or key is malformed)
            StorageError: If retrieval fails
        """
        pass

    @abstractmethod
    async def attachment_exists(self, key: str) -> bool:
        """Check whether a blob exists under key."""
        pass

    @abstractmethod
    async def verify_storage_ready(self) -> bool:
        """Verify the storage root / bucket is usable.

        Raises:
            StorageError: If the storage backend is not usable
        """
        pass
