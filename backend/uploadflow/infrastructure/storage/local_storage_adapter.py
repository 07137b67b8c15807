"""Local Storage Adapter - filesystem implementation of AttachmentStoragePort.

Blobs live directly under the storage root; the filename is the store key.

Architecture: Hexagonal - Adapter implementation in infrastructure layer
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from ...domain.attachments.ports.attachment_storage_port import (
    AttachmentStoragePort,
    StoredAttachment,
    StorageError,
    StorageWriteError,
    build_store_key,
)
from ...domain.uploads.validation import is_valid_store_key

logger = logging.getLogger(__name__)


class LocalStorageAdapter(AttachmentStoragePort):
    """Filesystem attachment storage.

    Writes go to a temporary file in the storage root and are moved into
    place with os.replace, so concurrent writers of the same content never
    expose a partial blob and the last rename leaves identical bytes.

    Example:
        storage = LocalStorageAdapter("storage")
        stored = await storage.store_attachment(data, "photo.png")
        # stored.key == "<md5>.png", file at storage/<md5>.png
    """

    def __init__(self, storage_path: Union[str, Path], create: bool = True):
        """Initialize local storage adapter.

        Args:
            storage_path: Storage root directory
            create: Create the directory if it does not exist

        Raises:
            StorageError: If the directory is missing and cannot be created
        """
        self.storage_path = Path(storage_path)
        if not self.storage_path.is_dir():
            if not create:
                raise StorageError(f"Storage directory does not exist: {self.storage_path}")
            logger.info(f"Storage directory ({self.storage_path}) does not exist, creating")
            try:
                self.storage_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Unable to create storage directory {self.storage_path}: {e}")

    def _path_for(self, key: str) -> Path:
        return self.storage_path / key

    async def store_attachment(self, content: bytes, filename: str) -> StoredAttachment:
        """Store attachment bytes under their content-addressed key.

        Raises:
            UnsupportedAttachmentError: Extension absent or not allowed
            StorageWriteError: Blob could not be written
        """
        try:
            key = build_store_key(content, filename)
        except ValueError:
            logger.info(f"Discarding {filename!r}: extension not allowed")
            raise

        md5 = key.split(".", 1)[0]
        target = self._path_for(key)

        if target.exists():
            logger.info(f"Attachment already exists (dedup): key={key}, size={len(content)}")
            return StoredAttachment(key=key, md5=md5, size_bytes=len(content), deduplicated=True)

        logger.info(f"Writing attachment to {key}")
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.storage_path, prefix=".incoming-")
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            os.replace(tmp_name, target)
            tmp_name = None
        except OSError as e:
            logger.error(f"There was an error writing attachment {key}: {e}")
            raise StorageWriteError(f"Failed to write attachment {key}: {e}")
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.info(f"{key} written ({len(content)} bytes)")
        return StoredAttachment(key=key, md5=md5, size_bytes=len(content))

    async def retrieve_attachment(self, key: str) -> bytes:
        if not is_valid_store_key(key):
            raise FileNotFoundError(f"Attachment not found: {key}")
        try:
            return self._path_for(key).read_bytes()
        except FileNotFoundError:
            logger.warning(f"Attachment not found: key={key}")
            raise
        except OSError as e:
            raise StorageError(f"Failed to read attachment {key}: {e}")

    async def attachment_exists(self, key: str) -> bool:
        return is_valid_store_key(key) and self._path_for(key).is_file()

    async def verify_storage_ready(self) -> bool:
        if not self.storage_path.is_dir():
            raise StorageError(f"Storage directory does not exist: {self.storage_path}")
        if not os.access(self.storage_path, os.W_OK):
            raise StorageError(f"Storage directory is not writable: {self.storage_path}")
        return True
