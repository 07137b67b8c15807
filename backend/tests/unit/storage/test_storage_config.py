"""Unit tests for storage backend selection"""

import pytest

from uploadflow.infrastructure.storage import (
    LocalStorageAdapter,
    StorageConfig,
    create_attachment_storage,
)
from uploadflow.infrastructure.storage.storage_config import validate_storage_config


def test_local_backend_builds_local_adapter(tmp_path):
    storage = create_attachment_storage(StorageConfig(backend="local", storage_path=str(tmp_path)))
    assert isinstance(storage, LocalStorageAdapter)


def test_unknown_backend_rejected():
    with pytest.raises(ValueError, match="Unsupported STORAGE_BACKEND"):
        validate_storage_config(StorageConfig(backend="ftp", storage_path="x"))


def test_s3_requires_credentials():
    with pytest.raises(ValueError):
        validate_storage_config(StorageConfig(backend="s3", storage_path="", bucket_name="b"))


def test_s3_endpoint_must_be_http():
    config = StorageConfig(
        backend="s3",
        storage_path="",
        endpoint_url="minio:9000",
        access_key="a",
        secret_key="s",
        bucket_name="b",
    )
    with pytest.raises(ValueError, match="S3_ENDPOINT_URL must be an http"):
        validate_storage_config(config)
