from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from objstore.common.config import get_settings
from objstore.infra.storage.client import StorageServerConfig
from objstore.infra.storage.s3_client import S3ObjectStorage
from tests.infra.mock_storage import MockS3Client


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def server_config() -> StorageServerConfig:
    return StorageServerConfig(
        endpoint="s3.amazonaws.com",
        access_key="test-key",
        secret_key="test-secret",
        region="us-east-1",
    )


@pytest.fixture()
def mock_s3():
    """Mock boto3 S3 client."""
    mock_client = MagicMock()
    with patch.object(S3ObjectStorage, "_build_client", return_value=mock_client):
        yield mock_client


@pytest.fixture()
def storage(mock_s3, server_config) -> S3ObjectStorage:
    """Connected S3ObjectStorage with mocked boto3."""
    storage = S3ObjectStorage(server_config, record_metrics=False)
    storage.connect()
    return storage


@pytest.fixture()
def mock_backend() -> MockS3Client:
    return MockS3Client()


@pytest.fixture()
def memory_storage(mock_backend, server_config) -> S3ObjectStorage:
    """Connected S3ObjectStorage backed by the in-memory S3 mock."""
    with patch.object(S3ObjectStorage, "_build_client", return_value=mock_backend):
        storage = S3ObjectStorage(server_config, record_metrics=False)
        storage.connect()
    return storage
