"""Object storage abstraction layer.

This module provides a protocol-based abstraction for bucket and object
operations, with an Amazon S3 implementation backed by boto3.
"""

from .client import (
    CorsRule,
    ObjectReader,
    ObjectStorage,
    StorageConfigError,
    StorageError,
    StorageNotConnectedError,
    StorageServerConfig,
)
from .s3_client import S3ObjectReader, S3ObjectStorage, is_amazon_s3_config

__all__ = [
    "CorsRule",
    "ObjectReader",
    "ObjectStorage",
    "S3ObjectReader",
    "S3ObjectStorage",
    "StorageConfigError",
    "StorageError",
    "StorageNotConnectedError",
    "StorageServerConfig",
    "is_amazon_s3_config",
]
