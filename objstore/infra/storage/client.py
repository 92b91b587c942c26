"""Storage protocol, configuration and data types.

This module defines the abstract interface for bucket and object operations
against an S3-compatible object store, together with the errors raised by the
storage layer itself. Errors raised by the underlying SDK are not wrapped.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Awaitable,
    BinaryIO,
    Callable,
    Mapping,
    Protocol,
    Union,
)

AMAZON_S3_ENDPOINT = "s3.amazonaws.com"

ObjectSource = Union[str, os.PathLike, BinaryIO]


class StorageError(RuntimeError):
    """Base class for errors raised by the storage layer."""


class StorageConfigError(StorageError, ValueError):
    """Raised when the storage configuration is invalid or incomplete."""


class StorageNotConnectedError(StorageError):
    """Raised when an operation runs before ``connect()`` was called."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Storage client is not connected. Call connect() before running operations."
        )


@dataclass(frozen=True, slots=True)
class StorageServerConfig:
    """Connection settings for one object storage endpoint."""

    endpoint: str
    access_key: str = field(repr=False)
    secret_key: str = field(repr=False)
    region: str | None = None


@dataclass(frozen=True, slots=True)
class CorsRule:
    """A single CORS rule attached to a bucket."""

    id: str | None
    allowed_methods: tuple[str, ...]
    allowed_headers: tuple[str, ...]
    allowed_origins: tuple[str, ...]

    def to_boto(self) -> dict[str, Any]:
        rule: dict[str, Any] = {
            "AllowedMethods": list(self.allowed_methods),
            "AllowedHeaders": list(self.allowed_headers),
            "AllowedOrigins": list(self.allowed_origins),
        }
        if self.id:
            rule["ID"] = self.id
        return rule

    @classmethod
    def from_boto(cls, payload: Mapping[str, Any]) -> "CorsRule":
        return cls(
            id=payload.get("ID"),
            allowed_methods=tuple(payload.get("AllowedMethods") or ()),
            allowed_headers=tuple(payload.get("AllowedHeaders") or ()),
            allowed_origins=tuple(payload.get("AllowedOrigins") or ()),
        )


class ObjectReader(Protocol):
    """Readable view over an object body, valid inside its ``async with`` block."""

    bucket: str
    object_key: str
    content_type: str | None
    content_length: int | None

    async def read(self, size: int = -1) -> bytes:
        ...

    def iter_chunks(self, chunk_size: int = ...) -> AsyncIterator[bytes]:
        ...

    @property
    def closed(self) -> bool:
        ...

    def close(self) -> None:
        ...


class ObjectStorage(Protocol):
    """Protocol defining bucket and object operations on an object store.

    Every method except :meth:`connect` raises
    :class:`StorageNotConnectedError` when called before :meth:`connect`.
    Errors reported by the backing store propagate unchanged.
    """

    def connect(self) -> None:
        """Create the underlying client. Calling it again is a no-op."""
        ...

    async def bucket_exists(self, *, bucket: str) -> bool:
        """Return whether ``bucket`` exists."""
        ...

    async def make_bucket(self, *, bucket: str) -> None:
        """Create ``bucket``. Fails if it already exists or the name is invalid."""
        ...

    async def remove_bucket(self, *, bucket: str) -> None:
        """Delete ``bucket``. Fails if it is missing or not empty."""
        ...

    async def set_cors_rule(
        self, *, bucket: str, allowed_origin: str | None = None
    ) -> None:
        """Replace the bucket CORS configuration with a single PUT rule.

        Args:
            bucket: Target bucket name.
            allowed_origin: Origin allowed to PUT; ``None`` allows any origin.
        """
        ...

    async def retrieve_cors_rules(self, *, bucket: str) -> list[CorsRule]:
        """Return the CORS rules currently attached to ``bucket``."""
        ...

    async def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        source: ObjectSource,
        size: int | None = None,
        content_type: str | None = None,
    ) -> None:
        """Upload an object from a file path or a binary stream.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            source: Local file path, or a readable binary stream.
            size: Length of ``source`` in bytes when it is a stream.
            content_type: MIME type stored with the object.
        """
        ...

    async def remove_object(self, *, bucket: str, object_key: str) -> None:
        """Delete a single object."""
        ...

    async def object_exists(self, *, bucket: str, object_key: str) -> bool:
        """Return whether at least one key starts with ``object_key``."""
        ...

    def get_object(
        self, *, bucket: str, object_key: str
    ) -> AsyncContextManager[ObjectReader]:
        """Open an object for reading.

        The body is released when the ``async with`` block exits.
        """
        ...

    async def consume_object(
        self,
        *,
        bucket: str,
        object_key: str,
        handler: Callable[[ObjectReader], Any | Awaitable[Any]],
    ) -> Any:
        """Open an object and pass it to ``handler``; return the handler's result."""
        ...

    async def copy_object(
        self,
        *,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
    ) -> None:
        """Copy an object server-side."""
        ...

    async def presigned_put_url(
        self, *, bucket: str, object_key: str, expires_in: int
    ) -> str:
        """Generate a URL allowing an unauthenticated PUT for ``expires_in`` seconds."""
        ...

    async def presigned_get_url(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
        response_headers: Mapping[str, str] | None = None,
    ) -> str:
        """Generate a URL allowing an unauthenticated GET for ``expires_in`` seconds.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            expires_in: URL expiration time in seconds.
            response_headers: Optional overrides keyed by ``response-expires``,
                ``response-content-type``, ``response-cache-control`` or
                ``response-content-disposition``.
        """
        ...
