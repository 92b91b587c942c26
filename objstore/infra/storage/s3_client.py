"""Amazon S3 storage client implementation.

This module adapts the boto3 S3 client to the ``ObjectStorage`` protocol.
Every blocking SDK call runs on a worker thread so callers can await it
without blocking the event loop. SDK errors are propagated unchanged.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import threading
import time
from contextlib import asynccontextmanager
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Mapping,
)

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from objstore.infra.observability.metrics import record_operation
from objstore.infra.storage.client import (
    AMAZON_S3_ENDPOINT,
    CorsRule,
    ObjectReader,
    ObjectSource,
    StorageConfigError,
    StorageNotConnectedError,
    StorageServerConfig,
)

if TYPE_CHECKING:
    from objstore.common.config import Settings

logger = logging.getLogger("storage")

CORS_RULE_ID = "browser-put-upload"
DEFAULT_CHUNK_SIZE = 1024 * 1024
# S3 rejects presigned URLs valid for more than seven days
MAX_PRESIGN_EXPIRES_IN = 7 * 24 * 3600

RESPONSE_HEADER_PARAMS: dict[str, str] = {
    "response-expires": "ResponseExpires",
    "response-content-type": "ResponseContentType",
    "response-cache-control": "ResponseCacheControl",
    "response-content-disposition": "ResponseContentDisposition",
}

_MISSING_BUCKET_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})


def is_amazon_s3_config(config: StorageServerConfig) -> bool:
    """Return whether ``config`` points at the Amazon S3 endpoint."""
    return (config.endpoint or "").strip().upper() == AMAZON_S3_ENDPOINT.upper()


def _error_code(exc: ClientError) -> str | None:
    return exc.response.get("Error", {}).get("Code")


def _validate_expires_in(expires_in: int) -> int:
    if isinstance(expires_in, bool) or not isinstance(expires_in, int):
        raise ValueError("expires_in must be an integer number of seconds")
    if expires_in <= 0 or expires_in > MAX_PRESIGN_EXPIRES_IN:
        raise ValueError(
            f"expires_in must be between 1 and {MAX_PRESIGN_EXPIRES_IN} seconds"
        )
    return expires_in


class S3ObjectReader:
    """Object body returned by :meth:`S3ObjectStorage.get_object`."""

    def __init__(
        self,
        *,
        bucket: str,
        object_key: str,
        body: Any,
        content_type: str | None,
        content_length: int | None,
    ) -> None:
        self.bucket = bucket
        self.object_key = object_key
        self.content_type = content_type
        self.content_length = content_length
        self._body = body
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError("I/O operation on closed object body")
        amount = None if size is None or size < 0 else size
        return await asyncio.to_thread(self._body.read, amount)

    async def iter_chunks(
        self, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._body.close()


class S3ObjectStorage:
    """Amazon S3 object storage client.

    The boto3 client is created lazily by :meth:`connect` and reused for the
    lifetime of the instance. All other operations require a prior call to
    :meth:`connect`.
    """

    def __init__(
        self,
        config: StorageServerConfig,
        *,
        addressing_style: str | None = None,
        record_metrics: bool = True,
    ) -> None:
        """Validate the configuration without touching the network.

        Args:
            config: Endpoint, region and credentials.
            addressing_style: botocore S3 addressing style
                (``auto``, ``path`` or ``virtual``).
            record_metrics: Whether to record Prometheus metrics per operation.

        Raises:
            StorageConfigError: If the endpoint is not Amazon S3.
        """
        if not is_amazon_s3_config(config):
            raise StorageConfigError(
                f"Endpoint is not valid AWS S3: {config.endpoint!r}"
            )
        self._config = config
        self._addressing_style = (addressing_style or "auto").strip().lower()
        self._record_metrics = record_metrics
        self._client: Any | None = None
        self._client_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: "Settings") -> "S3ObjectStorage":
        return cls(
            settings.server_config(),
            addressing_style=settings.S3_ADDRESSING_STYLE,
            record_metrics=settings.ENABLE_METRICS,
        )

    @property
    def config(self) -> StorageServerConfig:
        return self._config

    @property
    def use_region(self) -> bool:
        return bool(self._config.region and self._config.region.strip())

    @property
    def region(self) -> str | None:
        return self._config.region.strip() if self.use_region else None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """Create the boto3 client if it does not exist yet."""
        if self._client is not None:
            return
        with self._client_lock:
            if self._client is not None:
                return
            self._client = self._build_client(
                self._config, self.region, self._addressing_style
            )
        logger.info(
            "storage_connected endpoint=%s region=%s",
            self._config.endpoint.strip(),
            self.region or "-",
            extra={
                "extra": {
                    "endpoint": self._config.endpoint.strip(),
                    "region": self.region,
                }
            },
        )

    @staticmethod
    def _build_client(
        config: StorageServerConfig, region: str | None, addressing_style: str
    ) -> Any:
        """Create a boto3 S3 client from the server configuration."""
        return boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": addressing_style},
            ),
        )

    def _require_client(self) -> Any:
        client = self._client
        if client is None:
            raise StorageNotConnectedError()
        return client

    async def _call(
        self, operation: str, func: Callable[..., Any], /, *args: Any, **kwargs: Any
    ) -> Any:
        start = time.perf_counter()
        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        except BaseException:
            # cancellation counts as a failed call
            self._observe(operation, "error", start)
            raise
        self._observe(operation, "success", start)
        return result

    def _observe(self, operation: str, outcome: str, start: float) -> None:
        elapsed = time.perf_counter() - start
        if self._record_metrics:
            record_operation(operation, outcome, elapsed)
        logger.debug(
            "storage_call operation=%s outcome=%s duration_ms=%.3f",
            operation,
            outcome,
            round(elapsed * 1000, 3),
        )

    async def bucket_exists(self, *, bucket: str) -> bool:
        """Return whether ``bucket`` exists.

        A missing bucket yields ``False``; any other error, such as access
        denied, propagates.
        """
        client = self._require_client()

        def _head_bucket() -> bool:
            try:
                client.head_bucket(Bucket=bucket)
            except ClientError as exc:
                if _error_code(exc) in _MISSING_BUCKET_CODES:
                    return False
                raise
            return True

        return await self._call("bucket_exists", _head_bucket)

    async def make_bucket(self, *, bucket: str) -> None:
        """Create ``bucket`` in the region the client signs for.

        Without a configured region the SDK resolves one itself (for example
        from ``AWS_DEFAULT_REGION``), so the constraint follows the client.
        """
        client = self._require_client()
        region = self.region or client.meta.region_name
        params: dict[str, Any] = {"Bucket": bucket}
        # us-east-1 is the only region that rejects an explicit LocationConstraint
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        await self._call("make_bucket", client.create_bucket, **params)

    async def remove_bucket(self, *, bucket: str) -> None:
        """Delete an empty bucket."""
        client = self._require_client()
        await self._call("remove_bucket", client.delete_bucket, Bucket=bucket)

    async def set_cors_rule(
        self, *, bucket: str, allowed_origin: str | None = None
    ) -> None:
        """Replace the bucket CORS configuration with a single browser PUT rule.

        Existing rules are deleted first and not merged; concurrent callers
        overwrite each other.
        """
        client = self._require_client()
        rule = CorsRule(
            id=CORS_RULE_ID,
            allowed_methods=("PUT",),
            allowed_headers=("*",),
            allowed_origins=(allowed_origin or "*",),
        )

        def _replace_cors() -> None:
            client.delete_bucket_cors(Bucket=bucket)
            client.put_bucket_cors(
                Bucket=bucket,
                CORSConfiguration={"CORSRules": [rule.to_boto()]},
            )

        await self._call("set_cors_rule", _replace_cors)

    async def retrieve_cors_rules(self, *, bucket: str) -> list[CorsRule]:
        """Return the CORS rules attached to ``bucket``."""
        client = self._require_client()
        response = await self._call(
            "retrieve_cors_rules", client.get_bucket_cors, Bucket=bucket
        )
        return [CorsRule.from_boto(rule) for rule in response.get("CORSRules") or []]

    async def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        source: ObjectSource,
        size: int | None = None,
        content_type: str | None = None,
    ) -> None:
        """Upload an object from a local path or from a binary stream.

        Paths go through the SDK's managed transfer, which switches to a
        multipart upload for large files. Streams are sent in one request.
        """
        client = self._require_client()
        if isinstance(source, (str, os.PathLike)):
            extra_args = {"ContentType": content_type} if content_type else None
            await self._call(
                "put_object",
                client.upload_file,
                os.fspath(source),
                bucket,
                object_key,
                ExtraArgs=extra_args,
            )
            return

        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key, "Body": source}
        if size is not None:
            if size < 0:
                raise ValueError("size must not be negative")
            params["ContentLength"] = int(size)
        if content_type:
            params["ContentType"] = content_type
        await self._call("put_object", client.put_object, **params)

    async def remove_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        client = self._require_client()
        await self._call(
            "remove_object", client.delete_object, Bucket=bucket, Key=object_key
        )

    async def object_exists(self, *, bucket: str, object_key: str) -> bool:
        """Return whether any key in ``bucket`` starts with ``object_key``.

        Uses a one-key prefix listing. HEAD requests reported just-created
        objects as missing.
        """
        client = self._require_client()
        response = await self._call(
            "object_exists",
            client.list_objects_v2,
            Bucket=bucket,
            Prefix=object_key,
            MaxKeys=1,
        )
        return len(response.get("Contents") or []) > 0

    @asynccontextmanager
    async def get_object(
        self, *, bucket: str, object_key: str
    ) -> AsyncIterator[S3ObjectReader]:
        """Open an object for reading.

        Usage::

            async with storage.get_object(bucket="b", object_key="k") as obj:
                data = await obj.read()

        The response body is closed when the block exits, even if it was
        not fully read.
        """
        client = self._require_client()
        response = await self._call(
            "get_object", client.get_object, Bucket=bucket, Key=object_key
        )
        reader = S3ObjectReader(
            bucket=bucket,
            object_key=object_key,
            body=response["Body"],
            content_type=response.get("ContentType"),
            content_length=response.get("ContentLength"),
        )
        try:
            yield reader
        finally:
            reader.close()

    async def consume_object(
        self,
        *,
        bucket: str,
        object_key: str,
        handler: Callable[[ObjectReader], Any | Awaitable[Any]],
    ) -> Any:
        """Open an object, pass it to ``handler`` and return its result.

        ``handler`` may be a plain function or a coroutine function. The body is
        closed once the handler returns.
        """
        async with self.get_object(bucket=bucket, object_key=object_key) as reader:
            result = handler(reader)
            if inspect.isawaitable(result):
                result = await result
            return result

    async def copy_object(
        self,
        *,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
    ) -> None:
        """Copy an object server-side without downloading it."""
        client = self._require_client()
        await self._call(
            "copy_object",
            client.copy_object,
            Bucket=dest_bucket,
            Key=dest_key,
            CopySource={"Bucket": source_bucket, "Key": source_key},
        )

    async def presigned_put_url(
        self, *, bucket: str, object_key: str, expires_in: int
    ) -> str:
        """Generate a presigned URL for an unauthenticated PUT upload.

        The SDK signs with the current UTC time, so the URL stops working
        ``expires_in`` seconds after this call.
        """
        client = self._require_client()
        expires_in = _validate_expires_in(expires_in)
        url = await self._call(
            "presigned_put_url",
            client.generate_presigned_url,
            ClientMethod="put_object",
            Params={"Bucket": bucket, "Key": object_key},
            ExpiresIn=expires_in,
            HttpMethod="PUT",
        )
        return str(url)

    async def presigned_get_url(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
        response_headers: Mapping[str, str] | None = None,
    ) -> str:
        """Generate a presigned URL for an unauthenticated GET download.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            expires_in: URL expiration time in seconds.
            response_headers: Headers the response should carry, keyed by
                ``response-expires``, ``response-content-type``,
                ``response-cache-control`` or ``response-content-disposition``.

        Raises:
            ValueError: If ``expires_in`` is out of range or an override key
                is not supported.
        """
        client = self._require_client()
        expires_in = _validate_expires_in(expires_in)
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        for key, value in (response_headers or {}).items():
            param = RESPONSE_HEADER_PARAMS.get(key.strip().lower())
            if param is None:
                raise ValueError(f"Unsupported response header override: {key}")
            params[param] = value

        url = await self._call(
            "presigned_get_url",
            client.generate_presigned_url,
            ClientMethod="get_object",
            Params=params,
            ExpiresIn=expires_in,
            HttpMethod="GET",
        )
        return str(url)
