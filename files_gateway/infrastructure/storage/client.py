"""
Object storage client for the gateway bucket.

Supports AWS S3 and S3-compatible stores (MinIO, R2) through boto3, with a
mock mode for local development.

The gateway only needs three operations: list a bounded page of keys, put a
whole object, and get an object as a stream. Anything more (retries,
credential refresh, request signing) is left to boto3.

Mock mode stores objects in memory, enabling API testing without
provisioning a bucket.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ...core.models import DEFAULT_CONTENT_TYPE, ObjectInfo, ObjectStream

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class StorageError(Exception):
    """
    Raised when storage operations fail.

    status_code carries the HTTP status the backend reported, when there
    was one (404 for a missing key, 403 for denied access, ...).
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for S3-compatible storage."""
    bucket_name: str
    region: str
    endpoint_url: Optional[str] = None


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Using a protocol means tests can provide fakes and we can
    swap storage backends without changing the routes.
    """

    async def list_objects(self, prefix: str, limit: int) -> list[ObjectInfo]:
        """List up to `limit` objects whose keys start with `prefix`."""
        ...

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Store `data` under `key`, replacing nothing but that key."""
        ...

    async def get_object(self, key: str) -> ObjectStream:
        """Open an object for streaming download."""
        ...


def storage_error_from(exc: Exception, fallback: str) -> StorageError:
    """
    Translate a boto3/botocore failure into a StorageError.

    ClientError carries the service's HTTP status and message; anything
    else (connection errors, missing credentials) has no status.
    """
    if isinstance(exc, StorageError):
        return exc
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = error.get("Message") or str(exc) or fallback
        return StorageError(message, status_code=status_code)
    return StorageError(str(exc) or fallback)


class S3StorageClient:
    """
    S3 object storage client.

    boto3 is synchronous, so each call runs in a worker thread via
    asyncio.to_thread. The underlying boto3 client is thread-safe and is
    shared across requests.
    """

    def __init__(self, config: StorageConfig, s3_client: Any = None) -> None:
        self._config = config

        if s3_client is None:
            boto_config = Config(signature_version="s3v4")
            s3_client = boto3.client(
                "s3",
                region_name=config.region,
                endpoint_url=config.endpoint_url,
                config=boto_config,
            )

        self._s3_client = s3_client

        logger.info(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "region": config.region,
                "endpoint": config.endpoint_url,
            }
        )

    async def list_objects(self, prefix: str, limit: int) -> list[ObjectInfo]:
        """
        List a single bounded page of objects.

        No continuation token is followed: keys beyond `limit` are omitted.
        """
        params: dict[str, Any] = {
            "Bucket": self._config.bucket_name,
            "MaxKeys": limit,
        }
        if prefix:
            params["Prefix"] = prefix

        try:
            response = await asyncio.to_thread(self._s3_client.list_objects_v2, **params)
        except Exception as e:
            logger.error(
                "Failed to list objects",
                extra={"prefix": prefix, "limit": limit, "error": str(e)}
            )
            raise storage_error_from(e, "Failed to list files")

        return [
            ObjectInfo(
                key=item["Key"],
                size=item.get("Size", 0),
                last_modified=item.get("LastModified"),
            )
            for item in response.get("Contents", [])
        ]

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Upload the whole buffer in one PutObject call."""
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._config.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"key": key, "size_bytes": len(data), "error": str(e)}
            )
            raise storage_error_from(e, "Failed to upload")

        logger.debug(
            "Uploaded object",
            extra={"key": key, "size_bytes": len(data), "content_type": content_type}
        )

    async def get_object(self, key: str) -> ObjectStream:
        """
        Open an object for download.

        Only the response headers are fetched here. The body is read in
        chunks while the HTTP response is being sent.
        """
        try:
            response = await asyncio.to_thread(
                self._s3_client.get_object,
                Bucket=self._config.bucket_name,
                Key=key,
            )
        except Exception as e:
            logger.error(
                "Failed to download object",
                extra={"key": key, "error": str(e)}
            )
            raise storage_error_from(e, "Failed to download")

        body = response["Body"]

        return ObjectStream(
            key=key,
            body=self._iter_body(key, body),
            content_type=response.get("ContentType"),
            content_length=response.get("ContentLength"),
            _close=body.close,
        )

    def _iter_body(self, key: str, body: Any) -> Iterator[bytes]:
        try:
            for chunk in body.iter_chunks(chunk_size=DOWNLOAD_CHUNK_SIZE):
                yield chunk
        except Exception as e:
            # Headers are already sent; the caller sees a truncated stream.
            logger.error(
                "Download stream failed",
                extra={"key": key, "error": str(e)}
            )
            raise storage_error_from(e, "Failed to download")
        finally:
            body.close()


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _StoredObject:
    data: bytes
    content_type: str
    last_modified: datetime


class MockStorageClient:
    """
    In-memory storage for local development.

    Behaves like a bucket for the operations the gateway uses: listings are
    sorted by key and capped, missing keys fail with a 404 StorageError.

    Not suitable for production, but perfect for development and testing.
    """

    def __init__(self) -> None:
        # {key: stored object}
        self._objects: dict[str, _StoredObject] = {}
        logger.info("Initialized mock storage client (in-memory)")

    async def list_objects(self, prefix: str, limit: int) -> list[ObjectInfo]:
        keys = sorted(key for key in self._objects if key.startswith(prefix or ""))
        return [
            ObjectInfo(
                key=key,
                size=len(self._objects[key].data),
                last_modified=self._objects[key].last_modified,
                content_type=self._objects[key].content_type,
            )
            for key in keys[:max(0, limit)]
        ]

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        self._objects[key] = _StoredObject(
            data=bytes(data),
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            last_modified=datetime.now(timezone.utc),
        )

        logger.debug(
            "Stored object in mock storage",
            extra={"key": key, "size_bytes": len(data)}
        )

    async def get_object(self, key: str) -> ObjectStream:
        stored = self._objects.get(key)
        if stored is None:
            raise StorageError("The specified key does not exist.", status_code=404)

        return ObjectStream(
            key=key,
            body=self._iter_chunks(stored.data),
            content_type=stored.content_type,
            content_length=len(stored.data),
        )

    @staticmethod
    def _iter_chunks(data: bytes) -> Iterator[bytes]:
        for start in range(0, len(data), DOWNLOAD_CHUNK_SIZE):
            yield data[start:start + DOWNLOAD_CHUNK_SIZE]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return in-memory client

    Returns:
        StorageClient implementation (S3 or Mock)
    """
    if mock_mode:
        return MockStorageClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3StorageClient(config)
