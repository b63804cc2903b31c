"""Object store client: thin async wrapper over an S3-compatible backend.

The ``minio`` client is synchronous, so every call runs in a worker thread
under a bounded timeout. Backend failures surface as ``StorageWriteError``
or ``StorageReadError``; no retries happen here.
"""

from __future__ import annotations

import asyncio
import io
from datetime import timedelta
from typing import Callable, TypeVar

import structlog
from minio import Minio
from minio.commonconfig import REPLACE, CopySource

from modules.document_vault.errors import StorageError, StorageReadError, StorageWriteError
from shared.config import Settings

logger = structlog.get_logger()

T = TypeVar("T")


class ObjectStoreClient:
    """Put/get/delete/list/copy and signed URLs against one bucket."""

    def __init__(self, client: Minio, bucket: str, timeout: float = 30.0):
        self.client = client
        self.bucket = bucket
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> ObjectStoreClient:
        client = Minio(
            settings.s3_endpoint,
            access_key=settings.aws_access_key_id,
            secret_key=settings.aws_secret_access_key,
            region=settings.aws_region,
            secure=settings.s3_secure,
        )
        return cls(client, settings.aws_s3_bucket, timeout=settings.storage_timeout_seconds)

    async def _call(
        self,
        op: str,
        key: str,
        fn: Callable[[], T],
        error_cls: type[StorageError],
    ) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("storage_timeout", op=op, key=key, timeout=self.timeout)
            raise error_cls(f"{op} timed out after {self.timeout}s: {key}", key=key) from None
        except Exception as e:
            logger.error("storage_call_failed", op=op, key=key, error=str(e))
            raise error_cls(f"{op} failed for {key}: {e}", key=key) from e

    async def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""

        def _ensure() -> None:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)

        await self._call("ensure_bucket", self.bucket, _ensure, StorageWriteError)

    async def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        await self._call(
            "put_object",
            key,
            lambda: self.client.put_object(
                self.bucket,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
                metadata=metadata,
            ),
            StorageWriteError,
        )
        logger.debug("storage_put", key=key, size=len(data))

    async def get_object(self, key: str) -> bytes:
        def _get() -> bytes:
            response = self.client.get_object(self.bucket, key)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()

        return await self._call("get_object", key, _get, StorageReadError)

    async def delete_object(self, key: str) -> None:
        await self._call(
            "delete_object",
            key,
            lambda: self.client.remove_object(self.bucket, key),
            StorageWriteError,
        )
        logger.debug("storage_delete", key=key)

    async def list_objects(self, prefix: str) -> list[str]:
        """Keys under ``prefix`` (ListObjectsV2, recursive)."""

        def _list() -> list[str]:
            return [
                obj.object_name
                for obj in self.client.list_objects(self.bucket, prefix=prefix, recursive=True)
            ]

        return await self._call("list_objects", prefix, _list, StorageReadError)

    async def copy_object(
        self,
        source_key: str,
        dest_key: str,
        metadata: dict[str, str],
    ) -> None:
        """Server-side copy that replaces the object metadata."""
        await self._call(
            "copy_object",
            dest_key,
            lambda: self.client.copy_object(
                self.bucket,
                dest_key,
                CopySource(self.bucket, source_key),
                metadata=metadata,
                metadata_directive=REPLACE,
            ),
            StorageWriteError,
        )
        logger.debug("storage_copy", source=source_key, dest=dest_key)

    async def presigned_get_url(self, key: str, expires_seconds: int) -> str:
        return await self._call(
            "presigned_get_object",
            key,
            lambda: self.client.presigned_get_object(
                self.bucket, key, expires=timedelta(seconds=expires_seconds)
            ),
            StorageReadError,
        )
