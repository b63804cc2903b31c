"""Upload coordinator: single uploads, new versions, rollback and bulk ingestion."""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from urllib.parse import quote

import structlog

from modules.document_vault.checksum import compute_checksum_async, new_file_id
from modules.document_vault.errors import DocumentNotFoundError, VersionNotFoundError
from modules.document_vault.keys import sanitize_name
from modules.document_vault.ledger import VersionLedger
from modules.document_vault.permissions import PermissionGuard
from modules.document_vault.schemas import (
    BulkUploadFailure,
    BulkUploadResult,
    FileVersion,
    IncomingFile,
    VersionMetadata,
)
from modules.document_vault.storage import ObjectStoreClient

logger = structlog.get_logger()

ProgressCallback = Callable[[float], "Awaitable[None] | None"]

DEFAULT_CATEGORY = "general"


def object_metadata(version: FileVersion) -> dict[str, str]:
    """User metadata attached to the stored object (sent as ``x-amz-meta-*``).

    S3 only carries US-ASCII header values, so free-form fields are percent-encoded.
    """
    metadata = {
        "user-id": quote(version.uploaded_by, safe=""),
        "category": quote(version.metadata.category, safe=""),
        "tags": quote(",".join(version.metadata.tags), safe=","),
        "checksum": version.checksum,
        "version": str(version.version),
        "uploaded-at": version.uploaded_at.isoformat(),
    }
    if version.metadata.rolled_back_from is not None:
        metadata["rolled-back-from"] = str(version.metadata.rolled_back_from)
    return metadata


class UploadCoordinator:
    """Drives the checksum generator, version ledger and object store for writes."""

    def __init__(
        self,
        store: ObjectStoreClient,
        ledger: VersionLedger,
        permissions: PermissionGuard,
        concurrency: int = 8,
    ):
        self.store = store
        self.ledger = ledger
        self.permissions = permissions
        self.concurrency = concurrency
        # Strong references to shielded uploads that outlive a cancelled batch
        self._inflight: set[asyncio.Task] = set()

    async def upload_file(
        self,
        file: IncomingFile,
        user_id: str,
        category: str = DEFAULT_CATEGORY,
        tags: list[str] | None = None,
    ) -> FileVersion:
        """Store ``file`` as version 1 of a new logical file."""
        file_id = new_file_id()
        version = await self._store_version(
            file_id,
            file,
            user_id,
            sanitize_name(category, DEFAULT_CATEGORY),
            list(tags or []),
            require_existing=False,
        )
        await self.permissions.grant_owner(file_id, user_id)
        return version

    async def add_version(
        self,
        file_id: str,
        file: IncomingFile,
        user_id: str,
        category: str | None = None,
        tags: list[str] | None = None,
        changes: str | None = None,
    ) -> FileVersion:
        """Store ``file`` as the next version of an existing file.

        Category and tags default to those of the latest version; ``changes``
        is an optional note describing the revision.
        """
        latest = await self.ledger.latest(file_id)
        if latest is None:
            raise DocumentNotFoundError(file_id)
        await self.permissions.require(file_id, user_id, "write")

        return await self._store_version(
            file_id,
            file,
            user_id,
            sanitize_name(category, DEFAULT_CATEGORY) if category else latest.metadata.category,
            list(tags) if tags is not None else list(latest.metadata.tags),
            require_existing=True,
            changes=changes,
        )

    async def _store_version(
        self,
        file_id: str,
        file: IncomingFile,
        user_id: str,
        category: str,
        tags: list[str],
        require_existing: bool,
        changes: str | None = None,
    ) -> FileVersion:
        checksum = await compute_checksum_async(file.content)

        async with self.ledger.lock(file_id):
            number = await self.ledger.next_version(file_id)
            if require_existing and number == 1:
                # Deleted while we were waiting for the lock
                raise DocumentNotFoundError(file_id)

            version = FileVersion(
                file_id=file_id,
                version=number,
                filename=sanitize_name(file.filename),
                size=file.size,
                checksum=checksum,
                uploaded_at=datetime.now(timezone.utc),
                uploaded_by=user_id,
                changes=changes,
                metadata=VersionMetadata(category=category, tags=tags, mime_type=file.mime_type),
            )
            await self.store.put_object(
                version.storage_key, file.content, version.metadata.mime_type, object_metadata(version)
            )
            await self.ledger.append(version)

        logger.info(
            "file_uploaded",
            file_id=file_id,
            version=number,
            filename=version.filename,
            size=version.size,
            user_id=user_id,
        )
        return version

    async def rollback_to_version(self, file_id: str, version: int, user_id: str) -> FileVersion:
        """Copy ``version`` forward as a new version; history is never rewritten."""
        if await self.ledger.get_version(file_id, version) is None:
            raise VersionNotFoundError(file_id, version)
        await self.permissions.require(file_id, user_id, "write")

        async with self.ledger.lock(file_id):
            target = await self.ledger.get_version(file_id, version)
            if target is None:
                raise VersionNotFoundError(file_id, version)

            rolled = FileVersion(
                file_id=file_id,
                version=await self.ledger.next_version(file_id),
                filename=target.filename,
                size=target.size,
                checksum=target.checksum,
                uploaded_at=datetime.now(timezone.utc),
                uploaded_by=user_id,
                changes=f"Restored version {version}",
                metadata=target.metadata.model_copy(update={"rolled_back_from": version}),
            )
            metadata = object_metadata(rolled)
            # REPLACE drops the source headers, so the content type goes along explicitly
            metadata["Content-Type"] = target.metadata.mime_type
            await self.store.copy_object(target.storage_key, rolled.storage_key, metadata)
            await self.ledger.append(rolled)

        logger.info(
            "file_rolled_back",
            file_id=file_id,
            source_version=version,
            new_version=rolled.version,
            user_id=user_id,
        )
        return rolled

    async def bulk_upload(
        self,
        files: Iterable[IncomingFile],
        user_id: str,
        category: str = DEFAULT_CATEGORY,
        tags: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BulkUploadResult:
        """Upload many files through a fixed-size worker pool.

        One file's failure never aborts the batch. Cancelling the call stops
        dispatch of queued files; uploads already in flight still finish.
        """
        files = list(files)
        result = BulkUploadResult(total=len(files))
        if not files:
            return result

        queue: asyncio.Queue[IncomingFile] = asyncio.Queue()
        for file in files:
            queue.put_nowait(file)

        async def _settle(file: IncomingFile) -> None:
            task = asyncio.ensure_future(self.upload_file(file, user_id, category, tags))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            try:
                version = await asyncio.shield(task)
            except asyncio.CancelledError:
                # The upload outlives the batch; nobody else will read its outcome
                task.add_done_callback(functools.partial(_log_orphaned_upload, file.filename))
                raise
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.warning("bulk_upload_item_failed", filename=file.filename, error=error)
                result.failed.append(BulkUploadFailure(filename=file.filename, error=error))
            else:
                result.success.append(version)

            result.processed += 1
            await _report_progress(on_progress, result.processed / result.total * 100)

        async def _worker() -> None:
            while True:
                try:
                    file = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await _settle(file)

        workers = min(self.concurrency, len(files))
        await asyncio.gather(*(_worker() for _ in range(workers)))

        logger.info(
            "bulk_upload_complete",
            total=result.total,
            succeeded=len(result.success),
            failed=len(result.failed),
            user_id=user_id,
        )
        return result


async def _report_progress(on_progress: ProgressCallback | None, percent: float) -> None:
    if on_progress is None:
        return
    try:
        outcome = on_progress(percent)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        logger.warning("bulk_progress_callback_failed", error=str(e))


def _log_orphaned_upload(filename: str, task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(
            "bulk_upload_item_failed_after_cancel",
            filename=filename,
            error=str(error) or type(error).__name__,
        )
