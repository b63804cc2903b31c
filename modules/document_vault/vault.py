"""DocumentVault: wires the vault components together and owns deletion."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.document_vault.annotations import AnnotationStore, InMemoryAnnotationStore
from modules.document_vault.errors import DocumentNotFoundError, PartialDeleteError, StorageError
from modules.document_vault.keys import file_prefix
from modules.document_vault.ledger import InMemoryVersionLedger, VersionLedger
from modules.document_vault.metadata import MetadataAssembler
from modules.document_vault.permissions import OwnerPermissionGuard, PermissionGuard
from modules.document_vault.retrieval import RetrievalService
from modules.document_vault.schemas import (
    AnnotationReply,
    BulkUploadResult,
    FileAnnotation,
    FileMetadata,
    FilePermissions,
    FileVersion,
    IncomingFile,
    Position,
)
from modules.document_vault.search import FileSearch, SearchFilters
from modules.document_vault.sql_backend import SqlAnnotationStore, SqlPermissionGuard, SqlVersionLedger
from modules.document_vault.storage import ObjectStoreClient
from modules.document_vault.uploads import DEFAULT_CATEGORY, ProgressCallback, UploadCoordinator
from shared.config import Settings
from shared.database import get_session_factory

logger = structlog.get_logger()


class DocumentVault:
    """Single entry point for the versioned document store."""

    def __init__(
        self,
        store: ObjectStoreClient,
        ledger: VersionLedger | None = None,
        annotations: AnnotationStore | None = None,
        permissions: PermissionGuard | None = None,
        bulk_concurrency: int = 8,
        url_expiry_seconds: int = 3600,
    ):
        self.store = store
        self.ledger = ledger or InMemoryVersionLedger()
        self.annotations = annotations or InMemoryAnnotationStore()
        self.permissions = permissions or OwnerPermissionGuard()

        self.uploads = UploadCoordinator(store, self.ledger, self.permissions, bulk_concurrency)
        self.retrieval = RetrievalService(store, self.ledger, self.permissions, url_expiry_seconds)
        self.assembler = MetadataAssembler(self.ledger, self.annotations, self.permissions)
        self.search = FileSearch(self.ledger, self.assembler)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> DocumentVault:
        store = ObjectStoreClient.from_settings(settings)
        if settings.metadata_backend == "database":
            factory = session_factory or get_session_factory()
            ledger = SqlVersionLedger(factory)
            annotations = SqlAnnotationStore(factory)
            permissions = SqlPermissionGuard(factory)
        else:
            ledger = InMemoryVersionLedger()
            annotations = InMemoryAnnotationStore()
            permissions = OwnerPermissionGuard()
        return cls(
            store,
            ledger,
            annotations,
            permissions,
            bulk_concurrency=settings.bulk_upload_concurrency,
            url_expiry_seconds=settings.signed_url_expiry_seconds,
        )

    # -- uploads and versions ----------------------------------------------

    async def upload_file(
        self,
        file: IncomingFile,
        user_id: str,
        category: str = DEFAULT_CATEGORY,
        tags: list[str] | None = None,
    ) -> FileVersion:
        return await self.uploads.upload_file(file, user_id, category, tags)

    async def add_version(
        self,
        file_id: str,
        file: IncomingFile,
        user_id: str,
        category: str | None = None,
        tags: list[str] | None = None,
        changes: str | None = None,
    ) -> FileVersion:
        return await self.uploads.add_version(file_id, file, user_id, category, tags, changes)

    async def bulk_upload(
        self,
        files: list[IncomingFile],
        user_id: str,
        category: str = DEFAULT_CATEGORY,
        tags: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BulkUploadResult:
        return await self.uploads.bulk_upload(files, user_id, category, tags, on_progress)

    async def rollback_to_version(self, file_id: str, version: int, user_id: str) -> FileVersion:
        return await self.uploads.rollback_to_version(file_id, version, user_id)

    async def get_file_versions(self, file_id: str) -> list[FileVersion]:
        return await self.ledger.get_versions(file_id)

    async def get_file_version(self, file_id: str, version: int) -> FileVersion | None:
        return await self.ledger.get_version(file_id, version)

    # -- annotations -------------------------------------------------------

    async def add_annotation(
        self,
        file_id: str,
        user_id: str,
        type: str,
        content: Any,
        position: Position | dict | None = None,
    ) -> FileAnnotation:
        """Annotate an existing file; the author needs read access.

        Runs under the file's ledger lock so a concurrent ``delete_file``
        either sees the annotation and removes it or runs first and makes
        this call raise ``DocumentNotFoundError``.
        """
        if await self.ledger.latest(file_id) is None:
            raise DocumentNotFoundError(file_id)
        async with self.ledger.lock(file_id):
            if await self.ledger.latest(file_id) is None:
                raise DocumentNotFoundError(file_id)
            await self.permissions.require(file_id, user_id, "read")
            return await self.annotations.add_annotation(file_id, user_id, type, content, position)

    async def get_annotations(
        self, file_id: str, user_id: str | None = None
    ) -> list[FileAnnotation]:
        """Annotations in insertion order. A given ``user_id`` must hold read access."""
        if user_id is not None and await self.ledger.latest(file_id) is not None:
            await self.permissions.require(file_id, user_id, "read")
        return await self.annotations.get_annotations(file_id)

    async def update_annotation(
        self,
        annotation_id: str,
        file_id: str,
        updates: dict[str, Any],
        user_id: str | None = None,
    ) -> FileAnnotation | None:
        if not await self._may_change_annotation(annotation_id, file_id, user_id):
            return None
        return await self.annotations.update_annotation(annotation_id, file_id, updates)

    async def delete_annotation(
        self, annotation_id: str, file_id: str, user_id: str | None = None
    ) -> bool:
        if not await self._may_change_annotation(annotation_id, file_id, user_id):
            return False
        return await self.annotations.delete_annotation(annotation_id, file_id)

    async def _may_change_annotation(
        self, annotation_id: str, file_id: str, user_id: str | None
    ) -> bool:
        """False for a missing annotation. Raises unless ``user_id`` wrote it or holds write."""
        annotation = await self.annotations.get_annotation(file_id, annotation_id)
        if annotation is None:
            return False
        if user_id is not None and user_id != annotation.user_id:
            await self.permissions.require(file_id, user_id, "write")
        return True

    async def add_annotation_reply(
        self, file_id: str, annotation_id: str, user_id: str, content: str
    ) -> AnnotationReply | None:
        """Reply to an annotation; the author needs read access.

        Returns None when the annotation does not exist.
        """
        if await self.ledger.latest(file_id) is None:
            raise DocumentNotFoundError(file_id)
        async with self.ledger.lock(file_id):
            if await self.ledger.latest(file_id) is None:
                raise DocumentNotFoundError(file_id)
            await self.permissions.require(file_id, user_id, "read")
            return await self.annotations.add_annotation_reply(
                annotation_id, file_id, user_id, content
            )

    # -- reads -------------------------------------------------------------

    async def get_file_metadata(
        self, file_id: str, user_id: str | None = None
    ) -> FileMetadata | None:
        return await self.assembler.get_file_metadata(file_id, user_id)

    async def get_signed_download_url(
        self, file_id: str, version: int | None = None, user_id: str | None = None
    ) -> str:
        return await self.retrieval.get_signed_download_url(file_id, version, user_id)

    async def download(
        self, file_id: str, version: int | None = None, user_id: str | None = None
    ) -> bytes:
        return await self.retrieval.download(file_id, version, user_id)

    async def search_files(
        self, query: str, user_id: str, filters: SearchFilters | None = None
    ) -> list[FileMetadata]:
        return await self.search.search_files(query, user_id, filters)

    # -- sharing -----------------------------------------------------------

    async def grant_access(
        self, file_id: str, capability: str, user_id: str, granted_by: str
    ) -> FilePermissions:
        if await self.ledger.latest(file_id) is None:
            raise DocumentNotFoundError(file_id)
        return await self.permissions.grant(file_id, capability, user_id, granted_by)

    async def revoke_access(
        self, file_id: str, capability: str, user_id: str, revoked_by: str
    ) -> FilePermissions:
        if await self.ledger.latest(file_id) is None:
            raise DocumentNotFoundError(file_id)
        return await self.permissions.revoke(file_id, capability, user_id, revoked_by)

    # -- deletion ----------------------------------------------------------

    async def delete_file(self, file_id: str, user_id: str) -> bool:
        """Remove every stored version, then the file's ledger, annotations and grants.

        Returns False for unknown files. Metadata is only cleared once every
        object delete has succeeded; otherwise ``PartialDeleteError`` names the
        versions still stored and the file stays fully visible. Object deletes
        are idempotent, so calling again finishes the job.
        """
        if await self.ledger.latest(file_id) is None:
            return False
        await self.permissions.require(file_id, user_id, "delete")

        async with self.ledger.lock(file_id):
            versions = await self.ledger.get_versions(file_id)
            if not versions:
                return False

            remaining = []
            for version in versions:
                try:
                    await self.store.delete_object(version.storage_key)
                except StorageError as e:
                    logger.error(
                        "version_delete_failed",
                        file_id=file_id,
                        version=version.version,
                        error=str(e),
                    )
                    remaining.append(version.version)
            if remaining:
                raise PartialDeleteError(file_id, remaining)

            await self.ledger.remove(file_id)
            await self.annotations.remove_all(file_id)
            await self.permissions.remove(file_id)

        self.ledger.locks.discard(file_id)
        logger.info("file_deleted", file_id=file_id, versions=len(versions), user_id=user_id)
        return True

    # -- consistency -------------------------------------------------------

    async def list_stored_objects(self, file_id: str) -> list[str]:
        """Object keys present in the store for every category the file used."""
        versions = await self.ledger.get_versions(file_id)
        if not versions:
            raise DocumentNotFoundError(file_id)
        keys: list[str] = []
        for prefix in sorted({file_prefix(v.metadata.category, file_id) for v in versions}):
            keys.extend(await self.store.list_objects(prefix))
        return keys

    async def verify_storage(self, file_id: str) -> dict:
        """Compare ledger keys with the store listing."""
        versions = await self.ledger.get_versions(file_id)
        expected = {v.storage_key for v in versions}
        stored = set(await self.list_stored_objects(file_id))
        missing = sorted(expected - stored)
        untracked = sorted(stored - expected)
        if missing or untracked:
            logger.warning(
                "storage_drift", file_id=file_id, missing=missing, untracked=untracked
            )
        return {
            "file_id": file_id,
            "consistent": not missing and not untracked,
            "missing": missing,
            "untracked": untracked,
        }
