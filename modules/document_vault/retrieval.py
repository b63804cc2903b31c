"""Retrieval: signed download links and verified downloads."""

from __future__ import annotations

import structlog

from modules.document_vault.checksum import compute_checksum_async
from modules.document_vault.errors import (
    ChecksumMismatchError,
    DocumentNotFoundError,
    VersionNotFoundError,
)
from modules.document_vault.ledger import VersionLedger
from modules.document_vault.permissions import PermissionGuard
from modules.document_vault.schemas import FileVersion
from modules.document_vault.storage import ObjectStoreClient

logger = structlog.get_logger()


class RetrievalService:
    def __init__(
        self,
        store: ObjectStoreClient,
        ledger: VersionLedger,
        permissions: PermissionGuard,
        expiry_seconds: int = 3600,
    ):
        self.store = store
        self.ledger = ledger
        self.permissions = permissions
        self.expiry_seconds = expiry_seconds

    async def resolve(
        self, file_id: str, version: int | None = None, user_id: str | None = None
    ) -> FileVersion:
        """Pick the requested version, or the latest when ``version`` is None.

        Read access is checked only when a ``user_id`` is supplied.
        """
        versions = await self.ledger.get_versions(file_id)
        if not versions:
            raise DocumentNotFoundError(file_id)

        if version is None:
            target = versions[-1]
        else:
            target = next((v for v in versions if v.version == version), None)
            if target is None:
                raise VersionNotFoundError(file_id, version)

        if user_id is not None:
            await self.permissions.require(file_id, user_id, "read")
        return target

    async def get_signed_download_url(
        self, file_id: str, version: int | None = None, user_id: str | None = None
    ) -> str:
        """Time-limited GET link; the lifetime comes from configuration only."""
        target = await self.resolve(file_id, version, user_id)
        url = await self.store.presigned_get_url(target.storage_key, self.expiry_seconds)
        logger.info(
            "download_url_issued",
            file_id=file_id,
            version=target.version,
            expires_in=self.expiry_seconds,
        )
        return url

    async def download(
        self, file_id: str, version: int | None = None, user_id: str | None = None
    ) -> bytes:
        """Fetch the stored bytes and verify them against the recorded checksum."""
        target = await self.resolve(file_id, version, user_id)
        content = await self.store.get_object(target.storage_key)
        actual = await compute_checksum_async(content)
        if actual != target.checksum:
            logger.error(
                "checksum_mismatch",
                file_id=file_id,
                version=target.version,
                expected=target.checksum,
                actual=actual,
            )
            raise ChecksumMismatchError(target.storage_key, target.checksum, actual)
        return content
