"""Metadata assembler: the composite read view of one logical file."""

from __future__ import annotations

from modules.document_vault.annotations import AnnotationStore
from modules.document_vault.ledger import VersionLedger
from modules.document_vault.permissions import PermissionGuard
from modules.document_vault.schemas import FileMetadata, FilePermissions


class MetadataAssembler:
    def __init__(
        self,
        ledger: VersionLedger,
        annotations: AnnotationStore,
        permissions: PermissionGuard,
    ):
        self.ledger = ledger
        self.annotations = annotations
        self.permissions = permissions

    async def get_file_metadata(
        self, file_id: str, user_id: str | None = None
    ) -> FileMetadata | None:
        """Latest version's fields plus full history, annotations and grants.

        Returns None for files that never existed or were deleted. When a
        ``user_id`` is given it must hold read access.
        """
        versions = await self.ledger.get_versions(file_id)
        if not versions:
            return None
        if user_id is not None:
            await self.permissions.require(file_id, user_id, "read")

        latest = versions[-1]
        permissions = await self.permissions.get_permissions(file_id)
        if not (permissions.read or permissions.write or permissions.delete):
            # No grants recorded: fall back to the first uploader as owner
            permissions = FilePermissions.owner(versions[0].uploaded_by)

        return FileMetadata(
            id=file_id,
            filename=latest.filename,
            original_name=versions[0].filename,
            mime_type=latest.metadata.mime_type,
            size=latest.size,
            checksum=latest.checksum,
            uploaded_by=latest.uploaded_by,
            uploaded_at=latest.uploaded_at,
            tags=list(latest.metadata.tags),
            category=latest.metadata.category,
            versions=versions,
            annotations=await self.annotations.get_annotations(file_id),
            permissions=permissions,
        )
