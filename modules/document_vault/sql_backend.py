"""SQL-backed ledger, annotation store and permission guard.

Selected with ``METADATA_BACKEND=database``. The per-file ``asyncio.Lock``
still serializes writers inside one process; the unique
``(file_id, version)`` constraint turns a cross-process race into a
``VersionConflictError`` instead of a duplicate version.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.document_vault.annotations import (
    AnnotationStore,
    apply_updates,
    build_annotation,
    build_reply,
)
from modules.document_vault.errors import VersionConflictError
from modules.document_vault.ledger import FileLocks, VersionLedger
from modules.document_vault.permissions import PermissionGuard
from modules.document_vault.schemas import (
    FileAnnotation,
    FilePermissions,
    FileVersion,
    VersionMetadata,
    annotation_adapter,
)
from shared.models.document import DocumentAnnotationRecord, DocumentGrant, DocumentVersionRecord

logger = structlog.get_logger()


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_version(record: DocumentVersionRecord) -> FileVersion:
    return FileVersion(
        file_id=record.file_id,
        version=record.version,
        filename=record.filename,
        size=record.size_bytes,
        checksum=record.checksum,
        uploaded_at=_utc(record.uploaded_at),
        uploaded_by=record.uploaded_by,
        changes=record.changes,
        metadata=VersionMetadata(
            category=record.category,
            tags=list(record.tags or []),
            mime_type=record.mime_type,
            rolled_back_from=record.rolled_back_from,
        ),
    )


def _to_annotation(record: DocumentAnnotationRecord) -> FileAnnotation:
    return annotation_adapter.validate_python({
        "id": record.id,
        "file_id": record.file_id,
        "user_id": record.user_id,
        "type": record.type,
        "content": record.content["value"],
        "position": record.position,
        "replies": record.replies or [],
        "created_at": _utc(record.created_at),
        "updated_at": _utc(record.updated_at),
    })


def _dump_annotation(annotation: FileAnnotation) -> tuple[dict, dict | None]:
    data = annotation.model_dump(mode="json")
    return {"value": data["content"]}, data["position"]


class SqlVersionLedger(VersionLedger):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: FileLocks | None = None,
    ):
        super().__init__(locks)
        self.session_factory = session_factory

    async def count(self, file_id):
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(DocumentVersionRecord)
                .where(DocumentVersionRecord.file_id == file_id)
            )
            return result.scalar_one()

    async def append(self, version):
        await self._check_sequence(version)
        async with self.session_factory() as session:
            session.add(DocumentVersionRecord(
                file_id=version.file_id,
                version=version.version,
                filename=version.filename,
                size_bytes=version.size,
                checksum=version.checksum,
                category=version.metadata.category,
                tags=list(version.metadata.tags),
                mime_type=version.metadata.mime_type,
                rolled_back_from=version.metadata.rolled_back_from,
                changes=version.changes,
                uploaded_by=version.uploaded_by,
                uploaded_at=version.uploaded_at,
            ))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.error(
                    "version_conflict", file_id=version.file_id, version=version.version
                )
                raise VersionConflictError(version.file_id, version.version) from e

    async def get_versions(self, file_id):
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentVersionRecord)
                .where(DocumentVersionRecord.file_id == file_id)
                .order_by(DocumentVersionRecord.version)
            )
            return [_to_version(r) for r in result.scalars().all()]

    async def get_version(self, file_id, version):
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentVersionRecord).where(
                    DocumentVersionRecord.file_id == file_id,
                    DocumentVersionRecord.version == version,
                )
            )
            record = result.scalar_one_or_none()
            return _to_version(record) if record else None

    async def file_ids(self):
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentVersionRecord.file_id).distinct().order_by(DocumentVersionRecord.file_id)
            )
            return list(result.scalars().all())

    async def remove(self, file_id):
        async with self.session_factory() as session:
            await session.execute(
                delete(DocumentVersionRecord).where(DocumentVersionRecord.file_id == file_id)
            )
            await session.commit()


class SqlAnnotationStore(AnnotationStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__()
        self.session_factory = session_factory

    async def add_annotation(self, file_id, user_id, type, content, position=None):
        annotation = build_annotation(file_id, user_id, type, content, position)
        stored_content, stored_position = _dump_annotation(annotation)
        async with self.session_factory() as session:
            session.add(DocumentAnnotationRecord(
                id=annotation.id,
                file_id=file_id,
                user_id=user_id,
                type=annotation.type,
                content=stored_content,
                position=stored_position,
                replies=[],
                created_at=annotation.created_at,
                updated_at=annotation.updated_at,
            ))
            await session.commit()
        logger.info("annotation_added", file_id=file_id, annotation_id=annotation.id, type=type)
        return annotation

    async def get_annotations(self, file_id):
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentAnnotationRecord)
                .where(DocumentAnnotationRecord.file_id == file_id)
                .order_by(DocumentAnnotationRecord.seq)
            )
            return [_to_annotation(r) for r in result.scalars().all()]

    async def _find(
        self, session: AsyncSession, annotation_id: str, file_id: str
    ) -> DocumentAnnotationRecord | None:
        result = await session.execute(
            select(DocumentAnnotationRecord).where(
                DocumentAnnotationRecord.id == annotation_id,
                DocumentAnnotationRecord.file_id == file_id,
            )
        )
        return result.scalar_one_or_none()

    async def _exists(self, annotation_id: str, file_id: str) -> bool:
        # Checked before taking a file lock so unknown ids never allocate one
        async with self.session_factory() as session:
            return await self._find(session, annotation_id, file_id) is not None

    async def update_annotation(self, annotation_id, file_id, updates):
        if not await self._exists(annotation_id, file_id):
            return None
        async with self.locks.get(file_id):
            async with self.session_factory() as session:
                record = await self._find(session, annotation_id, file_id)
                if record is None:
                    return None

                updated = apply_updates(_to_annotation(record), updates)
                record.content, record.position = _dump_annotation(updated)
                record.updated_at = updated.updated_at
                await session.commit()
                return updated

    async def delete_annotation(self, annotation_id, file_id):
        if not await self._exists(annotation_id, file_id):
            return False
        async with self.locks.get(file_id):
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(DocumentAnnotationRecord).where(
                        DocumentAnnotationRecord.id == annotation_id,
                        DocumentAnnotationRecord.file_id == file_id,
                    )
                )
                deleted = result.rowcount > 0
                await session.commit()
        if deleted:
            logger.info("annotation_deleted", file_id=file_id, annotation_id=annotation_id)
        return deleted

    async def add_annotation_reply(self, annotation_id, file_id, user_id, content):
        if not await self._exists(annotation_id, file_id):
            return None
        reply = build_reply(user_id, content)
        async with self.locks.get(file_id):
            async with self.session_factory() as session:
                record = await self._find(session, annotation_id, file_id)
                if record is None:
                    return None
                # Reassigned, not appended, so the JSON column is flagged dirty
                record.replies = [*(record.replies or []), reply.model_dump(mode="json")]
                await session.commit()
        logger.info(
            "annotation_reply_added", file_id=file_id, annotation_id=annotation_id, reply_id=reply.id
        )
        return reply

    async def remove_all(self, file_id):
        async with self.session_factory() as session:
            await session.execute(
                delete(DocumentAnnotationRecord).where(DocumentAnnotationRecord.file_id == file_id)
            )
            await session.commit()
        self.locks.discard(file_id)


class SqlPermissionGuard(PermissionGuard):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_permissions(self, file_id):
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentGrant).where(DocumentGrant.file_id == file_id)
            )
            permissions = FilePermissions()
            for grant in result.scalars().all():
                getattr(permissions, grant.capability).add(grant.user_id)
            return permissions

    async def owner_of(self, file_id):
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentGrant.user_id)
                .where(DocumentGrant.file_id == file_id, DocumentGrant.granted_by.is_(None))
                .order_by(DocumentGrant.created_at)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def _add(self, file_id, capability, user_id, granted_by):
        async with self.session_factory() as session:
            # Re-granting keeps the original row, including the owner marker
            if await session.get(DocumentGrant, (file_id, user_id, capability)) is not None:
                return
            session.add(DocumentGrant(
                file_id=file_id,
                user_id=user_id,
                capability=capability,
                granted_by=granted_by,
            ))
            await session.commit()

    async def _discard(self, file_id, capability, user_id):
        async with self.session_factory() as session:
            await session.execute(
                delete(DocumentGrant).where(
                    DocumentGrant.file_id == file_id,
                    DocumentGrant.capability == capability,
                    DocumentGrant.user_id == user_id,
                )
            )
            await session.commit()

    async def remove(self, file_id):
        async with self.session_factory() as session:
            await session.execute(delete(DocumentGrant).where(DocumentGrant.file_id == file_id))
            await session.commit()
