"""Annotation store: comments, highlights, drawings and text notes per file.

Annotations belong to the logical file, not to a version, so they survive
re-uploads and rollbacks. Each annotation carries a flat thread of replies.
Update, delete and reply report a missing annotation as ``None``/``False``
rather than raising; callers retry them freely.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from modules.document_vault.checksum import new_annotation_id, new_reply_id
from modules.document_vault.errors import InvalidAnnotationError
from modules.document_vault.ledger import FileLocks
from modules.document_vault.schemas import (
    ANNOTATION_TYPES,
    MUTABLE_ANNOTATION_FIELDS,
    AnnotationReply,
    FileAnnotation,
    Position,
    annotation_adapter,
)

logger = structlog.get_logger()


def build_annotation(
    file_id: str,
    user_id: str,
    type: str,
    content: Any,
    position: Position | dict | None = None,
) -> FileAnnotation:
    """Validate a new annotation; ``created_at`` and ``updated_at`` are equal."""
    if type not in ANNOTATION_TYPES:
        raise InvalidAnnotationError(
            f"Unknown annotation type {type!r}; expected one of {ANNOTATION_TYPES}"
        )
    now = datetime.now(timezone.utc)
    try:
        return annotation_adapter.validate_python({
            "id": new_annotation_id(),
            "file_id": file_id,
            "user_id": user_id,
            "type": type,
            "content": content,
            "position": position,
            "created_at": now,
            "updated_at": now,
        })
    except ValidationError as e:
        raise InvalidAnnotationError(f"Invalid {type} annotation: {e}") from e


def apply_updates(annotation: FileAnnotation, updates: dict[str, Any]) -> FileAnnotation:
    """Return a copy with only ``content``/``position`` changed and a fresh ``updated_at``."""
    data = annotation.model_dump()
    for field in MUTABLE_ANNOTATION_FIELDS:
        if field in updates:
            data[field] = updates[field]
    data["updated_at"] = datetime.now(timezone.utc)
    try:
        return annotation_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidAnnotationError(f"Invalid update for annotation {annotation.id}: {e}") from e


def build_reply(user_id: str, content: str) -> AnnotationReply:
    try:
        return AnnotationReply(
            id=new_reply_id(),
            user_id=user_id,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
    except ValidationError as e:
        raise InvalidAnnotationError(f"Invalid reply: {e}") from e


def with_reply(annotation: FileAnnotation, reply: AnnotationReply) -> FileAnnotation:
    """Copy of ``annotation`` with ``reply`` appended; ``updated_at`` is left alone."""
    return annotation.model_copy(update={"replies": [*annotation.replies, reply]})


class AnnotationStore(ABC):
    def __init__(self) -> None:
        self.locks = FileLocks()

    @abstractmethod
    async def add_annotation(
        self,
        file_id: str,
        user_id: str,
        type: str,
        content: Any,
        position: Position | dict | None = None,
    ) -> FileAnnotation: ...

    @abstractmethod
    async def get_annotations(self, file_id: str) -> list[FileAnnotation]:
        """Annotations in insertion order."""

    @abstractmethod
    async def update_annotation(
        self, annotation_id: str, file_id: str, updates: dict[str, Any]
    ) -> FileAnnotation | None: ...

    @abstractmethod
    async def delete_annotation(self, annotation_id: str, file_id: str) -> bool: ...

    @abstractmethod
    async def add_annotation_reply(
        self, annotation_id: str, file_id: str, user_id: str, content: str
    ) -> AnnotationReply | None:
        """Append a reply to an annotation's thread; None if the annotation is gone."""

    async def get_annotation(self, file_id: str, annotation_id: str) -> FileAnnotation | None:
        for annotation in await self.get_annotations(file_id):
            if annotation.id == annotation_id:
                return annotation
        return None

    @abstractmethod
    async def remove_all(self, file_id: str) -> None: ...


class InMemoryAnnotationStore(AnnotationStore):
    def __init__(self) -> None:
        super().__init__()
        self._annotations: dict[str, list[FileAnnotation]] = {}

    async def add_annotation(self, file_id, user_id, type, content, position=None):
        annotation = build_annotation(file_id, user_id, type, content, position)
        async with self.locks.get(file_id):
            self._annotations.setdefault(file_id, []).append(annotation)
        logger.info("annotation_added", file_id=file_id, annotation_id=annotation.id, type=type)
        return annotation

    async def get_annotations(self, file_id):
        return list(self._annotations.get(file_id, ()))

    async def update_annotation(self, annotation_id, file_id, updates):
        if file_id not in self._annotations:
            return None
        async with self.locks.get(file_id):
            annotations = self._annotations.get(file_id)
            if not annotations:
                return None
            for index, existing in enumerate(annotations):
                if existing.id == annotation_id:
                    updated = apply_updates(existing, updates)
                    annotations[index] = updated
                    return updated
        return None

    async def delete_annotation(self, annotation_id, file_id):
        if file_id not in self._annotations:
            return False
        async with self.locks.get(file_id):
            annotations = self._annotations.get(file_id)
            if not annotations:
                return False
            remaining = [a for a in annotations if a.id != annotation_id]
            if len(remaining) == len(annotations):
                return False
            self._annotations[file_id] = remaining
        logger.info("annotation_deleted", file_id=file_id, annotation_id=annotation_id)
        return True

    async def add_annotation_reply(self, annotation_id, file_id, user_id, content):
        if file_id not in self._annotations:
            return None
        reply = build_reply(user_id, content)
        async with self.locks.get(file_id):
            annotations = self._annotations.get(file_id) or []
            for index, existing in enumerate(annotations):
                if existing.id == annotation_id:
                    annotations[index] = with_reply(existing, reply)
                    break
            else:
                return None
        logger.info("annotation_reply_added", file_id=file_id, annotation_id=annotation_id, reply_id=reply.id)
        return reply

    async def remove_all(self, file_id):
        async with self.locks.get(file_id):
            self._annotations.pop(file_id, None)
        self.locks.discard(file_id)
