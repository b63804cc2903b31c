"""Version ledger, annotation and access grant models for stored documents."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shared.models.base import Base


class DocumentVersionRecord(Base):
    __tablename__ = "document_versions"
    __table_args__ = (UniqueConstraint("file_id", "version", name="uq_document_versions_file_version"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    file_id: Mapped[str] = mapped_column(String, index=True)
    version: Mapped[int] = mapped_column(Integer)

    filename: Mapped[str]
    size_bytes: Mapped[int] = mapped_column(Integer)
    checksum: Mapped[str] = mapped_column(String(64))

    category: Mapped[str]
    tags: Mapped[list] = mapped_column(JSON, default=list)
    mime_type: Mapped[str]
    rolled_back_from: Mapped[int | None] = mapped_column(Integer, default=None)
    changes: Mapped[str | None] = mapped_column(Text, default=None)

    uploaded_by: Mapped[str]
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class DocumentAnnotationRecord(Base):
    __tablename__ = "document_annotations"

    # Surrogate key keeps insertion order stable when timestamps collide
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String, unique=True)
    file_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str]
    type: Mapped[str]  # comment | highlight | drawing | text
    content: Mapped[dict] = mapped_column(JSON)  # {"value": <type-specific payload>}
    position: Mapped[dict | None] = mapped_column(JSON, default=None)
    replies: Mapped[list] = mapped_column(JSON, default=list)  # [{id, user_id, content, created_at}]
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class DocumentGrant(Base):
    __tablename__ = "document_grants"

    file_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    capability: Mapped[str] = mapped_column(String, primary_key=True)  # read | write | delete
    granted_by: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
