"""Document vault records: versions, annotations and the composite metadata view."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from modules.document_vault.keys import build_storage_key, guess_mime_type

CAPABILITIES = ("read", "write", "delete")
ANNOTATION_TYPES = ("comment", "highlight", "drawing", "text")


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


class VersionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    tags: list[str] = []
    mime_type: str
    rolled_back_from: int | None = None


class FileVersion(BaseModel):
    """One immutable stored revision of a logical file."""

    model_config = ConfigDict(frozen=True)

    file_id: str
    version: int = Field(ge=1)
    filename: str
    size: int = Field(ge=0)
    checksum: str
    uploaded_at: datetime
    uploaded_by: str
    changes: str | None = None
    metadata: VersionMetadata

    @property
    def storage_key(self) -> str:
        return build_storage_key(self.metadata.category, self.file_id, self.version, self.filename)


@dataclass
class IncomingFile:
    """Raw upload payload handed to the coordinator."""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def mime_type(self) -> str:
        return self.content_type or guess_mime_type(self.filename)


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


class Position(BaseModel):
    x: float
    y: float
    width: float | None = None
    height: float | None = None


class Point(BaseModel):
    x: float
    y: float


class HighlightContent(BaseModel):
    text: str
    color: str = "#ffeb3b"


class DrawingContent(BaseModel):
    strokes: list[list[Point]] = Field(min_length=1)
    color: str = "#000000"
    stroke_width: float = Field(default=2.0, gt=0)


class TextContent(BaseModel):
    text: str
    font_size: int = Field(default=12, gt=0)


def _text_payload(value: object) -> object:
    # Plain strings are accepted for text-bearing annotation kinds
    if isinstance(value, str):
        return {"text": value}
    return value


class AnnotationReply(BaseModel):
    id: str
    user_id: str
    content: str = Field(min_length=1)
    created_at: datetime


class AnnotationBase(BaseModel):
    id: str
    file_id: str
    user_id: str
    position: Position | None = None
    replies: list[AnnotationReply] = []
    created_at: datetime
    updated_at: datetime


class CommentAnnotation(AnnotationBase):
    type: Literal["comment"] = "comment"
    content: str = Field(min_length=1)


class HighlightAnnotation(AnnotationBase):
    type: Literal["highlight"] = "highlight"
    content: HighlightContent

    @field_validator("content", mode="before")
    @classmethod
    def coerce_text_content(cls, value: object) -> object:
        return _text_payload(value)


class DrawingAnnotation(AnnotationBase):
    type: Literal["drawing"] = "drawing"
    content: DrawingContent


class TextAnnotation(AnnotationBase):
    type: Literal["text"] = "text"
    content: TextContent

    @field_validator("content", mode="before")
    @classmethod
    def coerce_text_content(cls, value: object) -> object:
        return _text_payload(value)


FileAnnotation = Annotated[
    Union[CommentAnnotation, HighlightAnnotation, DrawingAnnotation, TextAnnotation],
    Field(discriminator="type"),
]

annotation_adapter: TypeAdapter[FileAnnotation] = TypeAdapter(FileAnnotation)

# Fields callers may change after creation
MUTABLE_ANNOTATION_FIELDS = ("content", "position")


# ---------------------------------------------------------------------------
# Composite views
# ---------------------------------------------------------------------------


class FilePermissions(BaseModel):
    read: set[str] = set()
    write: set[str] = set()
    delete: set[str] = set()

    @classmethod
    def owner(cls, user_id: str) -> FilePermissions:
        return cls(read={user_id}, write={user_id}, delete={user_id})

    def allows(self, user_id: str | None, capability: str) -> bool:
        return user_id is not None and user_id in getattr(self, capability)


class FileMetadata(BaseModel):
    """Read-only view of a logical file assembled from ledger, annotations and grants."""

    id: str
    filename: str
    original_name: str
    mime_type: str
    size: int
    checksum: str
    uploaded_by: str
    uploaded_at: datetime
    tags: list[str]
    category: str
    is_public: bool = False
    versions: list[FileVersion]
    annotations: list[FileAnnotation]
    permissions: FilePermissions


class BulkUploadFailure(BaseModel):
    filename: str
    error: str


class BulkUploadResult(BaseModel):
    success: list[FileVersion] = []
    failed: list[BulkUploadFailure] = []
    total: int = 0
    processed: int = 0
