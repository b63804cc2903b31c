"""SQLAlchemy models."""

from shared.models.base import Base
from shared.models.document import (
    DocumentAnnotationRecord,
    DocumentGrant,
    DocumentVersionRecord,
)

__all__ = [
    "Base",
    "DocumentAnnotationRecord",
    "DocumentGrant",
    "DocumentVersionRecord",
]
