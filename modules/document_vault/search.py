"""Linear file search over the ledger.

There is no index: every known file id is assembled and filtered, which is
fine for the in-memory backend and small SQL deployments.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from modules.document_vault.ledger import VersionLedger
from modules.document_vault.metadata import MetadataAssembler
from modules.document_vault.schemas import FileMetadata


@dataclass
class SearchFilters:
    category: str | None = None
    tags: list[str] | None = None
    uploaded_after: datetime | None = None
    uploaded_before: datetime | None = None
    min_size: int | None = None
    max_size: int | None = None

    def matches(self, meta: FileMetadata) -> bool:
        if self.category and meta.category != self.category:
            return False
        if self.tags and not set(self.tags) <= set(meta.tags):
            return False
        if self.uploaded_after and meta.uploaded_at < self.uploaded_after:
            return False
        if self.uploaded_before and meta.uploaded_at > self.uploaded_before:
            return False
        if self.min_size is not None and meta.size < self.min_size:
            return False
        if self.max_size is not None and meta.size > self.max_size:
            return False
        return True


def _matches_query(query: str, meta: FileMetadata) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = [meta.filename, meta.original_name, *meta.tags]
    return any(needle in value.lower() for value in haystack)


class FileSearch:
    def __init__(self, ledger: VersionLedger, assembler: MetadataAssembler):
        self.ledger = ledger
        self.assembler = assembler

    async def search_files(
        self,
        query: str,
        user_id: str,
        filters: SearchFilters | None = None,
    ) -> list[FileMetadata]:
        """Files readable by ``user_id`` whose name or tags contain ``query``."""
        filters = filters or SearchFilters()
        results = []
        for file_id in await self.ledger.file_ids():
            if not await self.assembler.permissions.check(file_id, user_id, "read"):
                continue
            meta = await self.assembler.get_file_metadata(file_id)
            if meta is None:
                continue
            if _matches_query(query, meta) and filters.matches(meta):
                results.append(meta)
        results.sort(key=lambda m: m.uploaded_at, reverse=True)
        return results
