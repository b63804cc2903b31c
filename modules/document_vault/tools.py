"""Document vault tool implementations.

Thin adapters from tool-call arguments (JSON, base64 file bodies) to
``DocumentVault`` calls; results come back as JSON-ready dicts.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from typing import Any

from modules.document_vault.schemas import IncomingFile
from modules.document_vault.search import SearchFilters
from modules.document_vault.vault import DocumentVault


def _decode_file(filename: str, content_base64: str, content_type: str | None = None) -> IncomingFile:
    try:
        content = base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 content for {filename}: {e}") from e
    return IncomingFile(filename=filename, content=content, content_type=content_type)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise ValueError("user_id is required for this operation")
    return user_id


class DocumentVaultTools:
    """Tool implementations backed by a DocumentVault."""

    def __init__(self, vault: DocumentVault):
        self.vault = vault

    async def upload_file(
        self,
        filename: str,
        content_base64: str,
        category: str = "general",
        tags: list[str] | None = None,
        content_type: str | None = None,
        user_id: str | None = None,
    ) -> dict:
        """Upload a new document as version 1."""
        file = _decode_file(filename, content_base64, content_type)
        version = await self.vault.upload_file(file, _require_user(user_id), category, tags)
        return version.model_dump(mode="json")

    async def add_version(
        self,
        file_id: str,
        filename: str,
        content_base64: str,
        category: str | None = None,
        tags: list[str] | None = None,
        content_type: str | None = None,
        changes: str | None = None,
        user_id: str | None = None,
    ) -> dict:
        file = _decode_file(filename, content_base64, content_type)
        version = await self.vault.add_version(
            file_id, file, _require_user(user_id), category, tags, changes
        )
        return version.model_dump(mode="json")

    async def bulk_upload(
        self,
        files: list[dict],
        category: str = "general",
        tags: list[str] | None = None,
        user_id: str | None = None,
    ) -> dict:
        """Upload several documents; per-file failures are reported, not raised."""
        incoming = [
            _decode_file(f["filename"], f["content_base64"], f.get("content_type"))
            for f in files
        ]
        result = await self.vault.bulk_upload(incoming, _require_user(user_id), category, tags)
        return result.model_dump(mode="json")

    async def list_versions(self, file_id: str, user_id: str | None = None) -> dict:
        meta = await self.vault.get_file_metadata(file_id, user_id)
        versions = meta.versions if meta else []
        return {
            "file_id": file_id,
            "count": len(versions),
            "versions": [v.model_dump(mode="json") for v in versions],
        }

    async def rollback_to_version(
        self, file_id: str, version: int, user_id: str | None = None
    ) -> dict:
        rolled = await self.vault.rollback_to_version(file_id, int(version), _require_user(user_id))
        return rolled.model_dump(mode="json")

    async def add_annotation(
        self,
        file_id: str,
        type: str,
        content: Any,
        position: dict | None = None,
        user_id: str | None = None,
    ) -> dict:
        annotation = await self.vault.add_annotation(
            file_id, _require_user(user_id), type, content, position
        )
        return annotation.model_dump(mode="json")

    async def list_annotations(self, file_id: str, user_id: str | None = None) -> dict:
        annotations = await self.vault.get_annotations(file_id, user_id)
        return {
            "file_id": file_id,
            "count": len(annotations),
            "annotations": [a.model_dump(mode="json") for a in annotations],
        }

    async def update_annotation(
        self,
        annotation_id: str,
        file_id: str,
        user_id: str | None = None,
        **updates: Any,
    ) -> dict:
        """Change ``content`` and/or ``position``; anything else is ignored."""
        annotation = await self.vault.update_annotation(annotation_id, file_id, updates, user_id)
        if annotation is None:
            return {"annotation_id": annotation_id, "updated": False}
        return {"annotation_id": annotation_id, "updated": True, "annotation": annotation.model_dump(mode="json")}

    async def delete_annotation(
        self, annotation_id: str, file_id: str, user_id: str | None = None
    ) -> dict:
        deleted = await self.vault.delete_annotation(annotation_id, file_id, user_id)
        return {"annotation_id": annotation_id, "deleted": deleted}

    async def add_annotation_reply(
        self,
        file_id: str,
        annotation_id: str,
        content: str,
        user_id: str | None = None,
    ) -> dict:
        reply = await self.vault.add_annotation_reply(
            file_id, annotation_id, _require_user(user_id), content
        )
        if reply is None:
            return {"annotation_id": annotation_id, "added": False}
        return {"annotation_id": annotation_id, "added": True, "reply": reply.model_dump(mode="json")}

    async def get_file_metadata(self, file_id: str, user_id: str | None = None) -> dict | None:
        meta = await self.vault.get_file_metadata(file_id, user_id)
        return meta.model_dump(mode="json") if meta else None

    async def get_download_url(
        self, file_id: str, version: int | None = None, user_id: str | None = None
    ) -> dict:
        url = await self.vault.get_signed_download_url(
            file_id, int(version) if version is not None else None, user_id
        )
        return {
            "file_id": file_id,
            "version": version,
            "url": url,
            "expires_in": self.vault.retrieval.expiry_seconds,
        }

    async def delete_file(self, file_id: str, user_id: str | None = None) -> dict:
        deleted = await self.vault.delete_file(file_id, _require_user(user_id))
        return {"file_id": file_id, "deleted": deleted}

    async def share_file(
        self,
        file_id: str,
        capability: str,
        target_user_id: str,
        user_id: str | None = None,
    ) -> dict:
        permissions = await self.vault.grant_access(
            file_id, capability, target_user_id, _require_user(user_id)
        )
        return {"file_id": file_id, "permissions": permissions.model_dump(mode="json")}

    async def unshare_file(
        self,
        file_id: str,
        capability: str,
        target_user_id: str,
        user_id: str | None = None,
    ) -> dict:
        permissions = await self.vault.revoke_access(
            file_id, capability, target_user_id, _require_user(user_id)
        )
        return {"file_id": file_id, "permissions": permissions.model_dump(mode="json")}

    async def search_files(
        self,
        query: str = "",
        category: str | None = None,
        tags: list[str] | None = None,
        uploaded_after: str | None = None,
        uploaded_before: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        user_id: str | None = None,
    ) -> dict:
        filters = SearchFilters(
            category=category,
            tags=tags,
            uploaded_after=_parse_time(uploaded_after),
            uploaded_before=_parse_time(uploaded_before),
            min_size=min_size,
            max_size=max_size,
        )
        results = await self.vault.search_files(query, _require_user(user_id), filters)
        return {
            "count": len(results),
            "files": [
                {
                    "file_id": m.id,
                    "filename": m.filename,
                    "category": m.category,
                    "tags": m.tags,
                    "size": m.size,
                    "versions": len(m.versions),
                    "uploaded_at": m.uploaded_at.isoformat(),
                }
                for m in results
            ],
        }

    async def verify_storage(self, file_id: str, user_id: str | None = None) -> dict:
        return await self.vault.verify_storage(file_id)
