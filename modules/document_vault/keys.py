"""Object key layout and filename handling.

Every stored revision lives at ``{category}/{file_id}/v{version}/{filename}``.
"""

from __future__ import annotations

MIME_MAP = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "csv": "text/csv",
    "json": "application/json",
    "txt": "text/plain",
    "md": "text/markdown",
    "xml": "application/xml",
    "zip": "application/zip",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(filename: str) -> str:
    """Map a filename extension to a MIME type."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return MIME_MAP.get(ext, DEFAULT_MIME_TYPE)


def sanitize_name(name: str, fallback: str = "file") -> str:
    """Strip characters that would break the key layout (slashes included)."""
    safe = "".join(c if (c.isascii() and c.isalnum()) or c in "-_. " else "" for c in name)
    safe = safe.strip().replace(" ", "_").strip(".")
    return safe or fallback


def file_prefix(category: str, file_id: str) -> str:
    return f"{category}/{file_id}/"


def build_storage_key(category: str, file_id: str, version: int, filename: str) -> str:
    return f"{file_prefix(category, file_id)}v{version}/{filename}"
