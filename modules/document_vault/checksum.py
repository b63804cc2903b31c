"""Content checksums and identifiers for files, versions and annotations."""

from __future__ import annotations

import asyncio
import hashlib
import uuid

# Payloads above this size are hashed off the event loop
INLINE_HASH_LIMIT = 1024 * 1024


def compute_checksum(content: bytes) -> str:
    """SHA-256 hex digest of the raw bytes."""
    return hashlib.sha256(content).hexdigest()


async def compute_checksum_async(content: bytes) -> str:
    if len(content) <= INLINE_HASH_LIMIT:
        return compute_checksum(content)
    return await asyncio.to_thread(compute_checksum, content)


def new_file_id() -> str:
    return f"file_{uuid.uuid4().hex}"


def new_annotation_id() -> str:
    return f"anno_{uuid.uuid4().hex}"


def new_reply_id() -> str:
    return f"reply_{uuid.uuid4().hex}"
