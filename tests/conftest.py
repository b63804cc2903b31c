"""Shared test fixtures for the document vault test suite.

Provides an in-memory object store with failure injection and a vault
wired to it, so tests run without S3, MinIO or a database.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from modules.document_vault.errors import StorageReadError, StorageWriteError
from modules.document_vault.schemas import IncomingFile
from modules.document_vault.vault import DocumentVault


# ---------------------------------------------------------------------------
# Object store fake
# ---------------------------------------------------------------------------


class FakeObjectStore:
    """Dict-backed stand-in for ObjectStoreClient.

    ``fail_put`` / ``fail_delete`` decide per key whether a call raises;
    ``put_delay`` yields to the event loop mid-write so concurrent uploads
    interleave.
    """

    def __init__(self) -> None:
        self.bucket = "test-bucket"
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.fail_put: Callable[[str], bool] = lambda key: False
        self.fail_delete: Callable[[str], bool] = lambda key: False
        self.put_delay = 0.0
        self.active_puts = 0
        self.max_active_puts = 0
        self.calls: list[tuple[str, str]] = []

    async def ensure_bucket(self) -> None:
        self.calls.append(("ensure_bucket", self.bucket))

    async def put_object(self, key, data, content_type, metadata):
        self.calls.append(("put_object", key))
        self.active_puts += 1
        self.max_active_puts = max(self.max_active_puts, self.active_puts)
        try:
            if self.put_delay:
                await asyncio.sleep(self.put_delay)
            else:
                await asyncio.sleep(0)
            if self.fail_put(key):
                raise StorageWriteError(f"put_object failed for {key}: injected", key=key)
            self.objects[key] = bytes(data)
            self.content_types[key] = content_type
            self.metadata[key] = dict(metadata)
        finally:
            self.active_puts -= 1

    async def get_object(self, key):
        self.calls.append(("get_object", key))
        if key not in self.objects:
            raise StorageReadError(f"get_object failed for {key}: NoSuchKey", key=key)
        return self.objects[key]

    async def delete_object(self, key):
        self.calls.append(("delete_object", key))
        await asyncio.sleep(0)
        if self.fail_delete(key):
            raise StorageWriteError(f"delete_object failed for {key}: injected", key=key)
        # S3 deletes are idempotent
        self.objects.pop(key, None)
        self.metadata.pop(key, None)
        self.content_types.pop(key, None)

    async def list_objects(self, prefix):
        self.calls.append(("list_objects", prefix))
        return sorted(k for k in self.objects if k.startswith(prefix))

    async def copy_object(self, source_key, dest_key, metadata):
        self.calls.append(("copy_object", dest_key))
        if source_key not in self.objects:
            raise StorageWriteError(f"copy_object failed for {dest_key}: NoSuchKey", key=dest_key)
        self.objects[dest_key] = self.objects[source_key]
        self.content_types[dest_key] = metadata.get("Content-Type", "")
        self.metadata[dest_key] = dict(metadata)

    async def presigned_get_url(self, key, expires_seconds):
        self.calls.append(("presigned_get_object", key))
        return f"https://{self.bucket}.s3.test/{key}?X-Amz-Expires={expires_seconds}&X-Amz-Signature=sig"


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def vault(store):
    return DocumentVault(store, bulk_concurrency=4, url_expiry_seconds=3600)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def owner_id():
    return "u1"


@pytest.fixture
def other_user_id():
    return "u2"


@pytest.fixture
def make_file():
    """Factory for IncomingFile payloads."""

    def _make(
        filename: str = "invoice.pdf",
        content: bytes = b"%PDF-1.7 invoice #1001",
        content_type: str | None = None,
    ) -> IncomingFile:
        return IncomingFile(filename=filename, content=content, content_type=content_type)

    return _make


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_env(monkeypatch):
    """Minimal environment for ``get_settings()``; the cache is reset around the test."""
    from shared.config import get_settings

    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("AWS_S3_BUCKET", "test-bucket")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIATEST")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.delenv("SERVICE_AUTH_TOKEN", raising=False)
    monkeypatch.delenv("METADATA_BACKEND", raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
