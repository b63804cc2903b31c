"""Tests for checksums, identifiers and the object key layout."""

from __future__ import annotations

import hashlib

import pytest

from modules.document_vault import checksum
from modules.document_vault.keys import build_storage_key, guess_mime_type, sanitize_name


class TestChecksum:
    def test_sha256_hex(self):
        assert checksum.compute_checksum(b"abc") == hashlib.sha256(b"abc").hexdigest()
        assert len(checksum.compute_checksum(b"")) == 64

    @pytest.mark.asyncio
    async def test_large_payloads_hash_the_same(self, monkeypatch):
        monkeypatch.setattr(checksum, "INLINE_HASH_LIMIT", 4)
        payload = b"x" * 1024

        assert await checksum.compute_checksum_async(payload) == checksum.compute_checksum(payload)

    def test_ids_are_unique_and_prefixed(self):
        ids = {checksum.new_file_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(i.startswith("file_") for i in ids)
        assert checksum.new_annotation_id().startswith("anno_")
        assert checksum.new_reply_id().startswith("reply_")


class TestKeys:
    def test_layout(self):
        assert build_storage_key("finance", "file_1", 3, "invoice.pdf") == "finance/file_1/v3/invoice.pdf"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Q3 report.pdf", "Q3_report.pdf"),
            ("a/b\\c.txt", "abc.txt"),
            ("..", "file"),
            ("Finanças", "Finanas"),
            ("résumé 2026.pdf", "rsum_2026.pdf"),
            ("", "file"),
        ],
    )
    def test_sanitize(self, name, expected):
        assert sanitize_name(name) == expected

    @pytest.mark.parametrize(
        "filename,mime",
        [
            ("invoice.PDF", "application/pdf"),
            ("cert.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
            ("scan.tiff", "image/tiff"),
            ("README", "application/octet-stream"),
            ("archive.rar", "application/octet-stream"),
        ],
    )
    def test_guess_mime_type(self, filename, mime):
        assert guess_mime_type(filename) == mime
