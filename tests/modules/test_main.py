"""Tests for the document vault FastAPI service and tool adapters.

``/execute`` must map every vault error to a failed ToolResult carrying the
error's status code, and never leak internal exception text.
"""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from modules.document_vault import main
from modules.document_vault.manifest import MANIFEST
from modules.document_vault.tools import DocumentVaultTools


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


@pytest.fixture
def tools(vault):
    return DocumentVaultTools(vault)


@pytest_asyncio.fixture
async def client(settings_env, tools):
    """Async test client for the FastAPI app with a ready vault."""
    settings_env.setattr(main, "tools", tools)
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def starting_client(settings_env):
    """Client for an app whose startup has not finished."""
    settings_env.setattr(main, "tools", None)
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _execute(client, tool_name, arguments=None, user_id="u1"):
    resp = await client.post(
        "/execute",
        json={"tool_name": tool_name, "arguments": arguments or {}, "user_id": user_id},
    )
    assert resp.status_code == 200
    return resp.json()


async def _upload(client, filename="invoice.pdf", content=b"%PDF-1.7", user_id="u1", **extra):
    return await _execute(
        client,
        "document_vault.upload_file",
        {"filename": filename, "content_base64": _b64(content), **extra},
        user_id=user_id,
    )


# ===================================================================
# /execute dispatch
# ===================================================================


class TestExecute:
    @pytest.mark.asyncio
    async def test_upload_and_list_versions(self, client):
        uploaded = await _upload(client, category="finance", tags=["q3"])

        assert uploaded["success"] is True
        file_id = uploaded["result"]["file_id"]
        assert uploaded["result"]["version"] == 1
        assert uploaded["result"]["metadata"]["category"] == "finance"

        listed = await _execute(client, "document_vault.list_versions", {"file_id": file_id})
        assert listed["result"]["count"] == 1

    @pytest.mark.asyncio
    async def test_user_id_in_arguments_wins(self, client):
        uploaded = await _execute(
            client,
            "document_vault.upload_file",
            {"filename": "a.txt", "content_base64": _b64(b"a"), "user_id": "u9"},
            user_id="u1",
        )

        assert uploaded["result"]["uploaded_by"] == "u9"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, client):
        result = await _execute(client, "document_vault.format_disk")

        assert result["success"] is False
        assert "Unknown tool" in result["error"]

    @pytest.mark.asyncio
    async def test_permission_denied_maps_to_403(self, client):
        file_id = (await _upload(client))["result"]["file_id"]

        result = await _execute(client, "document_vault.delete_file", {"file_id": file_id}, user_id="u2")

        assert result["success"] is False
        assert result["status_code"] == 403

    @pytest.mark.asyncio
    async def test_missing_file_maps_to_404(self, client):
        result = await _execute(client, "document_vault.get_download_url", {"file_id": "file_missing"})

        assert result["status_code"] == 404

    @pytest.mark.asyncio
    async def test_bad_base64_is_400(self, client):
        result = await _execute(
            client,
            "document_vault.upload_file",
            {"filename": "a.pdf", "content_base64": "not base64!!"},
        )

        assert result["success"] is False
        assert result["status_code"] == 400
        assert "Invalid base64" in result["error"]

    @pytest.mark.asyncio
    async def test_missing_user_is_400(self, client):
        result = await _execute(
            client,
            "document_vault.upload_file",
            {"filename": "a.pdf", "content_base64": _b64(b"x")},
            user_id=None,
        )

        assert result["status_code"] == 400

    @pytest.mark.asyncio
    async def test_unexpected_argument_is_400(self, client):
        result = await _execute(client, "document_vault.list_versions", {"file_id": "f", "colour": "red"})

        assert result["status_code"] == 400

    @pytest.mark.asyncio
    async def test_internal_errors_are_masked(self, client, tools):
        tools.vault.get_file_metadata = AsyncMock(side_effect=RuntimeError("db password is hunter2"))

        result = await _execute(client, "document_vault.get_file_metadata", {"file_id": "f"})

        assert result["status_code"] == 500
        assert result["error"] == "Internal error processing request"

    @pytest.mark.asyncio
    async def test_not_ready(self, starting_client):
        result = await _execute(starting_client, "document_vault.list_versions", {"file_id": "f"})

        assert result["error"] == "Module not ready"


# ===================================================================
# Tool adapters
# ===================================================================


class TestToolFlows:
    @pytest.mark.asyncio
    async def test_rollback_annotate_and_download_url(self, client):
        file_id = (await _upload(client, content=b"one"))["result"]["file_id"]
        await _execute(
            client,
            "document_vault.add_version",
            {"file_id": file_id, "filename": "invoice.pdf", "content_base64": _b64(b"two")},
        )

        rolled = await _execute(
            client, "document_vault.rollback_to_version", {"file_id": file_id, "version": 1}
        )
        assert rolled["result"]["version"] == 3
        assert rolled["result"]["metadata"]["rolled_back_from"] == 1

        anno = await _execute(
            client,
            "document_vault.add_annotation",
            {"file_id": file_id, "type": "comment", "content": "approved", "position": {"x": 1, "y": 1}},
        )
        annotation_id = anno["result"]["id"]

        updated = await _execute(
            client,
            "document_vault.update_annotation",
            {"annotation_id": annotation_id, "file_id": file_id, "content": "approved by AP"},
        )
        assert updated["result"]["updated"] is True
        assert updated["result"]["annotation"]["content"] == "approved by AP"

        url = await _execute(client, "document_vault.get_download_url", {"file_id": file_id})
        assert url["result"]["expires_in"] == 3600
        assert "/v3/" in url["result"]["url"]

        deleted = await _execute(
            client,
            "document_vault.delete_annotation",
            {"annotation_id": annotation_id, "file_id": file_id},
        )
        assert deleted["result"]["deleted"] is True

    @pytest.mark.asyncio
    async def test_change_note_and_replies(self, client):
        file_id = (await _upload(client, content=b"one"))["result"]["file_id"]
        revised = await _execute(
            client,
            "document_vault.add_version",
            {
                "file_id": file_id,
                "filename": "invoice.pdf",
                "content_base64": _b64(b"two"),
                "changes": "Added PO number",
            },
        )
        assert revised["result"]["changes"] == "Added PO number"

        anno = await _execute(
            client,
            "document_vault.add_annotation",
            {"file_id": file_id, "type": "comment", "content": "Which PO?"},
        )
        annotation_id = anno["result"]["id"]
        await _execute(
            client,
            "document_vault.share_file",
            {"file_id": file_id, "capability": "read", "target_user_id": "u2"},
        )

        replied = await _execute(
            client,
            "document_vault.add_annotation_reply",
            {"file_id": file_id, "annotation_id": annotation_id, "content": "PO-7731"},
            user_id="u2",
        )
        assert replied["result"]["added"] is True
        assert replied["result"]["reply"]["user_id"] == "u2"

        listed = await _execute(client, "document_vault.list_annotations", {"file_id": file_id}, user_id="u2")
        assert [r["content"] for r in listed["result"]["annotations"][0]["replies"]] == ["PO-7731"]

        missing = await _execute(
            client,
            "document_vault.add_annotation_reply",
            {"file_id": file_id, "annotation_id": "anno_nope", "content": "?"},
        )
        assert missing["result"] == {"annotation_id": "anno_nope", "added": False}

    @pytest.mark.asyncio
    async def test_unshared_user_cannot_touch_annotations(self, client):
        file_id = (await _upload(client))["result"]["file_id"]
        anno = await _execute(
            client,
            "document_vault.add_annotation",
            {"file_id": file_id, "type": "comment", "content": "approved"},
        )
        annotation_id = anno["result"]["id"]

        listed = await _execute(client, "document_vault.list_annotations", {"file_id": file_id}, user_id="intruder")
        updated = await _execute(
            client,
            "document_vault.update_annotation",
            {"annotation_id": annotation_id, "file_id": file_id, "content": "defaced"},
            user_id="intruder",
        )
        deleted = await _execute(
            client,
            "document_vault.delete_annotation",
            {"annotation_id": annotation_id, "file_id": file_id},
            user_id="intruder",
        )

        assert [r["status_code"] for r in (listed, updated, deleted)] == [403, 403, 403]
        owner_view = await _execute(client, "document_vault.list_annotations", {"file_id": file_id})
        assert owner_view["result"]["annotations"][0]["content"] == "approved"

    @pytest.mark.asyncio
    async def test_bulk_upload(self, client):
        result = await _execute(
            client,
            "document_vault.bulk_upload",
            {
                "files": [
                    {"filename": "a.pdf", "content_base64": _b64(b"a")},
                    {"filename": "b.pdf", "content_base64": _b64(b"b")},
                ],
                "category": "certifications",
            },
        )

        assert result["result"]["total"] == 2
        assert result["result"]["processed"] == 2
        assert len(result["result"]["success"]) == 2
        assert result["result"]["failed"] == []

    @pytest.mark.asyncio
    async def test_share_then_search(self, client):
        file_id = (await _upload(client, filename="iso9001.pdf", tags=["quality"]))["result"]["file_id"]

        shared = await _execute(
            client,
            "document_vault.share_file",
            {"file_id": file_id, "capability": "read", "target_user_id": "u2"},
        )
        assert sorted(shared["result"]["permissions"]["read"]) == ["u1", "u2"]

        found = await _execute(
            client,
            "document_vault.search_files",
            {"query": "iso", "uploaded_after": "2000-01-01T00:00:00"},
            user_id="u2",
        )
        assert found["result"]["count"] == 1
        assert found["result"]["files"][0]["file_id"] == file_id

        await _execute(
            client,
            "document_vault.unshare_file",
            {"file_id": file_id, "capability": "read", "target_user_id": "u2"},
        )
        after = await _execute(client, "document_vault.search_files", {"query": "iso"}, user_id="u2")
        assert after["result"]["count"] == 0

    @pytest.mark.asyncio
    async def test_verify_storage(self, client):
        file_id = (await _upload(client))["result"]["file_id"]

        report = await _execute(client, "document_vault.verify_storage", {"file_id": file_id})

        assert report["result"]["consistent"] is True

    @pytest.mark.asyncio
    async def test_delete_file(self, client):
        file_id = (await _upload(client))["result"]["file_id"]

        result = await _execute(client, "document_vault.delete_file", {"file_id": file_id})

        assert result["result"] == {"file_id": file_id, "deleted": True}
        meta = await _execute(client, "document_vault.get_file_metadata", {"file_id": file_id})
        assert meta["result"] is None


# ---------------------------------------------------------------------------
# Health, auth and manifest
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "backend": "InMemoryVersionLedger"}


@pytest.mark.asyncio
async def test_health_while_starting(starting_client):
    resp = await starting_client.get("/health")
    assert resp.json()["status"] == "starting"


@pytest.mark.asyncio
async def test_token_required_when_configured(client, settings_env):
    from shared.config import get_settings

    settings_env.setenv("SERVICE_AUTH_TOKEN", "s3cret")
    get_settings.cache_clear()

    assert (await client.get("/manifest")).status_code == 401
    assert (await client.get("/manifest", headers={"Authorization": "Bearer wrong"})).status_code == 401
    resp = await client.get("/manifest", headers={"Authorization": "Bearer s3cret"})
    assert resp.status_code == 200
    assert resp.json()["module_name"] == "document_vault"


def test_manifest_matches_tool_map():
    names = {t.name.split(".", 1)[1] for t in MANIFEST.tools}

    assert all(t.name.startswith("document_vault.") for t in MANIFEST.tools)
    assert names == main.TOOL_MAP
    for name in names:
        assert callable(getattr(DocumentVaultTools, name))
