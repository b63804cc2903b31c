"""Document vault module - FastAPI service."""

from __future__ import annotations

import structlog
from fastapi import Depends, FastAPI

from modules.document_vault.errors import DocumentVaultError
from modules.document_vault.manifest import MANIFEST
from modules.document_vault.tools import DocumentVaultTools
from modules.document_vault.vault import DocumentVault
from shared.auth import require_service_auth
from shared.config import get_settings
from shared.database import get_engine, init_models
from shared.schemas.common import HealthResponse
from shared.schemas.tools import ModuleManifest, ToolCall, ToolResult

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()
app = FastAPI(title="Document Vault Module", version="1.0.0")

TOOL_MAP = {
    "upload_file",
    "add_version",
    "bulk_upload",
    "list_versions",
    "rollback_to_version",
    "add_annotation",
    "list_annotations",
    "update_annotation",
    "delete_annotation",
    "add_annotation_reply",
    "get_file_metadata",
    "get_download_url",
    "delete_file",
    "share_file",
    "unshare_file",
    "search_files",
    "verify_storage",
}

tools: DocumentVaultTools | None = None


@app.on_event("startup")
async def startup():
    global tools
    settings = get_settings()

    if settings.metadata_backend == "database":
        await init_models(get_engine())

    vault = DocumentVault.from_settings(settings)
    await vault.store.ensure_bucket()
    tools = DocumentVaultTools(vault)
    logger.info(
        "document_vault_ready",
        bucket=settings.aws_s3_bucket,
        backend=settings.metadata_backend,
        bulk_concurrency=settings.bulk_upload_concurrency,
    )


@app.get("/manifest", response_model=ModuleManifest)
async def manifest(_=Depends(require_service_auth)):
    """Return the module manifest."""
    return MANIFEST


@app.post("/execute", response_model=ToolResult)
async def execute(call: ToolCall, _=Depends(require_service_auth)):
    """Execute a tool call."""
    if tools is None:
        return ToolResult(tool_name=call.tool_name, success=False, error="Module not ready")

    tool_name = call.tool_name.split(".")[-1]
    if tool_name not in TOOL_MAP:
        return ToolResult(
            tool_name=call.tool_name,
            success=False,
            error=f"Unknown tool: {call.tool_name}",
        )

    args = dict(call.arguments)
    user_id = args.pop("user_id", None) or call.user_id

    try:
        method = getattr(tools, tool_name)
        result = await method(user_id=user_id, **args)
        return ToolResult(tool_name=call.tool_name, success=True, result=result)
    except DocumentVaultError as e:
        logger.warning(
            "tool_execution_failed",
            tool=call.tool_name,
            error=str(e),
            status_code=e.status_code,
            retryable=e.retryable,
        )
        return ToolResult(
            tool_name=call.tool_name,
            success=False,
            error=str(e),
            status_code=e.status_code,
        )
    except (TypeError, ValueError) as e:
        logger.warning("tool_bad_arguments", tool=call.tool_name, error=str(e))
        return ToolResult(tool_name=call.tool_name, success=False, error=str(e), status_code=400)
    except Exception as e:
        logger.error("tool_execution_error", tool=call.tool_name, error=str(e), exc_info=True)
        return ToolResult(
            tool_name=call.tool_name,
            success=False,
            error="Internal error processing request",
            status_code=500,
        )


@app.get("/health", response_model=HealthResponse)
async def health():
    backend = tools.vault.ledger.__class__.__name__ if tools else None
    return HealthResponse(status="ok" if tools else "starting", backend=backend)


def run() -> None:
    """Serve the module over HTTP (``document-vault`` console script)."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info", proxy_headers=True)
