"""Document vault module manifest: tool definitions."""

from shared.schemas.tools import ModuleManifest, ToolDefinition, ToolParameter

_FILE_ID = ToolParameter(name="file_id", type="string", description="The logical file ID")

MANIFEST = ModuleManifest(
    module_name="document_vault",
    description=(
        "Versioned storage for business documents (RFQ attachments, invoices, "
        "certifications): uploads, version history, rollback, annotations, sharing "
        "and time-limited download links."
    ),
    tools=[
        ToolDefinition(
            name="document_vault.upload_file",
            description="Upload a new document. Creates version 1 and makes the caller its owner.",
            parameters=[
                ToolParameter(name="filename", type="string", description="Original filename, e.g. invoice.pdf"),
                ToolParameter(name="content_base64", type="string", description="File bytes, base64 encoded"),
                ToolParameter(name="category", type="string", description="Storage category (default: general)", required=False),
                ToolParameter(name="tags", type="array", description="Free-form tags", required=False),
                ToolParameter(name="content_type", type="string", description="MIME type; guessed from the extension when omitted", required=False),
            ],
        ),
        ToolDefinition(
            name="document_vault.add_version",
            description="Upload new content for an existing document as its next version.",
            parameters=[
                _FILE_ID,
                ToolParameter(name="filename", type="string", description="Filename of the new revision"),
                ToolParameter(name="content_base64", type="string", description="File bytes, base64 encoded"),
                ToolParameter(name="category", type="string", description="Defaults to the latest version's category", required=False),
                ToolParameter(name="tags", type="array", description="Defaults to the latest version's tags", required=False),
                ToolParameter(name="content_type", type="string", description="MIME type", required=False),
                ToolParameter(name="changes", type="string", description="Short note describing what changed", required=False),
            ],
        ),
        ToolDefinition(
            name="document_vault.bulk_upload",
            description="Upload many documents at once. Failures are reported per file; the batch never aborts.",
            parameters=[
                ToolParameter(
                    name="files",
                    type="array",
                    description="List of {filename, content_base64, content_type?} objects",
                ),
                ToolParameter(name="category", type="string", description="Storage category for every file", required=False),
                ToolParameter(name="tags", type="array", description="Tags for every file", required=False),
            ],
        ),
        ToolDefinition(
            name="document_vault.list_versions",
            description="List every version of a document in order.",
            parameters=[_FILE_ID],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.rollback_to_version",
            description="Restore an earlier version by copying it forward as a new version.",
            parameters=[
                _FILE_ID,
                ToolParameter(name="version", type="integer", description="Version number to restore"),
            ],
        ),
        ToolDefinition(
            name="document_vault.add_annotation",
            description="Attach a comment, highlight, drawing or text note to a document.",
            parameters=[
                _FILE_ID,
                ToolParameter(
                    name="type",
                    type="string",
                    description="Annotation kind",
                    enum=["comment", "highlight", "drawing", "text"],
                ),
                ToolParameter(name="content", type="object", description="Text for comment/highlight/text, or a drawing payload"),
                ToolParameter(name="position", type="object", description="{x, y, width?, height?}", required=False),
            ],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.list_annotations",
            description="List a document's annotations in the order they were added.",
            parameters=[_FILE_ID],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.update_annotation",
            description="Change an annotation's content or position. Allowed for its author or users with write access.",
            parameters=[
                ToolParameter(name="annotation_id", type="string", description="The annotation ID"),
                _FILE_ID,
                ToolParameter(name="content", type="object", description="New content", required=False),
                ToolParameter(name="position", type="object", description="New position", required=False),
            ],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.delete_annotation",
            description="Delete an annotation (author or write access). Deleting a missing annotation is not an error.",
            parameters=[
                ToolParameter(name="annotation_id", type="string", description="The annotation ID"),
                _FILE_ID,
            ],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.add_annotation_reply",
            description="Reply to an existing annotation, starting or continuing its thread.",
            parameters=[
                _FILE_ID,
                ToolParameter(name="annotation_id", type="string", description="The annotation ID"),
                ToolParameter(name="content", type="string", description="Reply text"),
            ],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.get_file_metadata",
            description="Full view of a document: latest details, versions, annotations and permissions.",
            parameters=[_FILE_ID],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.get_download_url",
            description="Get a time-limited signed download link for a document version (latest by default).",
            parameters=[
                _FILE_ID,
                ToolParameter(name="version", type="integer", description="Specific version", required=False),
            ],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.delete_file",
            description="Delete a document with all its versions and annotations. Requires delete permission.",
            parameters=[_FILE_ID],
        ),
        ToolDefinition(
            name="document_vault.share_file",
            description="Grant another user read, write or delete access to a document.",
            parameters=[
                _FILE_ID,
                ToolParameter(name="capability", type="string", description="Access to grant", enum=["read", "write", "delete"]),
                ToolParameter(name="target_user_id", type="string", description="User receiving access"),
            ],
        ),
        ToolDefinition(
            name="document_vault.unshare_file",
            description="Revoke a previously granted access right.",
            parameters=[
                _FILE_ID,
                ToolParameter(name="capability", type="string", description="Access to revoke", enum=["read", "write", "delete"]),
                ToolParameter(name="target_user_id", type="string", description="User losing access"),
            ],
        ),
        ToolDefinition(
            name="document_vault.search_files",
            description="Find readable documents by filename or tag, with optional filters.",
            parameters=[
                ToolParameter(name="query", type="string", description="Substring to match", required=False),
                ToolParameter(name="category", type="string", description="Exact category", required=False),
                ToolParameter(name="tags", type="array", description="All of these tags", required=False),
                ToolParameter(name="uploaded_after", type="string", description="ISO 8601 timestamp", required=False),
                ToolParameter(name="uploaded_before", type="string", description="ISO 8601 timestamp", required=False),
                ToolParameter(name="min_size", type="integer", description="Minimum size in bytes", required=False),
                ToolParameter(name="max_size", type="integer", description="Maximum size in bytes", required=False),
            ],
            required_permission="guest",
        ),
        ToolDefinition(
            name="document_vault.verify_storage",
            description="Compare a document's version history with the objects actually stored.",
            parameters=[_FILE_ID],
            required_permission="admin",
        ),
    ],
)
