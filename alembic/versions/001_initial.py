"""Initial schema -- vendors, templates, requests, documents, line items, audit.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, UUID, JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    # ── Enum types (idempotent via DO/EXCEPTION) ────────────────
    _enums = {
        "document_status": (
            "'pending', 'queued', 'processing', 'processed', 'validation_failed', 'failed'"
        ),
        "request_status": "'draft', 'processing', 'completed', 'partial', 'failed'",
        "audit_severity": "'info', 'warning', 'error'",
    }
    for name, values in _enums.items():
        op.execute(sa.text(
            f"DO $$ BEGIN CREATE TYPE {name} AS ENUM ({values}); "
            f"EXCEPTION WHEN duplicate_object THEN NULL; END $$;"
        ))

    document_status = ENUM(
        "pending", "queued", "processing", "processed", "validation_failed", "failed",
        name="document_status", create_type=False,
    )
    request_status = ENUM(
        "draft", "processing", "completed", "partial", "failed",
        name="request_status", create_type=False,
    )
    audit_severity = ENUM("info", "warning", "error", name="audit_severity", create_type=False)

    # 1. vendors
    op.create_table(
        "vendors",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("identifiers", JSONB, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_vendors_user_id", "vendors", ["user_id"])

    # 2. vendor_templates (one active per vendor)
    op.create_table(
        "vendor_templates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "vendor_id", UUID(as_uuid=True),
            sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("custom_prompt", sa.Text, nullable=True),
        sa.Column("custom_fields", JSONB, nullable=True),
        sa.Column("field_mappings", JSONB, nullable=True),
        sa.Column("validation_rules", JSONB, nullable=True),
        sa.Column("document_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_vendor_templates_vendor_id", "vendor_templates", ["vendor_id"])
    op.create_index(
        "uq_vendor_templates_one_active", "vendor_templates", ["vendor_id"],
        unique=True, postgresql_where=sa.text("is_active"),
    )

    # 3. ai_model_configs
    op.create_table(
        "ai_model_configs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "vendor_id", UUID(as_uuid=True),
            sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("temperature", sa.Numeric(3, 2), nullable=False, server_default="0.1"),
        sa.Column("max_tokens", sa.Integer, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "vendor_id", name="uq_ai_model_config_user_vendor"),
    )
    op.create_index("ix_ai_model_configs_user_id", "ai_model_configs", ["user_id"])

    # 4. upload_requests
    op.create_table(
        "upload_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "default_vendor_id", UUID(as_uuid=True),
            sa.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("status", request_status, nullable=False, server_default="draft"),
        sa.Column("total_documents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pending_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("queued_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processing_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processed_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(16, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_upload_requests_user_id", "upload_requests", ["user_id"])
    op.create_index("ix_upload_requests_status", "upload_requests", ["status"])

    # 5. documents
    op.create_table(
        "documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id", UUID(as_uuid=True),
            sa.ForeignKey("upload_requests.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("file_name", sa.String(500), nullable=False),
        sa.Column("storage_path", sa.Text, nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("file_size", sa.Integer, nullable=True),
        sa.Column("status", document_status, nullable=False, server_default="pending"),
        sa.Column("invoice_number", sa.String(255), nullable=True),
        sa.Column("invoice_date", sa.Date, nullable=True),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("custom_data", JSONB, nullable=True),
        sa.Column("raw_text", sa.Text, nullable=True),
        sa.Column("ai_response", sa.Text, nullable=True),
        sa.Column(
            "vendor_id", UUID(as_uuid=True),
            sa.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("detected_vendor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("template_id", UUID(as_uuid=True), nullable=True),
        sa.Column("job_id", sa.String(255), nullable=True),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_documents_user_id", "documents", ["user_id"])
    op.create_index("ix_documents_status", "documents", ["status"])
    op.create_index("ix_documents_request_status", "documents", ["request_id", "status"])

    # 6. line_items
    op.create_table(
        "line_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "document_id", UUID(as_uuid=True),
            sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=True),
        sa.Column("unit_price", sa.Numeric(14, 4), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_line_items_document_id", "line_items", ["document_id"])

    # 7. audit_logs
    op.create_table(
        "audit_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id", UUID(as_uuid=True),
            sa.ForeignKey("upload_requests.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("event_category", sa.String(50), nullable=False),
        sa.Column("severity", audit_severity, nullable=False, server_default="info"),
        sa.Column("summary", sa.Text, nullable=False),
        sa.Column("details", JSONB, nullable=True),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.String(255), nullable=True),
        sa.Column("previous_value", JSONB, nullable=True),
        sa.Column("new_value", JSONB, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_event_type", "audit_logs", ["event_type"])
    op.create_index("ix_audit_logs_request_created", "audit_logs", ["request_id", "created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("line_items")
    op.drop_table("documents")
    op.drop_table("upload_requests")
    op.drop_table("ai_model_configs")
    op.drop_index("uq_vendor_templates_one_active", table_name="vendor_templates")
    op.drop_table("vendor_templates")
    op.drop_table("vendors")

    # Drop enum types
    for name in ("audit_severity", "request_status", "document_status"):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
