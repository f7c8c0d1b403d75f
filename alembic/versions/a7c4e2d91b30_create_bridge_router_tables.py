"""Create audit_reports, exploit_history and api_keys tables.

Security history tables are written by the ingestion pipeline and only read
by the quote service. api_keys stores SHA-256 hashes of issued keys.

Revision ID: a7c4e2d91b30
Revises:
Create Date: 2026-10-17
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "a7c4e2d91b30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "audit_reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("bridge", sa.String(100), nullable=False),
        sa.Column("audit_firm", sa.String(200), nullable=False),
        sa.Column("audit_date", sa.Date, nullable=False),
        sa.Column("result", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_reports_bridge", "audit_reports", ["bridge"])
    op.create_index("ix_audit_reports_audit_date", "audit_reports", ["audit_date"])

    op.create_table(
        "exploit_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("bridge", sa.String(100), nullable=False),
        sa.Column("incident_date", sa.Date, nullable=False),
        sa.Column("loss_amount", sa.Numeric(20, 2), nullable=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_exploit_history_bridge", "exploit_history", ["bridge"])
    op.create_index("ix_exploit_history_incident_date", "exploit_history", ["incident_date"])

    op.create_table(
        "api_keys",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("key_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("permissions", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("rate_limit_per_minute", sa.Integer, nullable=False, server_default="100"),
        sa.Column("rate_limit_per_hour", sa.Integer, nullable=False, server_default="1000"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"])
    op.create_index("ix_api_keys_is_active", "api_keys", ["is_active"])
    op.create_index("ix_api_keys_created_at", "api_keys", ["created_at"])


def downgrade() -> None:
    op.drop_table("api_keys")
    op.drop_table("exploit_history")
    op.drop_table("audit_reports")
