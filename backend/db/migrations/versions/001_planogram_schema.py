"""
Initial schema - planogram templates, versions, compliance scans

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Planogram templates
    op.create_table(
        "planogram_templates",
        sa.Column("template_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("customer_id", UUID(as_uuid=True), nullable=False),
        sa.Column("store_id", UUID(as_uuid=True)),
        sa.Column("shelf_id", UUID(as_uuid=True)),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("layout", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("created_by", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('draft', 'active', 'archived')", name="ck_planogram_template_status"),
    )
    op.create_index("ix_planogram_templates_customer", "planogram_templates", ["customer_id"])
    op.create_index("ix_planogram_templates_updated", "planogram_templates", ["customer_id", "updated_at"])

    # 2. Planogram versions (append-only)
    op.create_table(
        "planogram_versions",
        sa.Column("version_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("template_id", UUID(as_uuid=True), nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column("layout", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("change_notes", sa.Text),
        sa.Column("created_by", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["template_id"], ["planogram_templates.template_id"], ondelete="CASCADE"),
        sa.UniqueConstraint("template_id", "version_number", name="uq_planogram_version_number"),
        sa.CheckConstraint("version_number >= 1", name="ck_planogram_version_positive"),
    )

    # 3. Compliance scans (append-only)
    op.create_table(
        "compliance_scans",
        sa.Column("scan_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("template_id", UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", UUID(as_uuid=True), nullable=False),
        sa.Column("template_name", sa.String(255)),
        sa.Column("shelf_image_id", UUID(as_uuid=True)),
        sa.Column("image_url", sa.Text),
        sa.Column("compliance_score", sa.Integer, nullable=False),
        sa.Column("total_expected", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_found", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_missing", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_extra", sa.Integer, nullable=False, server_default="0"),
        sa.Column("details", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("scanned_by", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["template_id"], ["planogram_templates.template_id"], ondelete="CASCADE"),
        sa.CheckConstraint("compliance_score >= 0 AND compliance_score <= 100", name="ck_compliance_score_range"),
    )
    op.create_index("ix_compliance_scans_template_created", "compliance_scans", ["template_id", "created_at"])
    op.create_index("ix_compliance_scans_customer_created", "compliance_scans", ["customer_id", "created_at"])


def downgrade() -> None:
    tables = [
        "compliance_scans",
        "planogram_versions",
        "planogram_templates",
    ]
    for table in tables:
        op.drop_table(table)
