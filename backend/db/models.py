"""
ShelfLens Database Models

3 tables for planogram design and shelf compliance.
Multi-tenant via customer_id on planogram_templates and compliance_scans;
versions inherit tenant scope through their template.

Tables:
  1. planogram_templates - Expected shelf layout per store/shelf (current state)
  2. planogram_versions  - Append-only layout snapshots, one per save
  3. compliance_scans    - Append-only scoring verdicts for shelf photos
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

TEMPLATE_STATUSES = ("draft", "active", "archived")

# ─── 1. Planogram Templates ─────────────────────────────────────────────────


class PlanogramTemplate(Base):
    """What SHOULD be on a shelf. `layout` always mirrors the latest version."""

    __tablename__ = "planogram_templates"

    template_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    customer_id = Column(GUID(), nullable=False)
    store_id = Column(GUID())  # External store reference, optional
    shelf_id = Column(GUID())  # External shelf reference, optional
    name = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(20), nullable=False, default="draft")
    layout = Column(JSON, nullable=False, default=list)  # [{id, label, width, products: [...]}]
    created_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_planogram_templates_customer", "customer_id"),
        Index("ix_planogram_templates_updated", "customer_id", "updated_at"),
        CheckConstraint("status IN ('draft', 'active', 'archived')", name="ck_planogram_template_status"),
    )

    # Relationships
    versions = relationship(
        "PlanogramVersion",
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    scans = relationship(
        "ComplianceScan",
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# ─── 2. Planogram Versions ──────────────────────────────────────────────────


class PlanogramVersion(Base):
    """Immutable layout snapshot. Numbers start at 1 and never repeat."""

    __tablename__ = "planogram_versions"

    version_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    template_id = Column(
        GUID(),
        ForeignKey("planogram_templates.template_id", ondelete="CASCADE"),
        nullable=False,
    )
    version_number = Column(Integer, nullable=False)
    layout = Column(JSON, nullable=False, default=list)
    change_notes = Column(Text)
    created_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("template_id", "version_number", name="uq_planogram_version_number"),
        CheckConstraint("version_number >= 1", name="ck_planogram_version_positive"),
    )

    template = relationship("PlanogramTemplate", back_populates="versions")


# ─── 3. Compliance Scans ────────────────────────────────────────────────────


class ComplianceScan(Base):
    """Immutable result of scoring one shelf photo against a template."""

    __tablename__ = "compliance_scans"

    scan_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    template_id = Column(
        GUID(),
        ForeignKey("planogram_templates.template_id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_id = Column(GUID(), nullable=False)  # Denormalized tenant scope
    template_name = Column(String(255))  # Denormalized at scan time
    shelf_image_id = Column(GUID())
    image_url = Column(Text)
    compliance_score = Column(Integer, nullable=False)
    total_expected = Column(Integer, nullable=False, default=0)
    total_found = Column(Integer, nullable=False, default=0)
    total_missing = Column(Integer, nullable=False, default=0)
    total_extra = Column(Integer, nullable=False, default=0)
    details = Column(JSON, nullable=False, default=list)  # [{productId, productName, expectedCount, actualCount, status}]
    scanned_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_compliance_scans_template_created", "template_id", "created_at"),
        Index("ix_compliance_scans_customer_created", "customer_id", "created_at"),
        CheckConstraint(
            "compliance_score >= 0 AND compliance_score <= 100", name="ck_compliance_score_range"
        ),
    )

    template = relationship("PlanogramTemplate", back_populates="scans")
