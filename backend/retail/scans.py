"""
Scan Recorder — Append-Only Compliance History.

Scans are written once and never updated. Reads come in two flavours:
per-template history and a tenant-wide feed for trend charts. Each row
carries a display name for its template: the live name if the template
still exists, otherwise the name captured at scan time, otherwise
"Unknown".
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ComplianceScan, PlanogramTemplate
from retail.compliance import ComplianceResult
from retail.versioning import PersistenceError

logger = structlog.get_logger()

UNKNOWN_TEMPLATE_NAME = "Unknown"


@dataclass(frozen=True)
class ScanRecord:
    scan: ComplianceScan
    template_name: str


def display_template_name(live_name: str | None, name_at_scan: str | None) -> str:
    return live_name or name_at_scan or UNKNOWN_TEMPLATE_NAME


async def record_scan(
    db: AsyncSession,
    template: PlanogramTemplate,
    result: ComplianceResult,
    image_url: str | None = None,
    shelf_image_id: uuid.UUID | None = None,
    scanned_by: str | None = None,
) -> ComplianceScan:
    """Persist one scoring verdict."""
    scan = ComplianceScan(
        template_id=template.template_id,
        customer_id=template.customer_id,
        template_name=template.name,
        shelf_image_id=shelf_image_id,
        image_url=image_url,
        compliance_score=result.compliance_score,
        total_expected=result.total_expected,
        total_found=result.total_found,
        total_missing=result.total_missing,
        total_extra=result.total_extra,
        details=result.details_json(),
        scanned_by=scanned_by,
    )
    try:
        db.add(scan)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("compliance.scan_record_failed", template_id=str(template.template_id), error=str(exc))
        raise PersistenceError("Failed to save compliance scan") from exc

    logger.info(
        "compliance.scan_recorded",
        scan_id=str(scan.scan_id),
        template_id=str(template.template_id),
        score=scan.compliance_score,
    )
    return scan


async def list_scans(
    db: AsyncSession,
    customer_id: uuid.UUID,
    template_id: uuid.UUID | None = None,
    limit: int = 100,
) -> list[ScanRecord]:
    """Scans for the tenant, most recent first, optionally for one template."""
    query = (
        select(ComplianceScan, PlanogramTemplate.name)
        .join(PlanogramTemplate, PlanogramTemplate.template_id == ComplianceScan.template_id, isouter=True)
        .where(ComplianceScan.customer_id == customer_id)
        .order_by(ComplianceScan.created_at.desc())
        .limit(limit)
    )
    if template_id is not None:
        query = query.where(ComplianceScan.template_id == template_id)

    result = await db.execute(query)
    return [
        ScanRecord(scan=scan, template_name=display_template_name(live_name, scan.template_name))
        for scan, live_name in result.all()
    ]


async def latest_scores(
    db: AsyncSession,
    template_ids: list[uuid.UUID],
) -> dict[uuid.UUID, int]:
    """Most recent compliance score per template (templates never scanned are absent)."""
    if not template_ids:
        return {}
    result = await db.execute(
        select(ComplianceScan.template_id, ComplianceScan.compliance_score, ComplianceScan.created_at)
        .where(ComplianceScan.template_id.in_(template_ids))
        .order_by(ComplianceScan.created_at.desc())
    )
    scores: dict[uuid.UUID, int] = {}
    for row in result.all():
        scores.setdefault(row.template_id, row.compliance_score)
    return scores
