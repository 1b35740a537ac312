"""
Compliance Router — Run shelf scans and read compliance history.

A scan is: detect products in the photo → score against the template's
committed layout → record the verdict. If detection fails nothing is
recorded and the caller gets 502.
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_detection_client, get_tenant_db
from integrations.detection import DetectionClient, DetectionError, filter_for_display
from retail.compliance import ScanFailedError, match_layout
from retail.layout import layout_from_json
from retail.scans import list_scans, record_scan
from retail.versioning import PersistenceError, get_template

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/compliance", tags=["compliance"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ScanCreate(BaseModel):
    template_id: UUID
    image_url: str = Field(..., min_length=1)
    shelf_image_id: UUID | None = None


class ScanDetail(BaseModel):
    productId: str
    productName: str
    expectedCount: int
    actualCount: int
    status: str


class OverlayPrediction(BaseModel):
    label: str
    confidence: float
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None


class ScanResponse(BaseModel):
    scan_id: UUID
    template_id: UUID
    template_name: str
    shelf_image_id: UUID | None
    image_url: str | None
    compliance_score: int
    total_expected: int
    total_found: int
    total_missing: int
    total_extra: int
    details: list[ScanDetail]
    scanned_by: str | None
    created_at: datetime
    overlay: list[OverlayPrediction] | None = None


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/scans", response_model=ScanResponse, status_code=201)
async def create_scan(
    body: ScanCreate,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
    detector: DetectionClient = Depends(get_detection_client),
):
    """Score a shelf photo against a template's committed layout."""
    template = await get_template(db, UUID(str(user["customer_id"])), body.template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Planogram template not found")

    try:
        detection = await detector.detect(body.image_url)
        result = match_layout(layout_from_json(template.layout), detection)
    except (DetectionError, ScanFailedError) as exc:
        logger.warning("compliance.scan_failed", template_id=str(template.template_id), error=str(exc))
        raise HTTPException(status_code=502, detail="Scan failed")

    try:
        scan = await record_scan(
            db,
            template,
            result,
            image_url=body.image_url,
            shelf_image_id=body.shelf_image_id,
            scanned_by=user.get("sub"),
        )
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to save")

    overlay = [
        OverlayPrediction(label=p.label, confidence=p.confidence, x=p.x, y=p.y, width=p.width, height=p.height)
        for p in filter_for_display(detection.predictions)
    ]
    return _serialize_scan(scan, template.name, overlay)


@router.get("/scans", response_model=list[ScanResponse])
async def get_scans(
    template_id: UUID | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Compliance history, most recent first. Omit template_id for the trend feed."""
    records = await list_scans(db, UUID(str(user["customer_id"])), template_id=template_id, limit=limit)
    return [_serialize_scan(r.scan, r.template_name) for r in records]


def _serialize_scan(scan, template_name: str, overlay: list[OverlayPrediction] | None = None) -> dict:
    return {
        "scan_id": scan.scan_id,
        "template_id": scan.template_id,
        "template_name": template_name,
        "shelf_image_id": scan.shelf_image_id,
        "image_url": scan.image_url,
        "compliance_score": scan.compliance_score,
        "total_expected": scan.total_expected,
        "total_found": scan.total_found,
        "total_missing": scan.total_missing,
        "total_extra": scan.total_extra,
        "details": scan.details or [],
        "scanned_by": scan.scanned_by,
        "created_at": scan.created_at,
        "overlay": overlay,
    }
