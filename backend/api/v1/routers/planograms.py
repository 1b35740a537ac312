"""
Planograms Router — Templates, layout saves, and version history.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_tenant_db
from db.models import PlanogramTemplate
from retail.layout import LayoutError, layout_from_json
from retail.scans import latest_scores
from retail.versioning import (
    PersistenceError,
    VersionConflictError,
    VersionNotFoundError,
    commit_layout,
    count_versions,
    create_template,
    duplicate_template,
    get_template,
    list_versions,
    restore_version,
)

router = APIRouter(prefix="/api/v1/planograms", tags=["planograms"])

TemplateStatus = Literal["draft", "active", "archived"]


# ─── Schemas ────────────────────────────────────────────────────────────────


class PlacementPayload(BaseModel):
    instanceId: str | None = None
    skuId: str | None = None
    name: str = ""
    facings: int = 1


class WidthPayload(BaseModel):
    value: str | int | float
    unit: Literal["cm", "m"] = "cm"


class RowPayload(BaseModel):
    id: str | None = None
    label: str | None = None
    width: WidthPayload | None = None
    products: list[PlacementPayload] = []


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    store_id: UUID | None = None
    shelf_id: UUID | None = None
    status: TemplateStatus = "draft"
    layout: list[RowPayload] = []


class TemplateUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    store_id: UUID | None = None
    shelf_id: UUID | None = None
    status: TemplateStatus | None = None


class LayoutCommit(BaseModel):
    layout: list[RowPayload]
    change_notes: str | None = None
    expected_version: int | None = Field(None, ge=0)


class TemplateResponse(BaseModel):
    template_id: UUID
    customer_id: UUID
    store_id: UUID | None
    shelf_id: UUID | None
    name: str
    description: str | None
    status: str
    layout: list[dict]
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    versions_count: int = 0
    latest_compliance: int | None = None

    model_config = {"from_attributes": True}


class VersionResponse(BaseModel):
    version_id: UUID
    template_id: UUID
    version_number: int
    layout: list[dict]
    change_notes: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[TemplateResponse])
async def list_templates(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status: TemplateStatus | None = None,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """List planogram templates, most recently updated first."""
    query = select(PlanogramTemplate).where(PlanogramTemplate.customer_id == _customer_id(user))
    if status:
        query = query.where(PlanogramTemplate.status == status)
    query = query.order_by(PlanogramTemplate.updated_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    templates = result.scalars().all()

    template_ids = [t.template_id for t in templates]
    versions_map = await count_versions(db, template_ids)
    scores_map = await latest_scores(db, template_ids)
    return [_serialize_template(t, versions_map, scores_map) for t in templates]


@router.post("/", response_model=TemplateResponse, status_code=201)
async def create_planogram(
    body: TemplateCreate,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Create a template and its version 1."""
    layout = _parse_layout(body.layout)
    try:
        template = await create_template(
            db,
            customer_id=_customer_id(user),
            name=body.name,
            description=body.description,
            store_id=body.store_id,
            shelf_id=body.shelf_id,
            status=body.status,
            layout=layout,
            created_by=user.get("sub"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to save")
    return _serialize_template(template, {template.template_id: 1}, {})


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_planogram(
    template_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Get a single template by ID."""
    template = await _get_or_404(db, user, template_id)
    versions_map = await count_versions(db, [template.template_id])
    scores_map = await latest_scores(db, [template.template_id])
    return _serialize_template(template, versions_map, scores_map)


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_planogram(
    template_id: UUID,
    update: TemplateUpdate,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Update template metadata. Layout changes go through PUT /layout."""
    template = await _get_or_404(db, user, template_id)

    for field, value in update.model_dump(exclude_unset=True).items():
        if field == "name" and value is not None:
            value = value.strip()
            if not value:
                raise HTTPException(status_code=422, detail="Template name must not be empty")
        if field in {"name", "status"} and value is None:
            continue
        setattr(template, field, value)
    template.updated_at = datetime.utcnow()

    await db.commit()
    await db.refresh(template)
    versions_map = await count_versions(db, [template.template_id])
    scores_map = await latest_scores(db, [template.template_id])
    return _serialize_template(template, versions_map, scores_map)


@router.delete("/{template_id}", status_code=204)
async def delete_planogram(
    template_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Delete a template together with its versions and scans."""
    template = await _get_or_404(db, user, template_id)
    await db.delete(template)
    await db.commit()


@router.put("/{template_id}/layout", response_model=VersionResponse)
async def save_layout(
    template_id: UUID,
    body: LayoutCommit,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Commit a layout as the template's current state and append a version."""
    template = await _get_or_404(db, user, template_id)
    layout = _parse_layout(body.layout)
    try:
        return await commit_layout(
            db,
            template,
            layout,
            change_notes=body.change_notes,
            author=user.get("sub"),
            expected_version=body.expected_version,
        )
    except VersionConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to save")


@router.post("/{template_id}/duplicate", response_model=TemplateResponse, status_code=201)
async def duplicate_planogram(
    template_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Copy a template into a new draft with a fresh history."""
    template = await _get_or_404(db, user, template_id)
    try:
        copy = await duplicate_template(db, template, created_by=user.get("sub"))
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to save")
    return _serialize_template(copy, {copy.template_id: 1}, {})


@router.get("/{template_id}/versions", response_model=list[VersionResponse])
async def get_versions(
    template_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Version history, newest first."""
    template = await _get_or_404(db, user, template_id)
    return await list_versions(db, template.template_id)


@router.post("/{template_id}/versions/{version_number}/restore", response_model=VersionResponse, status_code=201)
async def restore_planogram_version(
    template_id: UUID,
    version_number: int,
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
):
    """Make an old version current again, recorded as a new version."""
    template = await _get_or_404(db, user, template_id)
    try:
        return await restore_version(db, template, version_number, author=user.get("sub"))
    except VersionNotFoundError:
        raise HTTPException(status_code=404, detail="Version not found")
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to save")


def _customer_id(user: dict) -> UUID:
    return UUID(str(user["customer_id"]))


async def _get_or_404(db: AsyncSession, user: dict, template_id: UUID) -> PlanogramTemplate:
    template = await get_template(db, _customer_id(user), template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Planogram template not found")
    return template


def _parse_layout(rows: list[RowPayload]):
    try:
        return layout_from_json([row.model_dump() for row in rows])
    except LayoutError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _serialize_template(
    template: PlanogramTemplate,
    versions_map: dict[UUID, int],
    scores_map: dict[UUID, int],
) -> dict:
    return {
        "template_id": template.template_id,
        "customer_id": template.customer_id,
        "store_id": template.store_id,
        "shelf_id": template.shelf_id,
        "name": template.name,
        "description": template.description,
        "status": template.status,
        "layout": template.layout or [],
        "created_by": template.created_by,
        "created_at": template.created_at,
        "updated_at": template.updated_at,
        "versions_count": versions_map.get(template.template_id, 0),
        "latest_compliance": scores_map.get(template.template_id),
    }
