"""
Planogram Versioning — Atomic Save & Restore With Append-Only History.

Every save does two writes in one transaction:
  - planogram_templates.layout ← the candidate layout
  - planogram_versions         ← new row numbered max(existing) + 1

Either both land or neither does, so a template's current layout always
equals the layout of its highest-numbered version. Restoring an old
version is just another save (note "Restored from version N"); version
numbers are never reused.

Optional optimistic concurrency: callers may pass the version number they
started editing from, and the save is refused if someone else committed
in the meantime.
"""

import uuid
from collections.abc import Sequence
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import TEMPLATE_STATUSES, PlanogramTemplate, PlanogramVersion
from retail.layout import Layout, layout_from_json, layout_to_json

logger = structlog.get_logger()

INITIAL_VERSION_NOTE = "Initial version"


class VersionNotFoundError(LookupError):
    """The requested version number does not exist for this template."""


class VersionConflictError(Exception):
    """The template moved on since the caller loaded it."""

    def __init__(self, expected: int, current: int):
        super().__init__(f"Expected version {expected}, but template is at version {current}")
        self.expected = expected
        self.current = current


class PersistenceError(Exception):
    """A save could not be written. Nothing was committed."""


# ── Reads ──────────────────────────────────────────────────────────────────


async def get_template(
    db: AsyncSession,
    customer_id: uuid.UUID,
    template_id: uuid.UUID,
) -> PlanogramTemplate | None:
    result = await db.execute(
        select(PlanogramTemplate).where(
            PlanogramTemplate.template_id == template_id,
            PlanogramTemplate.customer_id == customer_id,
        )
    )
    return result.scalar_one_or_none()


async def latest_version_number(db: AsyncSession, template_id: uuid.UUID) -> int:
    """Highest committed version number, or 0 if the template has none."""
    result = await db.execute(
        select(func.max(PlanogramVersion.version_number)).where(PlanogramVersion.template_id == template_id)
    )
    return int(result.scalar() or 0)


async def get_version(db: AsyncSession, template_id: uuid.UUID, version_number: int) -> PlanogramVersion | None:
    result = await db.execute(
        select(PlanogramVersion).where(
            PlanogramVersion.template_id == template_id,
            PlanogramVersion.version_number == version_number,
        )
    )
    return result.scalar_one_or_none()


async def list_versions(db: AsyncSession, template_id: uuid.UUID) -> list[PlanogramVersion]:
    """All versions of a template, newest first."""
    result = await db.execute(
        select(PlanogramVersion)
        .where(PlanogramVersion.template_id == template_id)
        .order_by(PlanogramVersion.version_number.desc())
    )
    return list(result.scalars().all())


async def count_versions(db: AsyncSession, template_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, int]:
    if not template_ids:
        return {}
    result = await db.execute(
        select(PlanogramVersion.template_id, func.count().label("count"))
        .where(PlanogramVersion.template_id.in_(template_ids))
        .group_by(PlanogramVersion.template_id)
    )
    return {row.template_id: int(row.count) for row in result.all()}


# ── Writes ─────────────────────────────────────────────────────────────────


async def create_template(
    db: AsyncSession,
    customer_id: uuid.UUID,
    name: str,
    description: str | None = None,
    store_id: uuid.UUID | None = None,
    shelf_id: uuid.UUID | None = None,
    status: str = "draft",
    layout: Layout = (),
    created_by: str | None = None,
    initial_note: str = INITIAL_VERSION_NOTE,
) -> PlanogramTemplate:
    """Create a template together with its version 1, in one transaction."""
    if not customer_id:
        raise ValueError("customer_id is required")
    if not name or not name.strip():
        raise ValueError("Template name must not be empty")
    if status not in TEMPLATE_STATUSES:
        raise ValueError(f"Invalid status: {status}")

    layout_json = layout_to_json(layout)
    template = PlanogramTemplate(
        template_id=uuid.uuid4(),
        customer_id=customer_id,
        store_id=store_id,
        shelf_id=shelf_id,
        name=name.strip(),
        description=description,
        status=status,
        layout=layout_json,
        created_by=created_by,
    )
    try:
        db.add(template)
        db.add(
            PlanogramVersion(
                template_id=template.template_id,
                version_number=1,
                layout=layout_json,
                change_notes=initial_note,
                created_by=created_by,
            )
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("planogram.create_failed", name=name, error=str(exc))
        raise PersistenceError("Failed to create planogram template") from exc

    logger.info("planogram.created", template_id=str(template.template_id), customer_id=str(customer_id))
    return template


async def commit_layout(
    db: AsyncSession,
    template: PlanogramTemplate,
    layout: Layout,
    change_notes: str | None = None,
    author: str | None = None,
    expected_version: int | None = None,
) -> PlanogramVersion:
    """Make `layout` the template's current layout and append one version.

    Raises VersionConflictError (nothing written) if `expected_version` is
    given and is not the current latest number, and PersistenceError
    (rolled back) on any database failure.
    """
    layout_json = layout_to_json(layout)
    template_id = template.template_id
    try:
        current = await latest_version_number(db, template_id)
        if expected_version is not None and expected_version != current:
            raise VersionConflictError(expected_version, current)

        next_number = current + 1
        version = PlanogramVersion(
            template_id=template_id,
            version_number=next_number,
            layout=layout_json,
            change_notes=change_notes or f"Version {next_number}",
            created_by=author,
        )
        template.layout = layout_json
        template.updated_at = datetime.utcnow()
        db.add(version)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("planogram.commit_failed", template_id=str(template_id), error=str(exc))
        raise PersistenceError("Failed to save planogram layout") from exc

    logger.info(
        "planogram.version_committed",
        template_id=str(template_id),
        version_number=version.version_number,
        rows=len(layout_json),
    )
    return version


async def restore_version(
    db: AsyncSession,
    template: PlanogramTemplate,
    version_number: int,
    author: str | None = None,
) -> PlanogramVersion:
    """Re-commit an old version's layout as a brand-new version."""
    version = await get_version(db, template.template_id, version_number)
    if version is None:
        raise VersionNotFoundError(f"Version {version_number} not found")

    return await commit_layout(
        db,
        template,
        layout_from_json(version.layout),
        change_notes=f"Restored from version {version_number}",
        author=author,
    )


async def duplicate_template(
    db: AsyncSession,
    template: PlanogramTemplate,
    created_by: str | None = None,
) -> PlanogramTemplate:
    """Copy a template's current layout into a new draft with its own history."""
    return await create_template(
        db,
        customer_id=template.customer_id,
        name=f"{template.name} (Copy)",
        description=template.description,
        store_id=template.store_id,
        shelf_id=template.shelf_id,
        status="draft",
        layout=layout_from_json(template.layout),
        created_by=created_by,
        initial_note=f'Duplicated from "{template.name}"',
    )
