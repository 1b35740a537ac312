#!/usr/bin/env python3
"""Seed a demo planogram with a short version history and one scan.

Examples:
  python backend/scripts/seed_planograms.py
  python backend/scripts/seed_planograms.py --database-url sqlite+aiosqlite:///./demo.db --create-tables
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import uuid

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import get_settings
from db.models import PlanogramTemplate  # noqa: F401  (registers tables on Base)
from db.session import Base
from integrations.detection import DetectionResult, Prediction
from retail.compliance import match_layout
from retail.layout import Registered, Unregistered, add_placement, add_row, set_facings, set_row_width
from retail.scans import record_scan
from retail.versioning import commit_layout, create_template

# Dev customer_id must match api/deps.py
DEV_CUSTOMER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

DEMO_PRODUCTS = [
    ("sku-cola-330", "Cola 330ml", 4),
    ("sku-lemon-330", "Lemon Soda 330ml", 3),
    ("sku-water-500", "Still Water 500ml", 2),
]


def _build_layout():
    layout = add_row((), "Top shelf")
    row_id = layout[0].id
    layout = set_row_width(layout, row_id, "1.2", "m")
    for sku, name, facings in DEMO_PRODUCTS:
        layout = add_placement(layout, row_id, Registered(sku, name))
        layout = set_facings(layout, row_id, layout[0].products[-1].instance_id, facings)
    layout = add_row(layout, "Bottom shelf")
    layout = add_placement(layout, layout[1].id, Unregistered("Promo endcap"))
    return layout


async def seed(database_url: str, create_tables: bool) -> None:
    engine = create_async_engine(database_url)
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with SessionLocal() as db:
        template = await create_template(
            db,
            customer_id=DEV_CUSTOMER_ID,
            name="Beverage Aisle 3",
            description="Chilled drinks, eye level",
            created_by="seed-script",
        )
        layout = _build_layout()
        await commit_layout(db, template, layout, change_notes="First full layout", author="seed-script")

        detection = DetectionResult(
            predictions=tuple(
                [Prediction("cola", 0.98)] * 4 + [Prediction("lemon soda", 0.97)] * 2 + [Prediction("chips", 0.91)]
            )
        )
        scan = await record_scan(
            db,
            template,
            match_layout(layout, detection),
            image_url="https://cdn.example.com/demo/aisle3.jpg",
            scanned_by="seed-script",
        )
        print(f"Seeded template {template.template_id} (score {scan.compliance_score})")

    await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed demo planogram data")
    parser.add_argument("--database-url", default=get_settings().database_url)
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    args = parser.parse_args()
    asyncio.run(seed(args.database_url, args.create_tables))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
