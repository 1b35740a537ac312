"""
Shelf Layout — Working-Copy Editing for Planogram Designs.

A layout is an immutable value: a tuple of shelf rows, each holding an
ordered tuple of product placements. Every edit returns a new layout, so
the designer can diff, undo, or throw away a working copy without ever
touching what was committed.

Product identity is a tagged variant:
  - Registered(product_id, name)  → counts toward compliance expectations
  - Unregistered(name)            → placeholder only, never scored

Stored form (planogram_templates.layout / planogram_versions.layout):
  [{"id", "label", "width": {"value", "unit"} | null,
    "products": [{"instanceId", "skuId" | null, "name", "facings"}]}]
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any, Union

MIN_FACINGS = 1


class LayoutError(ValueError):
    """Raised when an edit targets a row or placement that does not exist."""


# ── Product identity ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Registered:
    product_id: str
    name: str


@dataclass(frozen=True)
class Unregistered:
    name: str


ProductRef = Union[Registered, Unregistered]


# ── Layout value types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ShelfWidth:
    """Raw width as entered. `cm` is None when the value is unusable."""

    value: str
    unit: str = "cm"

    @property
    def cm(self) -> float | None:
        try:
            amount = float(str(self.value).strip())
        except (TypeError, ValueError):
            return None
        if amount != amount or amount <= 0:  # NaN or non-positive
            return None
        return amount * 100 if self.unit == "m" else amount


@dataclass(frozen=True)
class ProductPlacement:
    instance_id: str
    product: ProductRef
    facings: int = MIN_FACINGS

    @property
    def name(self) -> str:
        return self.product.name


@dataclass(frozen=True)
class ShelfRow:
    id: str
    label: str
    products: tuple[ProductPlacement, ...] = ()
    width: ShelfWidth | None = None


Layout = tuple[ShelfRow, ...]


def _new_id() -> str:
    return uuid.uuid4().hex


def _clamp_facings(n: Any) -> int:
    try:
        value = int(n)
    except (TypeError, ValueError):
        return MIN_FACINGS
    return max(MIN_FACINGS, value)


def _find_row(layout: Layout, row_id: str) -> int:
    for idx, row in enumerate(layout):
        if row.id == row_id:
            return idx
    raise LayoutError(f"Unknown row: {row_id}")


def _replace_row(layout: Layout, row_id: str, **changes) -> Layout:
    layout = tuple(layout)
    idx = _find_row(layout, row_id)
    return layout[:idx] + (replace(layout[idx], **changes),) + layout[idx + 1 :]


def _find_placement(row: ShelfRow, instance_id: str) -> int:
    for idx, placement in enumerate(row.products):
        if placement.instance_id == instance_id:
            return idx
    raise LayoutError(f"Unknown placement {instance_id} in row {row.id}")


# ── Row operations ─────────────────────────────────────────────────────────


def add_row(layout: Layout, label: str | None = None) -> Layout:
    """Append an empty row, labelled "Shelf N" unless told otherwise."""
    row = ShelfRow(id=_new_id(), label=label if label is not None else f"Shelf {len(layout) + 1}")
    return tuple(layout) + (row,)


def remove_row(layout: Layout, row_id: str) -> Layout:
    layout = tuple(layout)
    idx = _find_row(layout, row_id)
    return layout[:idx] + layout[idx + 1 :]


def rename_row(layout: Layout, row_id: str, label: str) -> Layout:
    return _replace_row(layout, row_id, label=label)


def set_row_width(layout: Layout, row_id: str, value: Any, unit: str = "cm") -> Layout:
    """Record the raw width. Anything non-positive or unparsable reads back as unset."""
    width = None if value is None or str(value).strip() == "" else ShelfWidth(str(value).strip(), unit)
    return _replace_row(layout, row_id, width=width)


# ── Placement operations ───────────────────────────────────────────────────


def add_placement(layout: Layout, row_id: str, product: ProductRef) -> Layout:
    """Place one more instance of `product` at the end of the row (facings=1).

    The same product may appear several times in a row; each placement gets
    its own instance id.
    """
    if not isinstance(product, (Registered, Unregistered)):
        raise LayoutError(f"Unsupported product reference: {product!r}")
    row = layout[_find_row(layout, row_id)]
    placement = ProductPlacement(instance_id=_new_id(), product=product, facings=MIN_FACINGS)
    return _replace_row(layout, row_id, products=row.products + (placement,))


def remove_placement(layout: Layout, row_id: str, instance_id: str) -> Layout:
    row = layout[_find_row(layout, row_id)]
    idx = _find_placement(row, instance_id)
    return _replace_row(layout, row_id, products=row.products[:idx] + row.products[idx + 1 :])


def set_facings(layout: Layout, row_id: str, instance_id: str, n: int) -> Layout:
    row = layout[_find_row(layout, row_id)]
    idx = _find_placement(row, instance_id)
    updated = replace(row.products[idx], facings=_clamp_facings(n))
    return _replace_row(layout, row_id, products=row.products[:idx] + (updated,) + row.products[idx + 1 :])


def total_facings(layout: Layout) -> int:
    return sum(p.facings for row in layout for p in row.products)


# ── Serialization ──────────────────────────────────────────────────────────


def layout_to_json(layout: Iterable[ShelfRow]) -> list[dict]:
    """Convert a layout value to its stored array-of-objects form."""
    rows = []
    for row in layout:
        rows.append(
            {
                "id": row.id,
                "label": row.label,
                "width": {"value": row.width.value, "unit": row.width.unit} if row.width else None,
                "products": [
                    {
                        "instanceId": p.instance_id,
                        "skuId": p.product.product_id if isinstance(p.product, Registered) else None,
                        "name": p.product.name,
                        "facings": p.facings,
                    }
                    for p in row.products
                ],
            }
        )
    return rows


def layout_from_json(data: list[dict] | None) -> Layout:
    """Parse the stored form. Missing ids are minted, facings are clamped."""
    rows = []
    for raw_row in data or []:
        if not isinstance(raw_row, dict):
            raise LayoutError(f"Row must be an object, got {type(raw_row).__name__}")
        placements = []
        for raw in raw_row.get("products") or []:
            if not isinstance(raw, dict):
                raise LayoutError(f"Placement must be an object, got {type(raw).__name__}")
            name = str(raw.get("name") or "")
            sku_id = raw.get("skuId")
            product: ProductRef = Registered(str(sku_id), name) if sku_id else Unregistered(name)
            placements.append(
                ProductPlacement(
                    instance_id=str(raw.get("instanceId") or _new_id()),
                    product=product,
                    facings=_clamp_facings(raw.get("facings", MIN_FACINGS)),
                )
            )
        raw_width = raw_row.get("width")
        width = None
        if isinstance(raw_width, dict) and raw_width.get("value") not in (None, ""):
            width = ShelfWidth(str(raw_width["value"]), str(raw_width.get("unit") or "cm"))
        label = raw_row.get("label")
        rows.append(
            ShelfRow(
                id=str(raw_row.get("id") or _new_id()),
                label=f"Shelf {len(rows) + 1}" if label is None else str(label),
                products=tuple(placements),
                width=width,
            )
        )
    return tuple(rows)
