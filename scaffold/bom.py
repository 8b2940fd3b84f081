from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Iterable

from scaffold.calculator import Component, WallResult
from scaffold.spec import SHARED_STOCK_CATEGORIES, SHARED_STOCK_NAMES

_FIRST_NUMBER = re.compile(r"(\d+)")


def grouping_key(component: Component) -> str:
    """
    The one key used for totals and for per-wall matrix cells.

    Shared nuno stock (rails, ties) pools by category and size; everything else
    by material code, falling back to type and size.
    """
    if component.category in SHARED_STOCK_CATEGORIES:
        return f"{component.category.value}:{component.size_spec}"
    return component.material_code or f"{component.type}:{component.size_spec}"


def _size_value(size_spec: str) -> int:
    m = _FIRST_NUMBER.search(str(size_spec))
    return int(m.group(1)) if m else 0


def sort_key(component: Component) -> tuple[int, int, int]:
    return component.category.order, _size_value(component.size_spec), component.sort_order


def _representative(component: Component) -> Component:
    if component.category not in SHARED_STOCK_CATEGORIES:
        return component
    name, name_jp = SHARED_STOCK_NAMES[component.category]
    return replace(
        component,
        type=component.category.value,
        name=f"{name} {component.size_spec}mm",
        name_jp=name_jp,
        material_code=None,
    )


def group_components(components: Iterable[Component]) -> dict[str, Component]:
    """Merge rows sharing a grouping key; quantities add up, first row wins for labels."""
    grouped: dict[str, Component] = {}
    for c in components:
        key = grouping_key(c)
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = _representative(c)
        else:
            grouped[key] = replace(existing, quantity=int(existing.quantity + c.quantity))
    return grouped


@dataclass(frozen=True)
class MatrixRow:
    key: str
    component: Component
    per_wall: dict[str, int]

    @property
    def total(self) -> int:
        return int(sum(self.per_wall.values()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "category": self.component.category.value,
            "name": self.component.name,
            "nameJp": self.component.name_jp,
            "sizeSpec": self.component.size_spec,
            "unit": self.component.unit,
            "perWall": dict(self.per_wall),
            "total": self.total,
        }


@dataclass(frozen=True)
class BillOfMaterials:
    summary: list[Component]
    matrix: list[MatrixRow]
    wall_ids: list[str]

    @property
    def total_quantity(self) -> int:
        return int(sum(c.quantity for c in self.summary))

    def totals_by_key(self) -> dict[str, int]:
        return {grouping_key(c): int(c.quantity) for c in self.summary}

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": [c.to_dict() for c in self.summary],
            "matrix": {"walls": list(self.wall_ids), "rows": [r.to_dict() for r in self.matrix]},
            "totals": {"uniqueParts": len(self.summary), "totalQuantity": self.total_quantity},
        }


def aggregate(walls: list[WallResult]) -> BillOfMaterials:
    """Project totals over enabled walls plus the per-wall x per-component matrix."""
    wall_ids = [w.side for w in walls]
    per_wall = {w.side: group_components(w.components) for w in walls if w.enabled}

    totals: dict[str, Component] = {}
    for grouped in per_wall.values():
        for key, c in grouped.items():
            existing = totals.get(key)
            totals[key] = c if existing is None else replace(existing, quantity=int(existing.quantity + c.quantity))

    summary = sorted(totals.values(), key=sort_key)
    matrix: list[MatrixRow] = []
    for c in summary:
        key = grouping_key(c)
        cells = {side: int(per_wall[side][key].quantity) if key in per_wall.get(side, {}) else 0 for side in wall_ids}
        matrix.append(MatrixRow(key=key, component=c, per_wall=cells))

    return BillOfMaterials(summary=summary, matrix=matrix, wall_ids=wall_ids)
