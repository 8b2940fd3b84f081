from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from contracts.project_config import KusabiParams, WakugumiParams
from scaffold.levels import LevelStack, posts_per_line, stack_levels
from scaffold.spans import decompose_segments, group_spans, stair_span_indices
from scaffold.spec import (
    FULL_PLANK_WIDTH_MM,
    HALF_PLANK_WIDTH_MM,
    RAIL_SIZES_MM,
    Category,
    EndStopperStyle,
    ma_code,
    nearest_size,
    plank_layout,
)

logger = logging.getLogger(__name__)

# From this width up a stair set takes the place of one plank per level.
STAIR_REPLACES_PLANK_MIN_WIDTH_MM = 900

SIDE_LABELS_JP: dict[str, str] = {"north": "北面", "south": "南面", "east": "東面", "west": "西面"}


@dataclass(frozen=True)
class Component:
    type: str
    category: Category
    name: str
    name_jp: str
    size_spec: str
    unit: str
    quantity: int
    sort_order: int
    material_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "category": self.category.value,
            "categoryJp": self.category.label_jp,
            "categoryEn": self.category.label_en,
            "name": self.name,
            "nameJp": self.name_jp,
            "sizeSpec": self.size_spec,
            "unit": self.unit,
            "quantity": int(self.quantity),
            "sortOrder": int(self.sort_order),
            "materialCode": self.material_code,
        }


@dataclass(frozen=True)
class WallResult:
    side: str
    side_label: str
    enabled: bool
    wall_length_mm: int
    wall_height_mm: int
    spans: list[int]
    level_stack: LevelStack
    stair_access_count: int
    stair_span_indices: list[int] = field(default_factory=list)
    segments: list[dict[str, int]] | None = None
    components: list[Component] = field(default_factory=list)

    @property
    def total_spans(self) -> int:
        return len(self.spans)

    @property
    def post_positions(self) -> int:
        return len(self.spans) + 1

    @property
    def levels(self) -> int:
        return self.level_stack.levels

    def to_dict(self) -> dict[str, Any]:
        return {
            "side": self.side,
            "sideJp": self.side_label,
            "enabled": self.enabled,
            "wallLengthMm": self.wall_length_mm,
            "wallHeightMm": self.wall_height_mm,
            "spans": list(self.spans),
            "totalSpans": self.total_spans,
            "postPositions": self.post_positions,
            "levelCalc": self.level_stack.to_dict(),
            "stairAccessCount": self.stair_access_count,
            "stairSpanIndices": list(self.stair_span_indices),
            "segments": self.segments,
            "components": [c.to_dict() for c in self.components],
        }


def side_label(side: str) -> str:
    s = str(side)
    if s in SIDE_LABELS_JP:
        return SIDE_LABELS_JP[s]
    for prefix, label in (("edge-", "辺"), ("segment-", "セグメント")):
        if s.startswith(prefix) and s[len(prefix):].isdigit():
            return f"{label}{int(s[len(prefix):]) + 1}"
    return s


class _Rows:
    """Accumulates one wall's components with running sort order."""

    def __init__(self, code_prefix: str) -> None:
        self.code_prefix = code_prefix
        self.items: list[Component] = []

    def add(
        self,
        type_: str,
        category: Category,
        name: str,
        name_jp: str,
        size_spec: str,
        unit: str,
        quantity: int,
        code: str | None = None,
    ) -> None:
        self.items.append(
            Component(
                type=type_,
                category=category,
                name=name,
                name_jp=name_jp,
                size_spec=str(size_spec),
                unit=unit,
                quantity=max(0, int(quantity)),
                sort_order=len(self.items) + 1,
                material_code=f"{self.code_prefix}-{code}" if code else None,
            )
        )


def _add_base_jacks(rows: _Rows, post_positions: int) -> None:
    rows.add("jack_base", Category.BASE_JACK, "Jack Base", "ジャッキベース", "調整式", "本", post_positions * 2, "JB")


def _add_planks(rows: _Rows, span_groups: dict[int, int], levels: int, width_mm: int, stair_count: int) -> None:
    layout = plank_layout(width_mm)
    deduction = stair_count * levels if width_mm >= STAIR_REPLACES_PLANK_MIN_WIDTH_MM else 0

    full = {size: layout.full_per_span * count * levels for size, count in span_groups.items()}
    half = {size: layout.half_per_span * count * levels for size, count in span_groups.items()}

    # Stairs sit in the longest spans, so the deduction is drawn from the largest
    # full planks first and spills into smaller sizes, then into half planks.
    for pool in (full, half):
        for size in sorted(pool, reverse=True):
            take = min(deduction, pool[size])
            pool[size] -= take
            deduction -= take

    for size in span_groups:
        rows.add(
            "plank",
            Category.PLANK,
            f"Plank {FULL_PLANK_WIDTH_MM}×{size}mm",
            "踏板",
            f"{FULL_PLANK_WIDTH_MM}×{size}",
            "枚",
            full[size],
            f"ANCHI-{FULL_PLANK_WIDTH_MM}x{size}",
        )
    if layout.half_per_span > 0:
        for size in span_groups:
            rows.add(
                "plank_half",
                Category.PLANK,
                f"Half Plank {HALF_PLANK_WIDTH_MM}×{size}mm",
                "踏板 (半幅)",
                f"{HALF_PLANK_WIDTH_MM}×{size}",
                "枚",
                half[size],
                f"ANCHI-HALF-{HALF_PLANK_WIDTH_MM}x{size}",
            )


def _add_ties(rows: _Rows, span_groups: dict[int, int], post_positions: int, levels: int, width_mm: int) -> None:
    width_bar = nearest_size(width_mm, RAIL_SIZES_MM)
    # Ground ties (negarami): base level only, both faces along the span plus one per post line.
    for size, count in span_groups.items():
        rows.add("ground_tie", Category.TIE, f"Ground Tie {size}mm", "根がらみ", str(size), "本", count * 2)
    rows.add("ground_tie", Category.TIE, f"Ground Tie {width_bar}mm", "根がらみ", str(width_bar), "本", post_positions)
    # Width-direction bars carrying the planks, shared between neighbouring spans.
    rows.add("width_tie", Category.TIE, f"Plank Bearer {width_bar}mm", "幅方向布材", str(width_bar), "本", post_positions * levels)


def _add_end_stopper_rails(rows: _Rows, levels: int, width_mm: int) -> None:
    # Two rails per open end per level, cut to the bar nearest the scaffold width.
    bar = nearest_size(width_mm, RAIL_SIZES_MM)
    rows.add("end_stopper", Category.END_STOPPER, f"End Stopper Rail {bar}mm", "端部布材", str(bar), "本", 4 * levels, f"STOPPER-RAIL-{bar}")


def _add_stairs(rows: _Rows, stair_count: int, levels: int) -> None:
    if stair_count > 0:
        rows.add("stair_set", Category.STAIR, "Stair Set", "階段セット", "1階段+2手摺+1ガード", "セット", stair_count * levels, "STAIR-SET")


def _kusabi_rows(params: KusabiParams, span_groups: dict[int, int], post_positions: int, levels: int, width_mm: int, stair_count: int) -> list[Component]:
    rows = _Rows("KUSABI")
    _add_base_jacks(rows, post_positions)

    main = ma_code(params.post_size_mm)
    rows.add(
        "post_main",
        Category.POST,
        f"Post {main}",
        f"支柱 {main}",
        f"{params.post_size_mm}mm",
        "本",
        post_positions * 2 * posts_per_line(levels, params.post_size_mm),
        main,
    )
    top = ma_code(params.top_guard_height_mm)
    rows.add(
        "post_top",
        Category.POST,
        f"Top Guard Post {top}",
        f"上部支柱 {top}",
        f"{params.top_guard_height_mm}mm",
        "本",
        post_positions * 2,
        f"{top}-TOP",
    )

    # Braces on the outer face only.
    for size, count in span_groups.items():
        rows.add("brace", Category.BRACE, f"Brace {size}mm", "ブレス", str(size), "本", count * levels, f"BRACE-{size}")
    # Handrails on the inner face, two heights per level.
    for size, count in span_groups.items():
        rows.add("inner_rail", Category.RAIL, f"Handrail {size}mm", "手摺", str(size), "本", count * 2 * levels)

    _add_planks(rows, span_groups, levels, width_mm, stair_count)

    for size, count in span_groups.items():
        rows.add("toe_board", Category.TOE_BOARD, f"Toe Board {size}mm", "巾木", str(size), "枚", count * 2 * levels, f"HABAKI-{size}")

    _add_ties(rows, span_groups, post_positions, levels, width_mm)
    _add_end_stopper_rails(rows, levels, width_mm)
    _add_stairs(rows, stair_count, levels)
    return rows.items


def _wakugumi_rows(params: WakugumiParams, span_groups: dict[int, int], post_positions: int, levels: int, width_mm: int, stair_count: int) -> list[Component]:
    rows = _Rows("WAKU")
    _add_base_jacks(rows, post_positions)

    frame = f"{width_mm}×{params.frame_size_mm}"
    rows.add("frame", Category.POST, f"Frame {frame}", "建枠", frame, "枠", post_positions * 2 * levels, f"FRAME-{width_mm}x{params.frame_size_mm}")

    for size, count in span_groups.items():
        rows.add("brace", Category.BRACE, f"Brace {size}mm", "ブレス", str(size), "本", count * 2 * levels, f"BRACE-{size}")
    for size, count in span_groups.items():
        rows.add("bottom_rail", Category.RAIL, f"Bottom Rail {size}mm", "下桟", str(size), "本", count * 2 * levels)

    _add_planks(rows, span_groups, levels, width_mm, stair_count)

    habaki = int(params.habaki_count_per_span)
    for size, count in span_groups.items():
        rows.add("toe_board", Category.TOE_BOARD, f"Toe Board {size}mm", "巾木", str(size), "枚", count * habaki * levels, f"HABAKI-{size}")

    _add_ties(rows, span_groups, post_positions, levels, width_mm)

    if EndStopperStyle(params.end_stopper_style) is EndStopperStyle.RAIL:
        _add_end_stopper_rails(rows, levels, width_mm)
    else:
        rows.add("end_stopper", Category.END_STOPPER, f"End Frame {width_mm}mm", "妻側枠", str(width_mm), "枠", 2 * levels, f"STOPPER-FRAME-{width_mm}")

    _add_stairs(rows, stair_count, levels)
    return rows.items


def family_components(
    params: KusabiParams | WakugumiParams,
    spans: list[int],
    levels: int,
    width_mm: int,
    stair_count: int,
) -> list[Component]:
    """Every component row for one wall run; quantities are exact non-negative integers."""
    span_groups = group_spans(spans)
    post_positions = len(spans) + 1
    if isinstance(params, KusabiParams):
        return _kusabi_rows(params, span_groups, post_positions, int(levels), int(width_mm), int(stair_count))
    if isinstance(params, WakugumiParams):
        return _wakugumi_rows(params, span_groups, post_positions, int(levels), int(width_mm), int(stair_count))
    raise TypeError(f"unsupported family parameters: {type(params).__name__}")


def calculate_wall(wall, config) -> WallResult:
    """
    Quantities for one validated wall of a validated project config.

    Disabled walls keep their spans and levels for display but carry no components.
    """
    params = config.params
    height = int(wall.wall_height_mm or config.building_height_mm)
    stack = stack_levels(height, params.level_height_mm)

    if wall.segments:
        runs = [int(s.length_mm) for s in wall.segments]
    else:
        runs = [int(wall.wall_length_mm)]
    spans = decompose_segments(runs, params.preferred_span_mm, params.span_catalog_mm)

    stair_count = int(wall.stair_access_count)
    stair_idx = stair_span_indices(spans, stair_count, wall.kaidan_offsets_mm) if stair_count > 0 else []

    components: list[Component] = []
    if wall.enabled:
        components = family_components(params, spans, stack.levels, config.scaffold_width_mm, stair_count)

    logger.debug(
        "wall %s: %d spans, %d levels, %d component rows",
        wall.side,
        len(spans),
        stack.levels,
        len(components),
    )

    return WallResult(
        side=str(wall.side),
        side_label=side_label(wall.side),
        enabled=bool(wall.enabled),
        wall_length_mm=int(wall.wall_length_mm),
        wall_height_mm=height,
        spans=spans,
        level_stack=stack,
        stair_access_count=stair_count,
        stair_span_indices=stair_idx,
        segments=[{"lengthMm": int(s.length_mm), "offsetMm": int(s.offset_mm)} for s in wall.segments] if wall.segments else None,
        components=components,
    )
