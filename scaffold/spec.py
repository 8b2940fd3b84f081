from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ScaffoldFamily(str, Enum):
    KUSABI = "kusabi"
    WAKUGUMI = "wakugumi"


class Category(str, Enum):
    """Component categories in display order. Tags are part of the export contract."""

    BASE_JACK = "base_jack"
    POST = "post"
    BRACE = "brace"
    RAIL = "rail"
    PLANK = "plank"
    TOE_BOARD = "toe_board"
    TIE = "tie"
    STAIR = "stair"
    END_STOPPER = "end_stopper"

    @property
    def order(self) -> int:
        return list(Category).index(self) + 1

    @property
    def label_jp(self) -> str:
        return CATEGORY_LABELS[self][0]

    @property
    def label_en(self) -> str:
        return CATEGORY_LABELS[self][1]


CATEGORY_LABELS: dict[Category, tuple[str, str]] = {
    Category.BASE_JACK: ("基礎部材", "Foundation"),
    Category.POST: ("支柱・建枠", "Posts / Frames"),
    Category.BRACE: ("ブレス", "Brace"),
    Category.RAIL: ("布材・下桟", "Rails"),
    Category.PLANK: ("踏板", "Plank"),
    Category.TOE_BOARD: ("巾木", "Toe Board"),
    Category.TIE: ("根がらみ・幅方向布材", "Ties"),
    Category.STAIR: ("階段", "Stair"),
    Category.END_STOPPER: ("端部止め", "End Stopper"),
}

# Rails and ties are the same nuno stock whatever level or face they sit on,
# so they are pooled by size rather than by component type.
SHARED_STOCK_CATEGORIES: frozenset[Category] = frozenset({Category.RAIL, Category.TIE})

SHARED_STOCK_NAMES: dict[Category, tuple[str, str]] = {
    Category.RAIL: ("Rail", "布材"),
    Category.TIE: ("Tie Bar", "布材 (つなぎ)"),
}


class StructureType(str, Enum):
    RENOVATION = "renovation"
    STEEL_FRAME = "steel_frame"
    REINFORCED_CONCRETE = "reinforced_concrete"

    @property
    def cost_multiplier(self) -> float:
        return STRUCTURE_COST_MULTIPLIERS[self]


STRUCTURE_COST_MULTIPLIERS: dict[StructureType, float] = {
    StructureType.RENOVATION: 1.25,
    StructureType.STEEL_FRAME: 1.0,
    StructureType.REINFORCED_CONCRETE: 0.9,
}

STRUCTURE_TYPE_ALIASES: dict[str, StructureType] = {
    "改修工事": StructureType.RENOVATION,
    "S造": StructureType.STEEL_FRAME,
    "RC造": StructureType.REINFORCED_CONCRETE,
}


class EndStopperStyle(str, Enum):
    RAIL = "rail"
    FRAME = "frame"


SCAFFOLD_WIDTHS_MM: tuple[int, ...] = (600, 900, 1200)

KUSABI_SPANS_MM: tuple[int, ...] = (600, 900, 1200, 1500, 1800)
WAKUGUMI_SPANS_MM: tuple[int, ...] = (610, 914, 1219, 1524, 1829)

# Nuno (horizontal bar) stock used for width-direction ties and end stoppers.
RAIL_SIZES_MM: tuple[int, ...] = (200, 300, 600, 900, 1200, 1500, 1800)

KUSABI_LEVEL_HEIGHT_MM = 1800
KUSABI_POST_SIZES_MM: tuple[int, ...] = (1800, 2700, 3600)
KUSABI_TOP_GUARD_SIZES_MM: tuple[int, ...] = (900, 1350, 1800)
WAKUGUMI_FRAME_SIZES_MM: tuple[int, ...] = (1700, 1800, 1900)

MA_CODES: dict[int, str] = {
    225: "MA-2",
    450: "MA-4",
    600: "MA-6",
    900: "MA-9",
    1350: "MA-13",
    1800: "MA-18",
    2700: "MA-27",
    3600: "MA-36",
}

FULL_PLANK_WIDTH_MM = 500
HALF_PLANK_WIDTH_MM = 240


@dataclass(frozen=True)
class PlankLayout:
    full_per_span: int
    half_per_span: int = 0

    @property
    def per_span(self) -> int:
        return self.full_per_span + self.half_per_span


PLANK_LAYOUT_BY_WIDTH: dict[int, PlankLayout] = {
    600: PlankLayout(full_per_span=1),
    900: PlankLayout(full_per_span=1, half_per_span=1),
    1200: PlankLayout(full_per_span=2),
}


def plank_layout(width_mm: int) -> PlankLayout:
    return PLANK_LAYOUT_BY_WIDTH.get(int(width_mm), PLANK_LAYOUT_BY_WIDTH[600])


def ma_code(size_mm: int) -> str:
    return MA_CODES.get(int(size_mm), f"MA-{int(size_mm)}")


def nearest_size(target_mm: float, sizes: tuple[int, ...]) -> int:
    """Catalog value closest to ``target_mm``; ties go to the smaller size."""
    return min(sorted(sizes), key=lambda s: abs(s - float(target_mm)))
