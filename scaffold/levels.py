from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from scaffold.spec import KUSABI_LEVEL_HEIGHT_MM


@dataclass(frozen=True)
class LevelStack:
    height_mm: int
    level_height_mm: int
    levels: int

    @property
    def top_plank_height_mm(self) -> int:
        return self.levels * self.level_height_mm

    @property
    def overshoot_mm(self) -> int:
        """How far the last (always full) level rises above the requested height."""
        return self.top_plank_height_mm - self.height_mm

    def to_dict(self) -> dict[str, Any]:
        return {
            "heightMm": self.height_mm,
            "levelHeightMm": self.level_height_mm,
            "levels": self.levels,
            "topPlankHeightMm": self.top_plank_height_mm,
            "overshootMm": self.overshoot_mm,
        }


def stack_levels(height_mm: int, level_height_mm: int) -> LevelStack:
    # A full level is erected even for a small remainder.
    h = int(height_mm)
    lh = int(level_height_mm)
    if h <= 0:
        raise ValueError(f"height must be > 0, got {height_mm}")
    if lh <= 0:
        raise ValueError(f"level height must be > 0, got {level_height_mm}")
    return LevelStack(height_mm=h, level_height_mm=lh, levels=max(1, -(-h // lh)))


def posts_per_line(levels: int, post_size_mm: int) -> int:
    """Main kusabi posts stacked per post line. Longer posts span several 1800mm levels."""
    if int(post_size_mm) <= KUSABI_LEVEL_HEIGHT_MM:
        return int(levels)
    return -(-int(levels) * KUSABI_LEVEL_HEIGHT_MM // int(post_size_mm))
