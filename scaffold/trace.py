from __future__ import annotations

from typing import Any

from observability.decision_trace import add_trace_event


def trace_compile_start(trace: list[dict[str, Any]], meta: dict[str, Any] | None = None) -> None:
    add_trace_event(trace, "compile_start", meta or {})


def trace_wall_computed(trace: list[dict[str, Any]], wall) -> None:
    add_trace_event(
        trace,
        "wall_computed",
        {
            "side": wall.side,
            "enabled": bool(wall.enabled),
            "wall_length_mm": int(wall.wall_length_mm),
            "span_total_mm": int(sum(wall.spans)),
            "spans": len(wall.spans),
            "levels": int(wall.levels),
            "stairs": int(wall.stair_access_count),
            "component_rows": len(wall.components),
        },
    )


def trace_bom_aggregated(trace: list[dict[str, Any]], bom) -> None:
    add_trace_event(
        trace,
        "bom_aggregated",
        {"unique_parts": len(bom.summary), "total_quantity": bom.total_quantity, "walls": list(bom.wall_ids)},
    )
