from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from contracts.project_config import ProjectConfig, parse_project_config
from observability.metrics import record_compile
from policy.audit_policy import AuditPolicy
from scaffold.advisory import Advisor
from scaffold.anomalies import AuditResult
from scaffold.bom import BillOfMaterials, MatrixRow, aggregate
from scaffold.calculator import Component, WallResult, calculate_wall
from scaffold.trace import trace_bom_aggregated, trace_compile_start, trace_wall_computed
from scaffold.validators import audit_quantities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileResult:
    config: ProjectConfig
    walls: list[WallResult]
    bom: BillOfMaterials

    @property
    def summary(self) -> list[Component]:
        return self.bom.summary

    @property
    def matrix(self) -> list[MatrixRow]:
        return self.bom.matrix

    @property
    def total_quantity(self) -> int:
        return self.bom.total_quantity

    def wall(self, side: str) -> WallResult:
        for w in self.walls:
            if w.side == side:
                return w
        raise KeyError(side)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scaffoldType": self.config.family.value,
            "scaffoldWidthMm": int(self.config.scaffold_width_mm),
            "buildingHeightMm": int(self.config.building_height_mm),
            "structureType": self.config.structure_type.value,
            "costMultiplier": self.config.structure_type.cost_multiplier,
            "params": self.config.params.model_dump(mode="json", by_alias=True),
            "walls": [w.to_dict() for w in self.walls],
            **self.bom.to_dict(),
        }


def compile_project(config, *, trace: list[dict[str, Any]] | None = None) -> CompileResult:
    """
    Validate a project and compute every wall's components plus the aggregated BOM.

    Raises ConfigValidationError before any computation when the input is invalid.
    """
    cfg = parse_project_config(config)
    t0 = time.perf_counter()
    if trace is not None:
        trace_compile_start(
            trace,
            {"family": cfg.family.value, "walls": len(cfg.walls), "scaffold_width_mm": int(cfg.scaffold_width_mm)},
        )

    walls: list[WallResult] = []
    for wall in cfg.walls:
        result = calculate_wall(wall, cfg)
        walls.append(result)
        if trace is not None:
            trace_wall_computed(trace, result)

    bom = aggregate(walls)
    if trace is not None:
        trace_bom_aggregated(trace, bom)

    dt = time.perf_counter() - t0
    record_compile(cfg.family.value, dt)
    logger.info(
        "compiled %s project: %d walls (%d enabled), %d parts, %d pieces in %.1fms",
        cfg.family.value,
        len(walls),
        len(cfg.enabled_walls),
        len(bom.summary),
        bom.total_quantity,
        dt * 1000.0,
    )
    return CompileResult(config=cfg, walls=walls, bom=bom)


def compile_and_audit(
    config,
    *,
    advisor: Advisor | None = None,
    policy: AuditPolicy | None = None,
    trace: list[dict[str, Any]] | None = None,
) -> tuple[CompileResult, AuditResult]:
    result = compile_project(config, trace=trace)
    audit = audit_quantities(result.config, result.summary, advisor=advisor, policy=policy, trace=trace)
    return result, audit
