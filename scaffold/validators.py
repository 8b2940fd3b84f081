from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from contracts.project_config import ProjectConfig, parse_project_config
from observability.decision_trace import add_constraint_eval, add_trace_event, new_decision_id
from observability.metrics import record_findings
from policy.audit_policy import AuditPolicy
from scaffold.advisory import Advisor, run_advisory
from scaffold.anomalies import AnomalyWarning, AuditResult, Severity
from scaffold.calculator import Component, side_label

logger = logging.getLogger(__name__)


def quantity_rows(quantities: Iterable[Component | Mapping[str, Any]]) -> list[dict[str, Any]]:
    """
    Normalize audit input to ``{type, name, sizeSpec, unit, qty}`` rows.

    Mappings use the adjusted quantity when present, else the calculated one.
    """
    rows: list[dict[str, Any]] = []
    for q in quantities:
        if isinstance(q, Component):
            rows.append(
                {"type": q.type, "name": q.name_jp or q.name, "sizeSpec": q.size_spec, "unit": q.unit, "qty": int(q.quantity)}
            )
            continue
        if not isinstance(q, Mapping):
            raise TypeError(f"quantity rows must be components or mappings, got {type(q).__name__}")
        qty = q.get("adjustedQuantity")
        if qty is None:
            qty = q.get("calculatedQuantity")
        if qty is None:
            qty = q.get("quantity", 0)
        ctype = q.get("componentType") or q.get("type") or "unknown"
        rows.append(
            {
                "type": str(ctype),
                "name": str(q.get("componentName") or q.get("nameJp") or q.get("name") or ctype),
                "sizeSpec": str(q.get("sizeSpec", "")),
                "unit": str(q.get("unit", "")),
                "qty": float(qty),
            }
        )
    return rows


def check_enabled_walls(config: ProjectConfig, rows, policy: AuditPolicy) -> list[AnomalyWarning]:
    if config.enabled_walls:
        return []
    return [
        AnomalyWarning(
            Severity.CRITICAL,
            "walls",
            "有効な壁面がありません。少なくとも1面を有効にしてください。",
            "No walls are enabled. Enable at least one wall.",
            "壁面設定を確認してください。",
        )
    ]


def check_building_height(config: ProjectConfig, rows, policy: AuditPolicy) -> list[AnomalyWarning]:
    h = int(config.building_height_mm)
    if h < policy.min_building_height_mm:
        return [
            AnomalyWarning(
                Severity.WARNING,
                "buildingHeight",
                f"建物高さ ({h}mm) が非常に低いです。入力値を確認してください。",
                f"Building height ({h}mm) is very low. Please verify.",
                "一般的な建物高さは3,000mm以上です。",
            )
        ]
    if h > policy.max_building_height_mm:
        return [
            AnomalyWarning(
                Severity.WARNING,
                "buildingHeight",
                f"建物高さ ({h}mm) が非常に高いです。超高層建築の場合は特殊な足場が必要です。",
                f"Building height ({h}mm) is very tall. Special scaffolding may be needed.",
                f"{policy.max_building_height_mm // 1000}m超の建物には特殊な安全対策が必要です。",
            )
        ]
    return []


def check_wall_lengths(config: ProjectConfig, rows, policy: AuditPolicy) -> list[AnomalyWarning]:
    out: list[AnomalyWarning] = []
    for wall in config.enabled_walls:
        length = int(wall.wall_length_mm)
        label = side_label(wall.side)
        if length < policy.min_wall_length_mm:
            out.append(
                AnomalyWarning(
                    Severity.WARNING,
                    f"wall_{wall.side}",
                    f"{label}の壁長さ ({length}mm) が{policy.min_wall_length_mm / 1000:g}m未満です。入力値を確認してください。",
                    f"{wall.side} wall length ({length}mm) is less than {policy.min_wall_length_mm / 1000:g}m. Please verify.",
                    "壁の長さが正しいか確認してください。",
                )
            )
        if length > policy.max_wall_length_mm:
            out.append(
                AnomalyWarning(
                    Severity.WARNING,
                    f"wall_{wall.side}",
                    f"{label}の壁長さ ({length}mm) が{policy.max_wall_length_mm / 1000:g}mを超えています。",
                    f"{wall.side} wall length ({length}mm) exceeds {policy.max_wall_length_mm / 1000:g}m.",
                    "大規模建築の場合は壁面を分割することを推奨します。",
                )
            )
    return out


def _total_stairs(config: ProjectConfig) -> int:
    return sum(int(w.stair_access_count) for w in config.enabled_walls)


def check_stair_access(config: ProjectConfig, rows, policy: AuditPolicy) -> list[AnomalyWarning]:
    h = int(config.building_height_mm)
    if h > policy.stair_required_height_mm and _total_stairs(config) == 0:
        return [
            AnomalyWarning(
                Severity.WARNING,
                "stairAccess",
                f"建物高さ {h}mm に対して階段セットが0です。安全のため最低1セットの階段が必要です。",
                f"No stair access for {h}mm building height. At least 1 stair set is recommended for safety.",
                "労働安全衛生法により、高所作業では昇降設備が必要です。",
            )
        ]
    return []


def check_stair_width(config: ProjectConfig, rows, policy: AuditPolicy) -> list[AnomalyWarning]:
    width = int(config.scaffold_width_mm)
    if _total_stairs(config) > 0 and width < policy.min_stair_width_mm:
        return [
            AnomalyWarning(
                Severity.CRITICAL,
                "scaffoldWidth",
                f"足場幅 {width}mm では階段セットを設置できません。{policy.min_stair_width_mm}mm以上が必要です。",
                f"Scaffold width {width}mm is too narrow for stair sets. Minimum {policy.min_stair_width_mm}mm required.",
                f"足場幅を{policy.min_stair_width_mm}mm以上に変更してください。",
            )
        ]
    return []


def check_zero_quantities(config: ProjectConfig, rows, policy: AuditPolicy) -> list[AnomalyWarning]:
    return [
        AnomalyWarning(
            Severity.INFO,
            r["type"],
            f"{r['name']} の数量が0です。",
            f"{r['name']} quantity is 0.",
            "意図的な場合は問題ありません。",
        )
        for r in rows
        if r["qty"] == 0
    ]


def scaffold_area_sqm(config: ProjectConfig) -> float:
    """Face area of the enabled walls; summed in mm2 and divided once."""
    total_mm2 = sum(int(w.wall_length_mm) * config.wall_height(w) for w in config.enabled_walls)
    return total_mm2 / 1_000_000


def check_component_density(config: ProjectConfig, rows, policy: AuditPolicy) -> list[AnomalyWarning]:
    area = scaffold_area_sqm(config)
    if area <= 0:
        return []
    density = sum(r["qty"] for r in rows) / area
    if density > policy.max_component_density_per_sqm:
        return [
            AnomalyWarning(
                Severity.WARNING,
                "overall_density",
                f"部材密度 ({density:.1f}個/m²) が通常より高いです。壁面の寸法を確認してください。",
                f"Component density ({density:.1f}/m²) is higher than typical. Verify wall dimensions.",
                "壁の長さや高さの入力ミスがないか確認してください。",
            )
        ]
    return []


Rule = Callable[[ProjectConfig, list[dict[str, Any]], AuditPolicy], list[AnomalyWarning]]

# Evaluated in this order, every rule on every audit.
RULES: list[tuple[str, Rule]] = [
    ("enabled_walls", check_enabled_walls),
    ("building_height", check_building_height),
    ("wall_length", check_wall_lengths),
    ("stair_access", check_stair_access),
    ("stair_width", check_stair_width),
    ("zero_quantity", check_zero_quantities),
    ("component_density", check_component_density),
]


def _worst(findings: list[AnomalyWarning]) -> str:
    for sev in (Severity.CRITICAL, Severity.WARNING, Severity.INFO):
        if any(f.severity is sev for f in findings):
            return sev.value
    return "info"


def run_rules(
    config: ProjectConfig,
    rows: list[dict[str, Any]],
    policy: AuditPolicy,
    *,
    trace: list[dict[str, Any]] | None = None,
) -> list[AnomalyWarning]:
    findings: list[AnomalyWarning] = []
    decision_id = new_decision_id("audit")
    for rule_id, rule in RULES:
        found = rule(config, rows, policy)
        if trace is not None:
            add_constraint_eval(
                trace,
                decision_id=decision_id,
                constraint_id=rule_id,
                ok=not found,
                reason="passed" if not found else f"{len(found)}_findings",
                metrics={"findings": len(found)},
                severity=_worst(found),
            )
        findings.extend(found)
    return findings


def audit_quantities(
    config,
    quantities: Iterable[Component | Mapping[str, Any]],
    *,
    advisor: Advisor | None = None,
    policy: AuditPolicy | None = None,
    trace: list[dict[str, Any]] | None = None,
) -> AuditResult:
    """
    Rule-based anomaly audit of a quantity list, plus the optional advisory pass.

    Never raises: a failure inside the audit comes back as ``success=False`` with
    ``error`` set, which is distinct from a clean result with empty lists.
    """
    policy = policy or AuditPolicy()
    result = AuditResult()
    try:
        cfg = parse_project_config(config)
        rows = quantity_rows(quantities)
        result.extend(run_rules(cfg, rows, policy, trace=trace))

        if advisor is not None:
            extra, reason = run_advisory(advisor, cfg, rows, policy.advisory_timeout_s)
            if extra is not None:
                result.extend(extra)
                result.advisory_used = True
            if trace is not None:
                add_trace_event(
                    trace,
                    "advisory_pass",
                    {"used": result.advisory_used, "findings": len(extra or []), "reason": reason},
                    level="info" if reason is None else "warning",
                )
        result.finalize()
    except Exception as exc:
        logger.exception("anomaly audit failed")
        return AuditResult.failed(exc)

    record_findings(Severity.CRITICAL.value, len(result.critical))
    record_findings(Severity.WARNING.value, len(result.warnings))
    record_findings(Severity.INFO.value, len(result.info))
    logger.info(
        "audit: %d critical, %d warnings, %d info (advisory %s)",
        len(result.critical),
        len(result.warnings),
        len(result.info),
        "used" if result.advisory_used else "not used",
    )
    return result
