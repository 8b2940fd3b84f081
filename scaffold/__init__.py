# scaffold/__init__.py
"""
Scaffold BOM compiler: package exports.

Attributes resolve lazily so `scaffold.spans` or `scaffold.levels` can be
imported without loading the auditor's HTTP and metrics stack.
"""

from importlib import import_module
from typing import Dict, Tuple

__version__ = "1.0.0"

_EXPORTS: Dict[str, Tuple[str, str]] = {
    # Compile pipeline
    "compile_project": (".compiler", "compile_project"),
    "compile_and_audit": (".compiler", "compile_and_audit"),
    "CompileResult": (".compiler", "CompileResult"),
    # Per-wall calculation
    "calculate_wall": (".calculator", "calculate_wall"),
    "Component": (".calculator", "Component"),
    "WallResult": (".calculator", "WallResult"),
    "decompose_spans": (".spans", "decompose_spans"),
    "stack_levels": (".levels", "stack_levels"),
    # Aggregation
    "aggregate": (".bom", "aggregate"),
    "grouping_key": (".bom", "grouping_key"),
    "BillOfMaterials": (".bom", "BillOfMaterials"),
    # Audit
    "audit_quantities": (".validators", "audit_quantities"),
    "AnomalyWarning": (".anomalies", "AnomalyWarning"),
    "AuditResult": (".anomalies", "AuditResult"),
    "Severity": (".anomalies", "Severity"),
    "UNAVAILABLE": (".advisory", "UNAVAILABLE"),
    "HttpAdvisor": (".advisory", "HttpAdvisor"),
    # Catalogs
    "Category": (".spec", "Category"),
    "ScaffoldFamily": (".spec", "ScaffoldFamily"),
    "StructureType": (".spec", "StructureType"),
    # Wiring
    "RuntimeState": (".runtime", "RuntimeState"),
}

__all__ = list(_EXPORTS.keys())


def __getattr__(name: str):
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, attr_name = _EXPORTS[name]
    module = import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__():
    return sorted(set(globals()) | set(__all__))
