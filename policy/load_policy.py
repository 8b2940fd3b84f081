from __future__ import annotations

from pathlib import Path

import yaml

from policy.audit_policy import AuditPolicy

_INT_FIELDS = (
    "min_building_height_mm",
    "max_building_height_mm",
    "min_wall_length_mm",
    "max_wall_length_mm",
    "stair_required_height_mm",
    "min_stair_width_mm",
)
_FLOAT_FIELDS = ("max_component_density_per_sqm", "advisory_timeout_s")


def _build_audit_policy(raw: dict) -> AuditPolicy:
    unknown = sorted(set(raw) - set(_INT_FIELDS) - set(_FLOAT_FIELDS))
    if unknown:
        raise ValueError(f"Unknown audit policy keys: {unknown}")

    defaults = AuditPolicy()
    data = {k: int(raw.get(k, getattr(defaults, k))) for k in _INT_FIELDS}
    data.update({k: float(raw.get(k, getattr(defaults, k))) for k in _FLOAT_FIELDS})

    policy = AuditPolicy(**data)
    if policy.min_building_height_mm >= policy.max_building_height_mm:
        raise ValueError("min_building_height_mm must be below max_building_height_mm")
    if policy.min_wall_length_mm >= policy.max_wall_length_mm:
        raise ValueError("min_wall_length_mm must be below max_wall_length_mm")
    if policy.advisory_timeout_s <= 0:
        raise ValueError("advisory_timeout_s must be > 0")
    return policy


def load_policy_from_yaml(path: Path) -> AuditPolicy:
    """
    Never silently fallback: if YAML exists but is invalid, raise with a clear error.
    If YAML doesn't exist, caller can decide defaults.
    """
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Policy YAML must be a mapping, got {type(raw).__name__}")
    return _build_audit_policy(raw)


def find_policy_file() -> Path | None:
    """
    Resolution order (first hit wins):
      1) ./policy/policy_config.yaml
      2) the copy shipped next to this module
    """
    candidates = [
        Path("policy") / "policy_config.yaml",
        Path(__file__).with_name("policy_config.yaml"),
    ]
    for p in candidates:
        if p.exists() and p.is_file():
            return p
    return None


def load_audit_policy(path: str | Path | None = None) -> AuditPolicy:
    p = Path(path) if path else find_policy_file()
    if p is None:
        return AuditPolicy()
    return load_policy_from_yaml(p)
