from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ObservabilityCfg(BaseModel):
    json_logs: bool = True
    log_level: str = "INFO"
    metrics_enabled: bool = True
    # Keep per-request decision traces (one event per wall and per audit rule).
    trace_enabled: bool = False


class PolicyCfg(BaseModel):
    policy_yaml_path: str | None = None


class AdvisoryCfg(BaseModel):
    enabled: bool = False
    # Review endpoint; empty disables the pass even when ``enabled`` is set.
    endpoint: str | None = None
    # Name of the environment variable holding the bearer token, never the token itself.
    api_key_env: str | None = "SCAFFOLD_ADVISORY_API_KEY"
    timeout_s: float = 10.0
    model: str | None = None

    @field_validator("timeout_s")
    @classmethod
    def _timeout_pos(cls, v):
        if float(v) <= 0:
            raise ValueError("advisory timeout must be > 0")
        return float(v)

    def api_key(self) -> str | None:
        if not self.api_key_env:
            return None
        return os.getenv(self.api_key_env) or None


class ProjectDefaultsCfg(BaseModel):
    """Values filled into project input that omits them."""

    model_config = ConfigDict(extra="forbid")

    family: Literal["kusabi", "wakugumi"] = "kusabi"
    scaffold_width_mm: int = 600
    structure_type: str = "renovation"

    def apply(self, raw: dict[str, Any]) -> dict[str, Any]:
        data = dict(raw)
        has_family = any(k in data for k in ("family", "scaffoldType")) or "family" in (data.get("params") or {})
        if not has_family:
            data["family"] = self.family
        if "scaffoldWidthMm" not in data and "scaffold_width_mm" not in data:
            data["scaffoldWidthMm"] = int(self.scaffold_width_mm)
        if "structureType" not in data and "structure_type" not in data:
            data["structureType"] = self.structure_type
        return data


class AppConfig(BaseModel):
    observability: ObservabilityCfg = Field(default_factory=ObservabilityCfg)
    policy: PolicyCfg = Field(default_factory=PolicyCfg)
    advisory: AdvisoryCfg = Field(default_factory=AdvisoryCfg)
    defaults: ProjectDefaultsCfg = Field(default_factory=ProjectDefaultsCfg)


def load_app_config(path: Path) -> AppConfig:
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config YAML must be a mapping, got {type(raw).__name__}")
    return AppConfig(**raw)


def find_default_config() -> Path | None:
    """
    Resolution order (first hit wins):
      1) $SCAFFOLD_CONFIG
      2) ./config/default.yaml
      3) the copy shipped next to this module
    """
    candidates = []
    env = os.getenv("SCAFFOLD_CONFIG")
    if env:
        candidates.append(Path(env))
    candidates.extend([Path("config") / "default.yaml", Path(__file__).with_name("default.yaml")])
    for p in candidates:
        if p.exists() and p.is_file():
            return p
    return None
