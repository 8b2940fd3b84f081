from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from config.load_config import AppConfig, find_default_config, load_app_config
from observability.decision_trace import summarize_trace, trace_to_ndjson_bytes
from observability.logging import setup_logging
from observability.metrics import setup_metrics
from policy.audit_policy import AuditPolicy
from policy.load_policy import find_policy_file, load_policy_from_yaml
from scaffold.advisory import Advisor, build_advisor
from scaffold.anomalies import AuditResult
from scaffold.compiler import CompileResult, compile_and_audit

logger = logging.getLogger(__name__)


@dataclass
class RuntimeState:
    """Process-wide wiring: app config, audit policy and the optional advisor."""

    config: AppConfig = field(default_factory=AppConfig)
    config_source: str | None = None

    policy: AuditPolicy = field(default_factory=AuditPolicy)
    policy_source: str | None = None

    advisor: Advisor | None = None

    @classmethod
    def build(cls, config_path: str | Path | None = None, *, configure: bool = True) -> "RuntimeState":
        cfg_path = Path(config_path) if config_path else find_default_config()
        if cfg_path is not None:
            config = load_app_config(cfg_path)
            config_source = str(cfg_path).replace("\\", "/")
        else:
            config = AppConfig()
            config_source = None

        if configure:
            setup_logging(config.observability)
            if config.observability.metrics_enabled:
                setup_metrics()

        policy_file: Path | None = None
        if config.policy.policy_yaml_path:
            candidate = Path(config.policy.policy_yaml_path)
            if candidate.exists() and candidate.is_file():
                policy_file = candidate
            else:
                logger.warning("policy file %s not found; searching defaults", candidate)
        if policy_file is None:
            policy_file = find_policy_file()
        if policy_file is not None:
            policy = load_policy_from_yaml(policy_file)
            policy_source = str(policy_file).replace("\\", "/")
        else:
            policy = AuditPolicy()
            policy_source = None

        return cls(
            config=config,
            config_source=config_source,
            policy=policy,
            policy_source=policy_source,
            advisor=build_advisor(config.advisory),
        )

    def estimate(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """
        Compile and audit one project given as wire-format input, filling unset
        family/width/structure fields from the configured defaults.
        """
        data = self.config.defaults.apply(dict(raw))
        trace: list[dict[str, Any]] | None = [] if self.config.observability.trace_enabled else None
        result, audit = self.run(data, trace=trace)
        out = {"calculation": result.to_dict(), "audit": audit.to_dict()}
        if trace is not None:
            out["trace"] = trace_to_ndjson_bytes(trace).decode("utf-8")
            out["traceSummary"] = summarize_trace(trace)
        return out

    def run(self, data, *, trace: list[dict[str, Any]] | None = None) -> tuple[CompileResult, AuditResult]:
        return compile_and_audit(data, advisor=self.advisor, policy=self.policy, trace=trace)
