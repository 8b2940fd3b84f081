from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class AnomalyWarning:
    severity: Severity
    component: str
    message_ja: str
    message_en: str
    suggestion: str = ""

    def __post_init__(self) -> None:
        # Findings built with a plain "critical"/"warning"/"info" string still file correctly.
        object.__setattr__(self, "severity", Severity(self.severity))

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "component": self.component,
            "messageJa": self.message_ja,
            "messageEn": self.message_en,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AnomalyWarning":
        """Parse an externally produced finding. Unknown severities are downgraded to info."""
        if not isinstance(raw, Mapping):
            raise ValueError(f"finding must be a mapping, got {type(raw).__name__}")
        sev = str(raw.get("severity", "info")).lower()
        severity = Severity(sev) if sev in {s.value for s in Severity} else Severity.INFO
        component = raw.get("component")
        if not component:
            raise ValueError("finding has no component")
        return cls(
            severity=severity,
            component=str(component),
            message_ja=str(raw.get("messageJa") or raw.get("message_ja") or ""),
            message_en=str(raw.get("messageEn") or raw.get("message_en") or ""),
            suggestion=str(raw.get("suggestion") or ""),
        )


def overall_assessment(critical: int, warnings: int, info: int) -> str:
    """One summary line chosen by the highest severity present."""
    if critical > 0:
        return f"⚠️ {critical}件の重大な問題が見つかりました。見積もりを確定する前に修正してください。"
    if warnings > 0:
        return f"⚡ {warnings}件の注意事項があります。確認することを推奨します。"
    if info > 0:
        return f"✅ 重大な問題はありません。{info}件の情報があります。"
    return "✅ 問題は検出されませんでした。見積もりは正常です。"


@dataclass
class AuditResult:
    success: bool = True
    critical: list[AnomalyWarning] = field(default_factory=list)
    warnings: list[AnomalyWarning] = field(default_factory=list)
    info: list[AnomalyWarning] = field(default_factory=list)
    overall_assessment: str = ""
    error: str | None = None
    advisory_used: bool = False

    @property
    def total_anomalies(self) -> int:
        return len(self.critical) + len(self.warnings) + len(self.info)

    def add(self, finding: AnomalyWarning) -> None:
        if finding.severity is Severity.CRITICAL:
            self.critical.append(finding)
        elif finding.severity is Severity.WARNING:
            self.warnings.append(finding)
        else:
            self.info.append(finding)

    def extend(self, findings) -> None:
        for f in findings:
            self.add(f)

    def all_findings(self) -> list[AnomalyWarning]:
        return [*self.critical, *self.warnings, *self.info]

    def finalize(self) -> "AuditResult":
        self.overall_assessment = overall_assessment(len(self.critical), len(self.warnings), len(self.info))
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "totalAnomalies": self.total_anomalies,
            "critical": [w.to_dict() for w in self.critical],
            "warnings": [w.to_dict() for w in self.warnings],
            "info": [w.to_dict() for w in self.info],
            "overallAssessment": self.overall_assessment,
            "error": self.error,
            "advisoryUsed": self.advisory_used,
        }

    @classmethod
    def failed(cls, exc: BaseException) -> "AuditResult":
        return cls(success=False, error=str(exc) or type(exc).__name__)
