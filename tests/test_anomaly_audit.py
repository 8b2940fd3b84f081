import threading

import pytest

from policy.audit_policy import AuditPolicy
from scaffold.advisory import UNAVAILABLE
from scaffold.anomalies import AnomalyWarning, Severity
from scaffold.compiler import compile_and_audit
from scaffold.validators import RULES, audit_quantities


def _raw(**overrides):
    raw = {
        "buildingHeightMm": 9900,
        "scaffoldWidthMm": 600,
        "walls": [{"side": "north", "wallLengthMm": 10000, "stairAccessCount": 1}],
    }
    raw.update(overrides)
    return raw


class _StubAdvisor:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def suggest(self, config, quantities):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def test_narrow_scaffold_without_stairs_has_no_width_critical():
    _, audit = compile_and_audit(_raw(walls=[{"side": "north", "wallLengthMm": 10000}]))
    assert audit.success is True
    assert audit.critical == []
    assert not [w for w in audit.all_findings() if w.component == "scaffoldWidth"]


def test_narrow_scaffold_with_stair_is_one_critical():
    _, audit = compile_and_audit(_raw())
    assert len(audit.critical) == 1
    assert audit.critical[0].component == "scaffoldWidth"
    assert audit.overall_assessment.startswith("⚠️ 1件の重大な問題")


def test_no_enabled_walls_is_one_critical_and_empty_bom():
    result, audit = compile_and_audit(
        _raw(walls=[{"side": "north", "wallLengthMm": 10000, "stairAccessCount": 1, "enabled": False}])
    )
    assert result.summary == []
    assert len(audit.critical) == 1
    assert audit.critical[0].component == "walls"


def test_low_building_is_exactly_one_warning():
    _, audit = compile_and_audit(_raw(buildingHeightMm=1500, walls=[{"side": "north", "wallLengthMm": 10000}]))
    assert len(audit.warnings) == 1
    assert audit.warnings[0].component == "buildingHeight"
    assert audit.critical == []
    assert audit.info == []


def test_tall_building_without_stairs_warns_twice():
    _, audit = compile_and_audit(_raw(buildingHeightMm=60000, walls=[{"side": "north", "wallLengthMm": 10000}]))
    assert sorted(w.component for w in audit.warnings) == ["buildingHeight", "stairAccess"]


def test_wall_length_band_uses_enabled_walls_only():
    raw = _raw(
        buildingHeightMm=3000,
        walls=[
            {"side": "north", "wallLengthMm": 800},
            {"side": "east", "wallLengthMm": 250000},
            {"side": "south", "wallLengthMm": 500, "enabled": False},
        ],
    )
    audit = audit_quantities(raw, [])
    comps = sorted(w.component for w in audit.warnings)
    assert comps == ["wall_east", "wall_north"]


def test_zero_quantities_are_info_one_per_row():
    quantities = [
        {"componentType": "post", "componentName": "支柱", "calculatedQuantity": 10},
        {"componentType": "brace", "componentName": "ブレス", "calculatedQuantity": 4, "adjustedQuantity": 0},
        {"componentType": "stair", "componentName": "階段", "calculatedQuantity": 0},
    ]
    audit = audit_quantities(_raw(buildingHeightMm=3000, walls=[{"side": "north", "wallLengthMm": 10000}]), quantities)
    assert [w.component for w in audit.info] == ["brace", "stair"]
    assert audit.info[0].message_en == "ブレス quantity is 0."
    assert audit.overall_assessment == "✅ 重大な問題はありません。2件の情報があります。"


def test_density_uses_adjusted_quantity():
    raw = _raw(buildingHeightMm=3000, walls=[{"side": "north", "wallLengthMm": 10000}])
    # 30 m2 of face.
    high = [{"componentType": "post", "componentName": "支柱", "calculatedQuantity": 100, "adjustedQuantity": 1000}]
    low = [{"componentType": "post", "componentName": "支柱", "calculatedQuantity": 1000, "adjustedQuantity": 100}]
    assert [w.component for w in audit_quantities(raw, high).warnings] == ["overall_density"]
    assert audit_quantities(raw, low).warnings == []


def test_clean_project_reports_nothing():
    raw = _raw(scaffoldWidthMm=900)
    _, audit = compile_and_audit(raw)
    assert audit.total_anomalies == 0
    assert audit.overall_assessment == "✅ 問題は検出されませんでした。見積もりは正常です。"


def test_policy_thresholds_are_honoured():
    policy = AuditPolicy(min_building_height_mm=500, stair_required_height_mm=20000)
    audit = audit_quantities(_raw(buildingHeightMm=1500, scaffoldWidthMm=900), [], policy=policy)
    assert audit.warnings == []


def test_audit_never_raises():
    audit = audit_quantities({"buildingHeightMm": -1, "walls": []}, [])
    assert audit.success is False
    assert audit.error
    assert audit.total_anomalies == 0

    audit = audit_quantities(_raw(), [42])
    assert audit.success is False
    assert "mappings" in audit.error


def test_every_rule_is_traced():
    trace = []
    audit_quantities(_raw(), [], trace=trace)
    evals = [e for e in trace if e["event"] == "constraint_eval"]
    assert [e["data"]["constraint_id"] for e in evals] == [rule_id for rule_id, _ in RULES]
    width = [e for e in evals if e["data"]["constraint_id"] == "stair_width"][0]
    assert width["data"]["ok"] is False
    assert width["level"] == "critical"


def test_advisory_findings_are_merged_by_severity():
    advisor = _StubAdvisor(
        [
            AnomalyWarning(Severity.WARNING, "brace", "ブレスが少ない", "Few braces"),
            {"severity": "critical", "component": "plank", "messageJa": "踏板不足", "messageEn": "Planks missing"},
            {"severity": "bogus", "component": "tie", "messageEn": "odd"},
        ]
    )
    _, audit = compile_and_audit(_raw(scaffoldWidthMm=900), advisor=advisor)
    assert advisor.calls == 1
    assert audit.advisory_used is True
    assert [w.component for w in audit.critical] == ["plank"]
    assert [w.component for w in audit.warnings] == ["brace"]
    assert [w.component for w in audit.info] == ["tie"]


def test_unavailable_advisor_contributes_nothing():
    _, audit = compile_and_audit(_raw(), advisor=_StubAdvisor(UNAVAILABLE))
    assert audit.advisory_used is False
    assert len(audit.critical) == 1


def test_failing_advisor_is_swallowed():
    _, audit = compile_and_audit(_raw(), advisor=_StubAdvisor(RuntimeError("boom")))
    assert audit.success is True
    assert audit.advisory_used is False
    assert len(audit.critical) == 1


def test_malformed_advisor_reply_is_swallowed():
    _, audit = compile_and_audit(_raw(), advisor=_StubAdvisor({"not": "a list"}))
    assert audit.success is True
    assert audit.advisory_used is False
    assert len(audit.critical) == 1


def test_slow_advisor_is_abandoned_after_timeout():
    release = threading.Event()

    class _Slow:
        def suggest(self, config, quantities):
            release.wait(5.0)
            return [AnomalyWarning(Severity.CRITICAL, "late", "遅延", "late")]

    try:
        trace = []
        audit = audit_quantities(_raw(), [], advisor=_Slow(), policy=AuditPolicy(advisory_timeout_s=0.05), trace=trace)
    finally:
        release.set()

    assert audit.success is True
    assert audit.advisory_used is False
    assert [w.component for w in audit.critical] == ["scaffoldWidth"]
    advisory = [e for e in trace if e["event"] == "advisory_pass"][0]
    assert advisory["data"]["reason"] == "timeout"


def test_audit_result_wire_names():
    _, audit = compile_and_audit(_raw())
    d = audit.to_dict()
    assert set(d) == {
        "success",
        "totalAnomalies",
        "critical",
        "warnings",
        "info",
        "overallAssessment",
        "error",
        "advisoryUsed",
    }
    assert set(d["critical"][0]) == {"severity", "component", "messageJa", "messageEn", "suggestion"}
    assert d["critical"][0]["severity"] == "critical"


def test_string_severity_from_advisor_is_filed_by_severity():
    advisor = _StubAdvisor(
        [
            AnomalyWarning("critical", "plank", "踏板不足", "Planks missing"),
            AnomalyWarning("warning", "brace", "ブレスが少ない", "Few braces"),
        ]
    )
    _, audit = compile_and_audit(_raw(scaffoldWidthMm=900), advisor=advisor)
    assert [w.component for w in audit.critical] == ["plank"]
    assert [w.component for w in audit.warnings] == ["brace"]
    assert audit.info == []
    assert audit.critical[0].severity is Severity.CRITICAL
    assert audit.overall_assessment.startswith("⚠️ 1件の重大な問題")


def test_unknown_severity_string_is_rejected():
    with pytest.raises(ValueError):
        AnomalyWarning("urgent", "plank", "", "")


def test_compile_and_audit_is_idempotent():
    raw = _raw(
        buildingHeightMm=1500,
        walls=[
            {"side": "north", "wallLengthMm": 800, "stairAccessCount": 1},
            {"side": "east", "wallLengthMm": 10000},
        ],
    )
    first_result, first_audit = compile_and_audit(raw)
    second_result, second_audit = compile_and_audit(raw)
    assert first_audit.total_anomalies > 0
    assert first_audit.to_dict() == second_audit.to_dict()
    assert first_result.to_dict() == second_result.to_dict()
