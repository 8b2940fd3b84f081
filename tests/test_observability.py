import json
import logging

import pytest

from observability import metrics
from observability.decision_trace import add_constraint_eval, add_trace_event, summarize_trace, trace_to_ndjson_bytes
from observability.logging import JsonLogFormatter
from scaffold.compiler import compile_and_audit, compile_project


@pytest.fixture
def fresh_metrics():
    metrics.reset_metrics()
    metrics.setup_metrics()
    yield metrics
    metrics.reset_metrics()


def test_trace_ndjson_is_valid_json_per_line():
    t = []
    add_trace_event(t, "a", {"x": 1})
    add_trace_event(t, "b", {"y": "z"}, level="warn")
    add_constraint_eval(t, decision_id="d", constraint_id="c", ok=False, reason="r", subject="north")
    data = trace_to_ndjson_bytes(t).decode("utf-8").strip().splitlines()
    assert len(data) == 3
    a, b, c = (json.loads(line) for line in data)
    assert a["event"] == "a"
    assert b["level"] == "warn"
    assert "id" in a and "ts" in a
    assert c["data"] == {"decision_id": "d", "constraint_id": "c", "ok": False, "reason": "r", "subject": "north"}


def test_unserializable_event_does_not_break_trace():
    t = []
    add_trace_event(t, "bad", {"obj": object()})
    line = json.loads(trace_to_ndjson_bytes(t).decode("utf-8"))
    assert line["event"] == "trace_serialize_error"
    assert line["data"] == {"bad_event": "bad", "keys": ["obj"]}
    assert line["level"] == "warning"


def test_compile_trace_has_one_event_per_wall():
    trace = []
    compile_project(
        {
            "buildingHeightMm": 6000,
            "walls": [{"side": "north", "wallLengthMm": 9000}, {"side": "east", "wallLengthMm": 4000, "enabled": False}],
        },
        trace=trace,
    )
    walls = [e for e in trace if e["event"] == "wall_computed"]
    assert [e["data"]["side"] for e in walls] == ["north", "east"]
    assert walls[1]["data"]["component_rows"] == 0
    assert trace[0]["event"] == "compile_start"
    assert trace[-1]["event"] == "bom_aggregated"


def test_json_log_formatter_includes_extra_fields():
    record = logging.LogRecord("scaffold.compiler", logging.INFO, __file__, 1, "compiled %s", ("kusabi",), None)
    record.project_id = "p-1"
    payload = json.loads(JsonLogFormatter().format(record))
    assert payload["msg"] == "compiled kusabi"
    assert payload["level"] == "INFO"
    assert payload["project_id"] == "p-1"


def test_metrics_are_noops_before_setup():
    metrics.reset_metrics()
    metrics.record_compile("kusabi", 0.01)
    metrics.record_findings("critical", 2)
    metrics.record_advisory_failure("timeout")
    assert metrics.metrics_payload() == b""


def test_metrics_count_compiles_and_findings(fresh_metrics):
    compile_and_audit(
        {
            "buildingHeightMm": 9900,
            "scaffoldWidthMm": 600,
            "walls": [{"side": "north", "wallLengthMm": 10000, "stairAccessCount": 1}],
        }
    )
    text = fresh_metrics.metrics_payload().decode("utf-8")
    assert 'scaffold_compile_total{family="kusabi"} 1.0' in text
    assert 'scaffold_audit_findings_total{severity="critical"} 1.0' in text
    assert "scaffold_compile_seconds_count 1.0" in text


def test_trace_summary_counts_compile_and_audit_events():
    trace = []
    compile_and_audit(
        {
            "buildingHeightMm": 1500,
            "walls": [{"side": "north", "wallLengthMm": 9000}, {"side": "east", "wallLengthMm": 4000}],
        },
        trace=trace,
    )
    summary = summarize_trace(trace)
    assert list(summary["events"]) == ["compile_start", "wall_computed", "bom_aggregated", "constraint_eval"]
    assert summary["events"]["wall_computed"] == 2
    assert summary["events"]["constraint_eval"] == 7
    assert "building_height" in summary["failedRules"]
    assert "enabled_walls" not in summary["failedRules"]
