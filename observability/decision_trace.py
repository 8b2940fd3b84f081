from __future__ import annotations

import json
import time
import uuid
from collections import Counter
from typing import Any

# Events a compile_and_audit run can emit, in the order they first appear.
COMPILE_EVENTS = ("compile_start", "wall_computed", "bom_aggregated", "constraint_eval", "advisory_pass")


def add_trace_event(
    trace: list[dict[str, Any]],
    event: str,
    data: dict[str, Any] | None = None,
    *,
    level: str = "info",
) -> None:
    """
    Append one event to a compile/audit trace.

    A compile emits ``compile_start``, one ``wall_computed`` per wall and one
    ``bom_aggregated``; the audit then adds one ``constraint_eval`` per rule and
    an ``advisory_pass`` when an advisor is configured. Payloads carry counts
    and wall sides, not component lists.
    """
    trace.append(
        {
            "id": str(uuid.uuid4()),
            "ts": float(time.time()),
            "event": str(event),
            "level": str(level),
            "data": data if data is not None else {},
        }
    )


def add_constraint_eval(
    trace: list[dict[str, Any]],
    *,
    decision_id: str,
    constraint_id: str,
    ok: bool,
    reason: str | None = None,
    metrics: dict[str, Any] | None = None,
    subject: str | None = None,
    severity: str = "info",
) -> None:
    """Record one audit rule outcome. ``subject`` names the wall side or component the rule flagged."""
    payload: dict[str, Any] = {
        "decision_id": str(decision_id),
        "constraint_id": str(constraint_id),
        "ok": bool(ok),
    }
    if reason is not None:
        payload["reason"] = str(reason)
    if metrics is not None:
        payload["metrics"] = metrics
    if subject is not None:
        payload["subject"] = str(subject)

    add_trace_event(trace, "constraint_eval", payload, level=str(severity))


def new_decision_id(kind: str) -> str:
    """Id shared by every constraint_eval of one audit, e.g. ``audit:<uuid>``."""
    return f"{kind}:{uuid.uuid4()}"


def summarize_trace(trace: list[dict[str, Any]]) -> dict[str, Any]:
    """Event counts plus the audit rules that failed, for the estimate response."""
    counts = Counter(str(ev.get("event")) for ev in trace if isinstance(ev, dict))
    failed = sorted(
        {
            str(ev["data"].get("constraint_id"))
            for ev in trace
            if isinstance(ev, dict) and ev.get("event") == "constraint_eval" and not ev.get("data", {}).get("ok", True)
        }
    )
    ordered = {name: counts[name] for name in COMPILE_EVENTS if counts[name]}
    ordered.update({name: n for name, n in sorted(counts.items()) if name not in ordered})
    return {"events": ordered, "failedRules": failed}


def trace_to_ndjson_bytes(trace: list[dict[str, Any]]) -> bytes:
    lines: list[str] = []
    for ev in trace:
        try:
            lines.append(json.dumps(ev, ensure_ascii=False, separators=(",", ":")))
        except (TypeError, ValueError):
            # Replace the event with a marker naming it and the keys its data held.
            data = ev.get("data") if isinstance(ev, dict) else None
            safe = {
                "id": ev.get("id") if isinstance(ev, dict) else None,
                "ts": float(time.time()),
                "event": "trace_serialize_error",
                "level": "warning",
                "data": {
                    "bad_event": str(ev.get("event")) if isinstance(ev, dict) else type(ev).__name__,
                    "keys": sorted(str(k) for k in data) if isinstance(data, dict) else [],
                },
            }
            lines.append(json.dumps(safe, ensure_ascii=False, separators=(",", ":")))

    return ("\n".join(lines) + ("\n" if lines else "")).encode("utf-8")
