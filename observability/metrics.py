from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

COMPILE_TOTAL = None
COMPILE_LATENCY = None
AUDIT_FINDINGS_TOTAL = None
ADVISORY_FAILURES_TOTAL = None

_REGISTRY: CollectorRegistry | None = None


def setup_metrics(registry: CollectorRegistry | None = None) -> CollectorRegistry:
    """
    Register the compiler's collectors once. Until this runs, every ``record_*``
    helper is a no-op, so library callers that never set up metrics pay nothing.
    """
    global COMPILE_TOTAL, COMPILE_LATENCY, AUDIT_FINDINGS_TOTAL, ADVISORY_FAILURES_TOTAL, _REGISTRY
    if _REGISTRY is not None:
        return _REGISTRY

    reg = registry if registry is not None else CollectorRegistry()
    COMPILE_TOTAL = Counter(
        "scaffold_compile_total", "Compiled scaffold projects", ["family"], registry=reg
    )
    COMPILE_LATENCY = Histogram(
        "scaffold_compile_seconds", "Project compile latency", registry=reg
    )
    AUDIT_FINDINGS_TOTAL = Counter(
        "scaffold_audit_findings_total", "Anomaly findings by severity", ["severity"], registry=reg
    )
    ADVISORY_FAILURES_TOTAL = Counter(
        "scaffold_advisory_failures_total", "Advisory passes that contributed nothing", ["reason"], registry=reg
    )
    _REGISTRY = reg
    return reg


def reset_metrics() -> None:
    global COMPILE_TOTAL, COMPILE_LATENCY, AUDIT_FINDINGS_TOTAL, ADVISORY_FAILURES_TOTAL, _REGISTRY
    COMPILE_TOTAL = COMPILE_LATENCY = AUDIT_FINDINGS_TOTAL = ADVISORY_FAILURES_TOTAL = None
    _REGISTRY = None


def record_compile(family: str, seconds: float) -> None:
    if COMPILE_TOTAL is not None:
        COMPILE_TOTAL.labels(str(family)).inc()
    if COMPILE_LATENCY is not None:
        COMPILE_LATENCY.observe(max(0.0, float(seconds)))


def record_findings(severity: str, count: int) -> None:
    if AUDIT_FINDINGS_TOTAL is not None and count > 0:
        AUDIT_FINDINGS_TOTAL.labels(str(severity)).inc(int(count))


def record_advisory_failure(reason: str) -> None:
    if ADVISORY_FAILURES_TOTAL is not None:
        ADVISORY_FAILURES_TOTAL.labels(str(reason)).inc()


def metrics_payload() -> bytes:
    """Prometheus text exposition of the registered collectors (empty before setup)."""
    if _REGISTRY is None:
        return b""
    return generate_latest(_REGISTRY)
