from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Protocol

import requests

from observability.metrics import record_advisory_failure
from scaffold.anomalies import AnomalyWarning

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class _Unavailable:
    """Returned by an advisor that has nothing to say for this request."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE = _Unavailable()


class Advisor(Protocol):
    def suggest(self, config, quantities: list[dict[str, Any]]) -> list[AnomalyWarning] | _Unavailable:
        ...


def parse_advisory_payload(text: str) -> list[AnomalyWarning]:
    """
    Findings from a reviewer reply: a JSON array, optionally wrapped in a ```json fence
    or in an object under ``warnings``. Raises ValueError on anything else.
    """
    raw = str(text or "").strip()
    m = _FENCED_JSON.search(raw)
    if m:
        raw = m.group(1).strip()
    if not raw:
        return []
    data = json.loads(raw)
    if isinstance(data, dict):
        data = data.get("warnings", data.get("findings"))
    if not isinstance(data, list):
        raise ValueError(f"advisory reply must be a JSON array, got {type(data).__name__}")
    return [AnomalyWarning.from_dict(item) for item in data]


def _coerce_findings(result: Any) -> list[AnomalyWarning]:
    if not isinstance(result, (list, tuple)):
        raise ValueError(f"advisor returned {type(result).__name__}, expected a list")
    out: list[AnomalyWarning] = []
    for item in result:
        out.append(item if isinstance(item, AnomalyWarning) else AnomalyWarning.from_dict(item))
    return out


def run_advisory(
    advisor: Advisor,
    config,
    quantities: list[dict[str, Any]],
    timeout_s: float,
) -> tuple[list[AnomalyWarning] | None, str | None]:
    """
    Call ``advisor.suggest`` in a worker thread bounded by ``timeout_s``.

    Returns ``(findings, None)`` on success and ``(None, reason)`` otherwise. On timeout
    the call is abandoned: the worker keeps running but its result is never read.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scaffold-advisory")
    try:
        future = executor.submit(advisor.suggest, config, quantities)
        try:
            result = future.result(timeout=float(timeout_s))
        except FutureTimeout:
            logger.warning("advisory pass timed out after %.1fs; using rule-based findings only", float(timeout_s))
            reason = "timeout"
        except requests.RequestException as exc:
            logger.warning("advisory request failed: %s", exc)
            reason = "http"
        except (ValueError, TypeError) as exc:
            logger.warning("advisory reply rejected: %s", exc)
            reason = "malformed"
        except Exception as exc:
            logger.warning("advisory pass failed (%s): %s", type(exc).__name__, exc)
            reason = "error"
        else:
            if result is UNAVAILABLE or result is None:
                logger.info("advisory pass unavailable")
                reason = "unavailable"
            else:
                try:
                    return _coerce_findings(result), None
                except (ValueError, TypeError) as exc:
                    logger.warning("advisory reply rejected: %s", exc)
                    reason = "malformed"
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    record_advisory_failure(reason)
    return None, reason


class HttpAdvisor:
    """
    Posts the project summary and quantity list to a review endpoint and reads back
    a JSON array of findings shaped like ``AnomalyWarning.to_dict()``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        model: str | None = None,
        request_timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.endpoint = str(endpoint)
        self.api_key = api_key
        self.model = model
        self.request_timeout_s = float(request_timeout_s)
        self.session = session or requests.Session()

    def build_payload(self, config, quantities: list[dict[str, Any]]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "scaffoldType": config.family.value,
            "buildingHeightMm": int(config.building_height_mm),
            "scaffoldWidthMm": int(config.scaffold_width_mm),
            "walls": [
                {
                    "side": w.side,
                    "length": int(w.wall_length_mm),
                    "height": config.wall_height(w),
                    "stairs": int(w.stair_access_count),
                }
                for w in config.enabled_walls
            ],
            "quantities": quantities,
        }
        if self.model:
            payload["model"] = self.model
        return payload

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def suggest(self, config, quantities: list[dict[str, Any]]) -> list[AnomalyWarning] | _Unavailable:
        resp = self.session.post(
            self.endpoint,
            json=self.build_payload(config, quantities),
            headers=self._headers(),
            timeout=self.request_timeout_s,
        )
        if resp.status_code in (204, 503):
            return UNAVAILABLE
        resp.raise_for_status()
        findings = parse_advisory_payload(resp.text)
        logger.info("advisory pass returned %d findings", len(findings))
        return findings


def build_advisor(cfg) -> HttpAdvisor | None:
    """``HttpAdvisor`` from an ``AdvisoryCfg``, or None when the pass is switched off."""
    if cfg is None or not bool(getattr(cfg, "enabled", False)) or not getattr(cfg, "endpoint", None):
        return None
    return HttpAdvisor(
        cfg.endpoint,
        api_key=cfg.api_key(),
        model=cfg.model,
        request_timeout_s=float(cfg.timeout_s),
    )
