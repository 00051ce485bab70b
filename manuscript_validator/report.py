from __future__ import annotations
from typing import Dict, Any, List
import json

MAX_LISTED_RESULTS = 60


def write_json(path: str, payload: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_txt(path: str, payload: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_txt(payload))


def _result_line(result: Dict[str, Any]) -> str:
    status = "PASS" if result.get("passed") else "FAIL"
    message = result.get("message") or result.get("type")
    suffix = f" @ {result['affectedElementId']}" if result.get("affectedElementId") else ""
    return f"- [{status}] {result.get('type')} (severity {result.get('severity', 0)}): {message}{suffix}"


def render_txt(payload: Dict[str, Any]) -> str:
    """Plain-text summary of a validation or autofix payload."""
    lines: List[str] = []
    lines.append(f"Manuscript Validation: {payload.get('manuscript_id')}")
    lines.append(f"Template: {payload.get('template_id')}")
    if payload.get("timestamp_utc"):
        lines.append(f"Run at:   {payload['timestamp_utc']}")
    lines.append("")

    stats = payload.get("stats", {}) or {}
    if stats:
        lines.append("Stats")
        for k, v in stats.items():
            if isinstance(v, dict):
                v = ", ".join(f"{name}={count}" for name, count in v.items()) or "none"
            lines.append(f"- {k}: {v}")
        lines.append("")

    results = payload.get("final_results")
    if results is None:
        results = payload.get("results", []) or []
    failing = [r for r in results if not r.get("passed")]
    lines.append(f"Results: {len(results)} total, {len(failing)} failing")
    for r in failing[:MAX_LISTED_RESULTS]:
        lines.append(_result_line(r))
    if len(failing) > MAX_LISTED_RESULTS:
        lines.append(f"... plus {len(failing) - MAX_LISTED_RESULTS} more.")

    initial = payload.get("initial_results")
    if initial is not None:
        fixed = [r for r in initial if not r.get("passed") and r.get("fixable")]
        lines.append("")
        lines.append(f"Fixes ({len(fixed)} fixable failures before autofix)")
        for r in fixed:
            lines.append(_result_line(r))
    return "\n".join(lines)
