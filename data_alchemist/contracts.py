"""Versioned envelopes for machine-readable data-alchemist outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONTRACT_VERSIONS = {
    "data_alchemist.detect": "1.0.0",
    "data_alchemist.validate": "1.0.0",
    "data_alchemist.correct": "1.0.0",
    "data_alchemist.search": "1.0.0",
    "data_alchemist.parse_rule": "1.0.0",
    "data_alchemist.recommend": "1.0.0",
    "data_alchemist.weights": "1.0.0",
    "data_alchemist.export": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    input_path: Path | None = None,
    status: str = "ok",
    outputs: dict[str, str] | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "data-alchemist",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path) if input_path else None,
        "outputs": dict(outputs or {}),
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def build_payload(name: str, body: dict[str, Any], run_summary: dict[str, Any]) -> dict[str, Any]:
    payload = {"contract": build_contract(name), "run_summary": run_summary}
    payload.update(body)
    return payload
