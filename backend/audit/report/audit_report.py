"""Reputation audit report.

Output: reputation_audit.json
No DB writes. No auto-fixes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from reputation.core.base import UTC


Overall = Literal["OK", "DEGRADED", "CRITICAL"]

_SEVERITY = {"OK": 0, "DEGRADED": 1, "CRITICAL": 2}


@dataclass(frozen=True, slots=True)
class Check:
    name: str
    status: Overall
    details: dict[str, Any]


def worst(statuses: list[Overall]) -> Overall:
    return max(statuses, key=_SEVERITY.__getitem__, default="OK")


def build_report(*, now: datetime, checks: list[Check]) -> dict:
    warnings: list[str] = []
    for c in checks:
        warnings.extend(c.details.get("warnings", []))

    return {
        "run_time": now.astimezone(UTC).isoformat(),
        "overall_status": worst([c.status for c in checks]),
        "checks": [{"name": c.name, "status": c.status, "details": c.details} for c in checks],
        "warnings": warnings,
    }


def write_report(path: Path, report: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
