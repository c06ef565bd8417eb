"""
JSON output formatter for infraphase reports.

Produces structured JSON output for machine consumption and downstream automation.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from infraphase.orchestration.models import TaskStatus
from infraphase.orchestration.results import PlanReport


def format_json(report: PlanReport) -> str:
    """
    Format a plan report as JSON.

    Output structure:
    {
        "version": "1.0",
        "timestamp": "2026-01-17T14:30:00Z",
        "plan": "shop-infra",
        "verdict": "Success",
        "exit_code": 0,
        "tasks": [...],
        "secrets": [...],
        "warnings": [...],
        "summary": {...}
    }
    """
    summary: dict[str, Any] = {
        "tasks": len(report.tasks),
        "succeeded": report.count(TaskStatus.SUCCEEDED),
        "failed": report.count(TaskStatus.FAILED),
        "not_attempted": report.count(TaskStatus.PENDING),
        "secrets_failed": sum(1 for s in report.secrets if s.status == "failed"),
        "duration_seconds": round(report.duration_seconds, 3),
    }

    output: dict[str, Any] = {
        "version": "1.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "plan": report.plan_name,
        "verdict": report.verdict.value,
        "exit_code": int(report.exit_code),
        "tasks": [
            {
                "id": row.task_id,
                "phase": row.phase,
                "status": row.status.value,
                "resource": row.resource,
                "duration_seconds": round(row.duration_seconds, 3),
                "attempts": row.attempts,
                "converged": row.converged,
                "error": row.error,
                "log": row.log_ref,
            }
            for row in report.tasks
        ],
        "secrets": [
            {"name": s.name, "task": s.task_id, "status": s.status, "error": s.error}
            for s in report.secrets
        ],
        "warnings": report.warnings,
        "summary": summary,
    }

    return json.dumps(output, indent=2, default=str)
