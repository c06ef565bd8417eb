"""
Output formatters for infraphase plan reports.

Supports multiple output formats for CI/CD integration:
- table: Human-readable status table (default)
- json: Machine-readable JSON
- junit: JUnit XML for CI test results
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Protocol

from infraphase.orchestration.models import TaskStatus
from infraphase.orchestration.results import PlanReport

from .json_fmt import format_json
from .junit import format_junit


class OutputFormat(str, Enum):
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"
    JUNIT = "junit"


class Formatter(Protocol):
    """Protocol for output formatters."""

    def __call__(self, report: PlanReport) -> str:
        """Format report to string output."""
        ...


def format_report(
    report: PlanReport,
    output_format: OutputFormat | str = OutputFormat.TABLE,
    output_file: Path | str | None = None,
) -> str:
    """
    Format a plan report in the specified format.

    Args:
        report: The report produced by the failure aggregator
        output_format: Output format (table, json, junit)
        output_file: Optional file path to write output to

    Returns:
        Formatted string output
    """
    if isinstance(output_format, str):
        output_format = OutputFormat(output_format)

    formatters: dict[OutputFormat, Formatter] = {
        OutputFormat.TABLE: format_table,
        OutputFormat.JSON: format_json,
        OutputFormat.JUNIT: format_junit,
    }

    output = formatters[output_format](report)

    if output_file:
        Path(output_file).write_text(output)

    return output


_STATUS_ICONS = {
    TaskStatus.SUCCEEDED: "✓",
    TaskStatus.FAILED: "✗",
    TaskStatus.PENDING: "○",
    TaskStatus.RUNNING: "…",
}


def format_table(report: PlanReport) -> str:
    """Format report as a plain-text status table."""
    lines = []
    lines.append(f"\n{'=' * 72}")
    lines.append(f"infraphase: {report.plan_name}")
    lines.append(f"{'=' * 72}\n")

    phase = None
    for row in report.tasks:
        if row.phase != phase:
            phase = row.phase
            lines.append(f"[{phase}]")
        icon = _STATUS_ICONS.get(row.status, "?")
        note = " (existing)" if row.converged else ""
        lines.append(
            f"  {icon} {row.task_id:<24} {row.status.value:<10} "
            f"{row.duration_seconds:>7.1f}s  {row.resource}{note}"
        )
        if row.error:
            lines.append(f"      {row.error}")
        if row.log_ref:
            lines.append(f"      log: {row.log_ref}")

    if report.secrets:
        lines.append("\n[secrets]")
        for secret in report.secrets:
            icon = "✗" if secret.status == "failed" else "✓"
            lines.append(f"  {icon} {secret.name:<40} {secret.status}")
            if secret.error:
                lines.append(f"      {secret.error}")

    if report.warnings:
        lines.append("\nWarnings:")
        lines.extend(f"  • {w}" for w in report.warnings)

    lines.append(f"\n{'─' * 72}")
    lines.append(
        f"Summary: {report.count(TaskStatus.SUCCEEDED)} succeeded, "
        f"{report.count(TaskStatus.FAILED)} failed, "
        f"{report.count(TaskStatus.PENDING)} not attempted "
        f"in {report.duration_seconds:.1f}s"
    )
    lines.append(f"Verdict: {report.verdict.value} (exit {int(report.exit_code)})")
    lines.append("")

    return "\n".join(lines)


__all__ = [
    "OutputFormat",
    "format_report",
    "format_json",
    "format_junit",
    "format_table",
]
