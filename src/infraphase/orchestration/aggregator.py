"""Final verdict and structured report for a plan execution."""

from __future__ import annotations

from pathlib import Path

import structlog

from infraphase.orchestration.results import (
    PlanReport,
    PlanResult,
    SecretRow,
    TaskRow,
    Verdict,
)

logger = structlog.get_logger()


class FailureAggregator:
    """Turns a PlanResult into a verdict, a status table and an exit code."""

    def summarize(self, result: PlanResult) -> PlanReport:
        verdict = self.verdict(result)

        rows = [
            TaskRow(
                task_id=r.task_id,
                phase=r.phase,
                status=r.status,
                resource=f"{r.resource_type}/{r.resource_name}",
                duration_seconds=r.duration_seconds,
                attempts=r.attempts,
                converged=r.converged,
                error=f"{r.error_type}: {r.error}" if r.error else None,
            )
            for r in result.task_results()
        ]

        secrets: list[SecretRow] = []
        if result.propagation is not None:
            secrets = [
                SecretRow(
                    name=w.name,
                    task_id=w.task_id,
                    status=w.status.value,
                    error=w.error.message if w.error else None,
                )
                for w in result.propagation.results
            ]

        warnings = list(result.warnings)
        if result.bundle is not None:
            warnings.extend(w for w in result.bundle.warnings if w not in warnings)

        report = PlanReport(
            plan_name=result.plan_name,
            verdict=verdict,
            tasks=rows,
            secrets=secrets,
            warnings=warnings,
            duration_seconds=result.duration_seconds,
            result=result,
        )
        logger.info(
            "plan_summarized",
            plan=result.plan_name,
            verdict=verdict.value,
            exit_code=int(report.exit_code),
            tasks=len(rows),
            secrets_failed=sum(1 for s in secrets if s.status == "failed"),
        )
        return report

    @staticmethod
    def verdict(result: PlanResult) -> Verdict:
        if not result.phase_results or not result.phases_succeeded:
            return Verdict.ABORT
        if result.propagation is not None and not result.propagation.complete:
            return Verdict.PARTIAL_FAILURE
        return Verdict.SUCCESS


def write_task_logs(report: PlanReport, directory: Path) -> dict[str, Path]:
    """Persist each task's captured log and point the report rows at the files."""
    if report.result is None:
        return {}

    directory.mkdir(parents=True, exist_ok=True)
    logs = {r.task_id: r.log for r in report.result.task_results()}
    written: dict[str, Path] = {}
    for row in report.tasks:
        lines = logs.get(row.task_id) or []
        if not lines:
            continue
        path = directory / f"{row.task_id}.log"
        path.write_text("\n".join(lines) + "\n")
        row.log_ref = str(path)
        written[row.task_id] = path

    logger.debug("task_logs_written", directory=str(directory), files=len(written))
    return written
