"""
CLI command for applying a provisioning plan.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Mapping, Sequence

import structlog
from rich.table import Table

from infraphase.cli.formatters import OutputFormat, format_report
from infraphase.cli.plan import parse_variables
from infraphase.cli.ux import console, err_console
from infraphase.config.loader import build_providers, load_plan_file, parse_secret_store_config
from infraphase.config.settings import Settings, get_settings
from infraphase.core.errors import ConfigurationError, main_with_error_handling
from infraphase.orchestration.aggregator import FailureAggregator, write_task_logs
from infraphase.orchestration.engine import OrchestratorDriver, policies_from_settings
from infraphase.orchestration.models import PollPolicy, ProvisioningPlan, TaskStatus
from infraphase.orchestration.plan_builder import PlanBuilder
from infraphase.orchestration.results import PlanReport, PlanResult
from infraphase.secrets import (
    BaseSecretStore,
    MemorySecretStore,
    SecretBackendUnavailableError,
    create_secret_store,
)

logger = structlog.get_logger()

_STATUS_STYLES = {
    TaskStatus.SUCCEEDED: "success",
    TaskStatus.FAILED: "error",
    TaskStatus.PENDING: "muted",
    TaskStatus.RUNNING: "warning",
}


def print_apply_summary(report: PlanReport, verbose: bool = False) -> None:
    """Print the end-of-run status table with rich formatting."""
    console.print()
    table = Table(title=f"infraphase apply: {report.plan_name}")
    for column in ("Task", "Phase", "Status", "Resource", "Duration", "Attempts"):
        table.add_column(column)
    if verbose:
        table.add_column("Log")

    for row in report.tasks:
        style = _STATUS_STYLES.get(row.status, "")
        status = row.status.value + (" (existing)" if row.converged else "")
        cells = [
            row.task_id,
            row.phase,
            f"[{style}]{status}[/{style}]" if style else status,
            row.resource,
            f"{row.duration_seconds:.1f}s",
            str(row.attempts),
        ]
        if verbose:
            cells.append(row.log_ref or "-")
        table.add_row(*cells)
    console.print(table)

    failed = [row for row in report.tasks if row.error]
    if failed:
        console.print()
        console.print("[error]Failures:[/error]")
        for row in failed:
            error = row.error or ""
            if not verbose and len(error) > 100:
                error = error[:97] + "..."
            console.print(f"  [dim]•[/dim] {row.task_id}: {error}")

    bad_secrets = [s for s in report.secrets if s.status == "failed"]
    if report.secrets:
        console.print()
        console.print(
            f"[bold]Secrets:[/bold] {len(report.secrets) - len(bad_secrets)} stored, "
            f"{len(bad_secrets)} failed"
        )
        for secret in bad_secrets:
            console.print(f"  [error]✗[/error] {secret.name}: {secret.error}")

    if report.warnings:
        console.print()
        console.print("[warning]Warnings:[/warning]")
        for w in report.warnings:
            console.print(f"  [dim]•[/dim] {w}")

    console.print()
    duration = f" in {report.duration_seconds:.1f}s"
    if report.success:
        console.print(f"[bold green]Plan {report.plan_name} applied{duration}[/bold green]")
    else:
        console.print(
            f"[bold yellow]Plan {report.plan_name}: {report.verdict.value}{duration} "
            f"(exit {int(report.exit_code)})[/bold yellow]"
        )
    console.print()


def build_secret_store(
    definition: Mapping[str, Any], settings: Settings, *, simulate: bool = False
) -> BaseSecretStore | None:
    if simulate:
        return MemorySecretStore()
    config = parse_secret_store_config(definition.get("secret_store"), settings)
    if config is None:
        return None
    try:
        return create_secret_store(config)
    except SecretBackendUnavailableError as e:
        raise ConfigurationError(e.args[0], {"backend": e.backend}) from e


async def run_plan(
    driver: OrchestratorDriver,
    plan: ProvisioningPlan,
    providers: Mapping[str, Any],
) -> PlanResult:
    """Run ``plan`` and close every provider afterwards."""
    try:
        return await driver.run(plan)
    finally:
        for provider in providers.values():
            await provider.aclose()


@main_with_error_handling()
def apply_command(
    plan_file: str | None,
    *,
    simulate: bool = False,
    output_format: str = "table",
    output_file: str | None = None,
    log_dir: str | None = None,
    variables: Sequence[str] | None = None,
    poll_interval: float | None = None,
    max_wait: float | None = None,
    verbose: bool = False,
    settings: Settings | None = None,
) -> int:
    """
    Provision every resource of a plan, phase by phase.

    Args:
        plan_file: Path to the plan YAML (or None to search defaults)
        simulate: Use the in-memory simulated provider and secret store
        output_format: Output format (table, json, junit)
        output_file: Write the formatted report to this file
        log_dir: Directory for per-task log files
        variables: ``KEY=VALUE`` overrides for plan variables
        poll_interval: Override the default poll interval (seconds)
        max_wait: Override the default maximum wait per task (seconds)
        verbose: Show log file references and full error messages

    Returns:
        Exit code (0 success, 1 partial failure, 2 aborted)
    """
    settings = settings or get_settings()
    output_format = OutputFormat(output_format).value

    definition = load_plan_file(plan_file)
    plan = PlanBuilder().build(definition, parse_variables(variables))

    providers = build_providers(
        definition,
        {t.provider for t in plan.tasks()},
        settings,
        simulate=simulate,
        variables=plan.variables,
    )
    store = build_secret_store(definition, settings, simulate=simulate)

    retry, poll = policies_from_settings(settings)
    try:
        poll = PollPolicy(
            interval_seconds=poll_interval or poll.interval_seconds,
            max_wait_seconds=max_wait or poll.max_wait_seconds,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid polling options: {e}") from e

    driver = OrchestratorDriver(
        providers,
        store,
        settings=settings,
        default_retry=retry,
        default_poll=poll,
        progress=lambda line: err_console.print(f"[info]{line}[/info]"),
    )
    logger.info("apply_started", plan=plan.name, simulate=simulate, phases=len(plan.phases))

    result = asyncio.run(run_plan(driver, plan, providers))
    report = FailureAggregator().summarize(result)

    if log_dir:
        write_task_logs(report, Path(log_dir))

    if output_file:
        format_report(report, output_format, output_file)
        print_apply_summary(report, verbose=verbose)
    elif output_format == OutputFormat.TABLE.value:
        print_apply_summary(report, verbose=verbose)
    else:
        print(format_report(report, output_format))

    return report.exit_code
