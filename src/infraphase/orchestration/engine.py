"""Orchestrator driver: walks a provisioning plan phase by phase."""

from __future__ import annotations

import asyncio
from typing import Callable, Mapping

import structlog

from infraphase.config.settings import Settings, get_settings
from infraphase.core.errors import ConfigurationError, PlanValidationError
from infraphase.orchestration.context import ExecutionContext
from infraphase.orchestration.credentials import CredentialCollector
from infraphase.orchestration.models import (
    PhaseStatus,
    PollPolicy,
    ProvisioningPlan,
    RetryPolicy,
    TaskStatus,
)
from infraphase.orchestration.propagation import SecretPropagator
from infraphase.orchestration.results import DriverState, PhaseResult, PlanResult, TaskResult
from infraphase.orchestration.scheduler import ParallelScheduler
from infraphase.orchestration.task import ResourceTaskRunner
from infraphase.providers.base import ProvisioningProvider
from infraphase.secrets import BaseSecretStore

logger = structlog.get_logger()

ProgressCallback = Callable[[str], None]


def policies_from_settings(settings: Settings) -> tuple[RetryPolicy, PollPolicy]:
    """Default retry and poll policies for tasks that declare none."""
    retry = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
        backoff_max_seconds=settings.retry_backoff_max_seconds,
    )
    poll = PollPolicy(
        interval_seconds=settings.poll_interval_seconds,
        max_wait_seconds=settings.max_wait_seconds,
    )
    return retry, poll


class OrchestratorDriver:
    """Runs a ProvisioningPlan.

    Idle → Planning → ExecutingPhase(k)… → Collecting → Finalizing → Done,
    or → Aborted as soon as a phase fails. Phases after a failed one are never
    attempted; credentials are collected and propagated exactly once, only
    after every phase succeeded.
    """

    def __init__(
        self,
        providers: Mapping[str, ProvisioningProvider],
        secret_store: BaseSecretStore | None = None,
        *,
        settings: Settings | None = None,
        default_retry: RetryPolicy | None = None,
        default_poll: PollPolicy | None = None,
        max_concurrency: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        settings = settings or get_settings()
        retry, poll = policies_from_settings(settings)
        self._providers = providers
        self._runner = ResourceTaskRunner(
            providers,
            default_retry=default_retry or retry,
            default_poll=default_poll or poll,
        )
        self._scheduler = ParallelScheduler(
            self._runner,
            max_concurrency=max_concurrency or settings.max_parallel_tasks,
        )
        self._collector = CredentialCollector()
        self._propagator = SecretPropagator(secret_store) if secret_store is not None else None
        self._progress_cb = progress
        self.state = DriverState.IDLE
        self.transitions: list[DriverState] = [DriverState.IDLE]

    async def run(self, plan: ProvisioningPlan, ctx: ExecutionContext | None = None) -> PlanResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = PlanResult(plan_name=plan.name)
        log = logger.bind(plan=plan.name)

        self.state = DriverState.IDLE
        self.transitions = [DriverState.IDLE]
        self._enter(DriverState.PLANNING)
        plan.validate()
        self._check_fresh(plan)
        self._check_providers(plan)
        ctx = ctx or ExecutionContext(variables=dict(plan.variables))

        total = len(plan.phases)
        for position, phase in enumerate(plan.phases, 1):
            self._enter(
                DriverState.EXECUTING_PHASE,
                f"[{position}/{total}] {phase.name}: starting {len(phase.tasks)} task(s)",
            )
            phase_result = await self._scheduler.run_phase(phase, ctx)
            result.phase_results.append(phase_result)

            if not phase_result.succeeded:
                failed = ", ".join(r.task_id for r in phase_result.failed_tasks)
                self._emit(f"[{position}/{total}] {phase.name}: failed ({failed})")
                result.skipped_phases = [
                    PhaseResult(
                        name=skipped.name,
                        index=skipped.index,
                        status=PhaseStatus.PENDING,
                        task_results=[TaskResult.from_task(t, skipped.name) for t in skipped.tasks],
                    )
                    for skipped in plan.phases[position:]
                ]
                self._enter(
                    DriverState.ABORTED,
                    f"Aborted after phase '{phase.name}'; "
                    f"{len(result.skipped_phases)} later phase(s) not attempted",
                )
                result.state = DriverState.ABORTED
                result.duration_seconds = loop.time() - started
                log.error("plan_aborted", phase=phase.name, failed=failed)
                return result

            self._emit(
                f"[{position}/{total}] {phase.name}: succeeded in "
                f"{phase_result.duration_seconds:.1f}s"
            )

        succeeded = sum(1 for t in plan.tasks() if t.status == TaskStatus.SUCCEEDED)
        self._enter(DriverState.COLLECTING, f"Collecting credentials from {succeeded} task(s)")
        result.bundle = self._collector.collect(plan)

        self._enter(DriverState.FINALIZING, f"Propagating {len(result.bundle)} secret(s)")
        if self._propagator is not None:
            result.propagation = self._propagator.propagate(result.bundle)
        elif len(result.bundle):
            result.warnings.append(
                f"No secret store configured; {len(result.bundle)} secret(s) not propagated"
            )

        self._enter(DriverState.DONE, "Done")
        result.state = DriverState.DONE
        result.duration_seconds = loop.time() - started
        log.info("plan_done", duration=round(result.duration_seconds, 3))
        return result

    def _check_fresh(self, plan: ProvisioningPlan) -> None:
        used = [t.id for t in plan.tasks() if t.status != TaskStatus.PENDING]
        if used:
            raise PlanValidationError(
                "Plan objects are single-use; build a fresh plan for each run",
                {"tasks": ", ".join(used)},
            )

    def _check_providers(self, plan: ProvisioningPlan) -> None:
        missing = sorted({t.provider for t in plan.tasks()} - set(self._providers))
        if missing:
            raise ConfigurationError(
                f"No provider configured for alias(es): {', '.join(missing)}",
                {"configured": ", ".join(sorted(self._providers))},
            )

    def _enter(self, state: DriverState, line: str | None = None) -> None:
        self.state = state
        self.transitions.append(state)
        if line is not None:
            self._emit(line)

    def _emit(self, line: str) -> None:
        logger.info("progress", state=self.state.value, line=line)
        if self._progress_cb is not None:
            self._progress_cb(line)
