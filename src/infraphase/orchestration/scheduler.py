"""Fan-out/fan-in execution of the tasks of one phase."""

from __future__ import annotations

import asyncio

import structlog

from infraphase.orchestration.context import ExecutionContext
from infraphase.orchestration.models import Phase, ResourceTask, TaskStatus
from infraphase.orchestration.results import PhaseResult, TaskResult
from infraphase.orchestration.task import ResourceTaskRunner

logger = structlog.get_logger()


class ParallelScheduler:
    """Launches every task of a phase concurrently and joins them all.

    There is no short-circuit: a failing or slow task never stops its siblings,
    and every task's status, outputs and log end up in the PhaseResult.
    """

    def __init__(self, runner: ResourceTaskRunner, *, max_concurrency: int | None = None) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._runner = runner
        self._max_concurrency = max_concurrency

    async def run_phase(self, phase: Phase, ctx: ExecutionContext) -> PhaseResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None

        async def run_one(task: ResourceTask) -> TaskResult:
            if semaphore is None:
                return await self._runner.execute(task, ctx, phase.name)
            async with semaphore:
                return await self._runner.execute(task, ctx, phase.name)

        outcomes = await asyncio.gather(
            *(run_one(task) for task in phase.tasks), return_exceptions=True
        )

        results: list[TaskResult] = []
        for task, outcome in zip(phase.tasks, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                results.append(self._record_crash(task, phase, outcome, loop.time()))
            else:
                results.append(outcome)

        # Join complete: publish outputs for later phases.
        for task in phase.tasks:
            if task.status == TaskStatus.SUCCEEDED:
                ctx.record_outputs(task.id, task.outputs)

        duration = loop.time() - started
        result = PhaseResult(
            name=phase.name,
            index=phase.index,
            status=phase.result,
            task_results=results,
            duration_seconds=duration,
        )
        logger.info(
            "phase_joined",
            phase=phase.name,
            status=result.status.value,
            tasks=len(results),
            failed=len(result.failed_tasks),
            duration=round(duration, 3),
        )
        return result

    @staticmethod
    def _record_crash(
        task: ResourceTask, phase: Phase, exc: BaseException, now: float
    ) -> TaskResult:
        """Turn an unexpected exception from a task into that task's failure."""
        logger.error(
            "task_crashed",
            task_id=task.id,
            phase=phase.name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        if task.status == TaskStatus.PENDING:
            task.transition(TaskStatus.RUNNING)
            task.started_at = now
        if task.status == TaskStatus.RUNNING:
            task.error = exc if isinstance(exc, Exception) else RuntimeError(str(exc))
            task.finished_at = now
            task.outputs = {}
            task.transition(TaskStatus.FAILED)
        task.log.append("task_crashed", error_type=type(exc).__name__, error=str(exc))
        return TaskResult.from_task(task, phase.name)
