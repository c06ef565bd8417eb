"""Execution of a single resource task: invoke, poll to terminal, read outputs."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from infraphase.core.errors import (
    OutputRetrievalError,
    PermanentConfigurationError,
    ProvisioningError,
    ProvisioningTimeoutError,
    TransientProvisioningError,
)
from infraphase.orchestration.context import ExecutionContext
from infraphase.orchestration.models import PollPolicy, ResourceTask, RetryPolicy, TaskStatus
from infraphase.orchestration.results import TaskResult
from infraphase.providers.base import ProvisioningProvider, ProvisioningState

logger = structlog.get_logger()


class ResourceTaskRunner:
    """Drives one ResourceTask against its provider.

    The runner never cancels a remote operation: on timeout the task fails and
    the resource keeps provisioning upstream.
    """

    def __init__(
        self,
        providers: Mapping[str, ProvisioningProvider],
        *,
        default_retry: RetryPolicy | None = None,
        default_poll: PollPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._providers = providers
        self._default_retry = default_retry or RetryPolicy()
        self._default_poll = default_poll or PollPolicy()
        self._sleep = sleep

    def provider_for(self, task: ResourceTask) -> ProvisioningProvider:
        provider = self._providers.get(task.provider)
        if provider is None:
            raise PermanentConfigurationError(
                f"No provider configured under alias '{task.provider}'", task_id=task.id
            )
        return provider

    async def execute(
        self, task: ResourceTask, ctx: ExecutionContext, phase: str = ""
    ) -> TaskResult:
        """Run ``task`` to a terminal state and return its result."""
        log = logger.bind(task_id=task.id, phase=phase)
        loop = asyncio.get_running_loop()

        task.transition(TaskStatus.RUNNING)
        task.started_at = loop.time()
        task.log.append("task_started", resource=f"{task.resource_type}/{task.resource_name}")
        log.info("task_started", resource_type=task.resource_type, resource=task.resource_name)

        try:
            provider = self.provider_for(task)
            state = await self.invoke(task, provider, ctx)
            if not state.is_terminal:
                poll = task.poll or self._default_poll
                try:
                    state = await asyncio.wait_for(
                        self._poll_until_terminal(task, provider, poll),
                        timeout=poll.max_wait_seconds,
                    )
                except asyncio.TimeoutError:
                    raise ProvisioningTimeoutError(
                        f"{task.resource_type}/{task.resource_name} did not finish within "
                        f"{poll.max_wait_seconds:g}s",
                        task_id=task.id,
                    ) from None

            if state == ProvisioningState.FAILED:
                raise ProvisioningError(
                    f"{task.resource_type}/{task.resource_name} reported provisioning state Failed",
                    task_id=task.id,
                )

            outputs = await self._retrieve_outputs(task, provider)
        except ProvisioningError as exc:
            exc.task_id = exc.task_id or task.id
            self._finish(task, TaskStatus.FAILED, loop.time(), error=exc)
            task.log.append("task_failed", error_type=type(exc).__name__, error=exc.message)
            log.error(
                "task_failed",
                error_type=type(exc).__name__,
                error=exc.message,
                duration=round(task.duration, 3),
            )
            return TaskResult.from_task(task, phase)

        task.outputs = outputs
        self._finish(task, TaskStatus.SUCCEEDED, loop.time())
        task.log.append("task_succeeded", converged=task.converged, outputs=",".join(sorted(outputs)))
        log.info("task_succeeded", converged=task.converged, duration=round(task.duration, 3))
        return TaskResult.from_task(task, phase)

    async def invoke(
        self, task: ResourceTask, provider: ProvisioningProvider, ctx: ExecutionContext
    ) -> ProvisioningState:
        """Start creation of the resource unless it already exists upstream.

        Returns the state observed right after the call; ``Succeeded`` means the
        task converged on an existing resource without a create call.
        """
        state = await self._call(
            task, "get_state", provider.get_state, task.resource_type, task.resource_name
        )
        task.log.append("state_checked", state=state.value)

        if state == ProvisioningState.SUCCEEDED:
            task.converged = True
            return state
        if state == ProvisioningState.PROVISIONING:
            task.log.append("operation_in_flight")
            return state

        try:
            parameters = ctx.resolve(task.parameters)
        except PermanentConfigurationError as exc:
            exc.task_id = task.id
            raise

        handle = await self._call(
            task,
            "create",
            provider.create,
            task.resource_type,
            task.resource_name,
            parameters,
        )
        task.log.append("create_started", operation_id=handle.operation_id)
        return ProvisioningState.PROVISIONING

    async def poll_state(
        self, task: ResourceTask, provider: ProvisioningProvider
    ) -> ProvisioningState:
        return await self._call(
            task, "get_state", provider.get_state, task.resource_type, task.resource_name
        )

    async def _poll_until_terminal(
        self, task: ResourceTask, provider: ProvisioningProvider, poll: PollPolicy
    ) -> ProvisioningState:
        previous: ProvisioningState | None = None
        polls = 0
        while True:
            await self._sleep(poll.interval_seconds)
            state = await self.poll_state(task, provider)
            polls += 1
            if state != previous:
                task.log.append("state_observed", state=state.value, polls=polls)
                previous = state
            if state.is_terminal:
                return state

    async def _retrieve_outputs(
        self, task: ResourceTask, provider: ProvisioningProvider
    ) -> dict[str, str]:
        try:
            outputs = await self._call(
                task, "get_outputs", provider.get_outputs, task.resource_type, task.resource_name
            )
        except TransientProvisioningError as exc:
            raise OutputRetrievalError(
                f"Could not read outputs of {task.resource_type}/{task.resource_name}: {exc}",
                task_id=task.id,
            ) from exc

        missing = [key for key in task.required_outputs if not outputs.get(key)]
        if missing:
            raise OutputRetrievalError(
                f"{task.resource_type}/{task.resource_name} is missing required outputs: "
                f"{', '.join(missing)}",
                {"missing": ",".join(missing)},
                task_id=task.id,
            )
        return dict(outputs)

    async def _call(
        self,
        task: ResourceTask,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Any:
        policy = task.retry or self._default_retry

        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            task.log.append(
                "retrying",
                operation=operation,
                attempt=retry_state.attempt_number,
                error=str(exc),
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientProvisioningError),
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.backoff_seconds, max=policy.backoff_max_seconds
            ),
            sleep=self._sleep,
            before_sleep=before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if operation == "create":
                    task.attempts += 1
                return await func(*args)

    @staticmethod
    def _finish(
        task: ResourceTask,
        status: TaskStatus,
        finished_at: float,
        error: Exception | None = None,
    ) -> None:
        task.finished_at = finished_at
        task.error = error
        if status != TaskStatus.SUCCEEDED:
            task.outputs = {}
        task.transition(status)
