"""Tests for orchestration/scheduler.py (ParallelScheduler)."""

import pytest

from infraphase.orchestration.context import ExecutionContext
from infraphase.orchestration.models import Phase, PhaseStatus, ResourceTask, TaskStatus
from infraphase.orchestration.scheduler import ParallelScheduler
from infraphase.orchestration.task import ResourceTaskRunner
from infraphase.providers.simulated import SimulatedProvider


class ExplodingProvider(SimulatedProvider):
    """Raises an unexpected exception for one resource name."""

    def __init__(self, explode: str, **kwargs):
        super().__init__(**kwargs)
        self.explode = explode

    async def get_state(self, resource_type, name):
        if name == self.explode:
            raise RuntimeError("provider bug")
        return await super().get_state(resource_type, name)


def _phase(*names):
    return Phase(name="data", tasks=[ResourceTask(id=n, resource_type="db") for n in names])


def _scheduler(provider, fast_poll, no_retry, **kwargs):
    runner = ResourceTaskRunner({"default": provider}, default_retry=no_retry, default_poll=fast_poll)
    return ParallelScheduler(runner, **kwargs)


class TestRunPhase:
    """Tests for fan-out/fan-in of a phase."""

    @pytest.mark.asyncio
    async def test_tasks_run_concurrently(self, fast_poll, no_retry):
        provider = SimulatedProvider(provisioning_seconds=0.1)
        scheduler = _scheduler(provider, fast_poll, no_retry)
        phase = _phase("redis", "postgres", "mongo", "sql", "bus")

        result = await scheduler.run_phase(phase, ExecutionContext())

        assert result.status == PhaseStatus.SUCCEEDED
        assert len(result.task_results) == 5
        # Five sequential tasks would need at least 0.5s
        assert result.duration_seconds < 0.35

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self, fast_poll, no_retry):
        provider = SimulatedProvider(
            provisioning_seconds=0.01, durations={"slow": 0.08}, failures={"bad"}
        )
        scheduler = _scheduler(provider, fast_poll, no_retry)
        phase = _phase("bad", "slow", "ok")

        result = await scheduler.run_phase(phase, ExecutionContext())

        statuses = {r.task_id: r.status for r in result.task_results}
        assert statuses == {
            "bad": TaskStatus.FAILED,
            "slow": TaskStatus.SUCCEEDED,
            "ok": TaskStatus.SUCCEEDED,
        }
        assert result.status == PhaseStatus.FAILED
        assert [r.task_id for r in result.failed_tasks] == ["bad"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, fast_poll, no_retry):
        provider = ExplodingProvider("boom", provisioning_seconds=0.01)
        scheduler = _scheduler(provider, fast_poll, no_retry)
        phase = _phase("boom", "fine")

        result = await scheduler.run_phase(phase, ExecutionContext())

        by_id = {r.task_id: r for r in result.task_results}
        assert by_id["boom"].status == TaskStatus.FAILED
        assert by_id["boom"].error_type == "RuntimeError"
        assert any("task_crashed" in line for line in by_id["boom"].log)
        assert by_id["fine"].status == TaskStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_outputs_published_after_join(self, fast_poll, no_retry):
        provider = SimulatedProvider(provisioning_seconds=0.01, failures={"bad"})
        scheduler = _scheduler(provider, fast_poll, no_retry)
        ctx = ExecutionContext()

        await scheduler.run_phase(_phase("good", "bad"), ctx)

        assert "endpoint" in ctx.outputs["good"]
        assert "bad" not in ctx.outputs

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, fast_poll, no_retry):
        provider = SimulatedProvider(provisioning_seconds=0.05)
        scheduler = _scheduler(provider, fast_poll, no_retry, max_concurrency=1)

        result = await scheduler.run_phase(_phase("a", "b", "c"), ExecutionContext())

        assert result.status == PhaseStatus.SUCCEEDED
        assert result.duration_seconds >= 0.14

    def test_invalid_concurrency_cap(self, fast_poll, no_retry):
        with pytest.raises(ValueError):
            _scheduler(SimulatedProvider(), fast_poll, no_retry, max_concurrency=0)
