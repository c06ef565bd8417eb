"""Tests for orchestration/aggregator.py."""

from infraphase.core.errors import ExitCode, SecretPropagationError
from infraphase.orchestration.aggregator import FailureAggregator, write_task_logs
from infraphase.orchestration.credentials import CredentialBundle, MissingCredential
from infraphase.orchestration.models import PhaseStatus, TaskStatus
from infraphase.orchestration.propagation import (
    PropagationResult,
    SecretWriteResult,
    WriteStatus,
)
from infraphase.orchestration.results import (
    DriverState,
    PhaseResult,
    PlanResult,
    TaskResult,
    Verdict,
)


def _task_result(task_id, status, phase="data", error=None, log=None):
    return TaskResult(
        task_id=task_id,
        phase=phase,
        status=status,
        resource_type="redis",
        resource_name=task_id,
        error=error,
        error_type="ProvisioningTimeoutError" if error else None,
        log=log if log is not None else [f"line for {task_id}"],
        duration_seconds=1.5,
        attempts=1,
    )


def _succeeded_result(propagation=None):
    return PlanResult(
        plan_name="shop",
        state=DriverState.DONE,
        phase_results=[
            PhaseResult(
                name="data",
                index=0,
                status=PhaseStatus.SUCCEEDED,
                task_results=[_task_result("redis", TaskStatus.SUCCEEDED)],
            )
        ],
        bundle=CredentialBundle(),
        propagation=propagation or PropagationResult(),
        duration_seconds=3.0,
    )


class TestVerdict:
    """Tests for verdict and exit code selection."""

    def test_success(self):
        report = FailureAggregator().summarize(_succeeded_result())
        assert report.verdict == Verdict.SUCCESS
        assert report.exit_code == ExitCode.SUCCESS
        assert report.success

    def test_partial_failure_when_secret_write_fails(self):
        propagation = PropagationResult(
            results=[
                SecretWriteResult("a", "redis", WriteStatus.WRITTEN),
                SecretWriteResult(
                    "b", "redis", WriteStatus.FAILED, SecretPropagationError("denied", secret_name="b")
                ),
            ]
        )
        report = FailureAggregator().summarize(_succeeded_result(propagation))

        assert report.verdict == Verdict.PARTIAL_FAILURE
        assert report.exit_code == ExitCode.PARTIAL_FAILURE
        assert [(s.name, s.status, s.error) for s in report.secrets] == [
            ("a", "written", None),
            ("b", "failed", "denied"),
        ]

    def test_abort_when_phase_failed(self):
        result = PlanResult(
            plan_name="shop",
            state=DriverState.ABORTED,
            phase_results=[
                PhaseResult(
                    name="data",
                    index=0,
                    status=PhaseStatus.FAILED,
                    task_results=[
                        _task_result("redis", TaskStatus.FAILED, error="did not finish"),
                        _task_result("db", TaskStatus.SUCCEEDED),
                    ],
                )
            ],
            skipped_phases=[
                PhaseResult(
                    name="secrets",
                    index=1,
                    status=PhaseStatus.PENDING,
                    task_results=[_task_result("app", TaskStatus.PENDING, phase="secrets", log=[])],
                )
            ],
        )

        report = FailureAggregator().summarize(result)

        assert report.verdict == Verdict.ABORT
        assert report.exit_code == ExitCode.ABORTED
        assert report.count(TaskStatus.FAILED) == 1
        assert report.count(TaskStatus.SUCCEEDED) == 1
        assert report.count(TaskStatus.PENDING) == 1
        failed = next(r for r in report.tasks if r.task_id == "redis")
        assert failed.error == "ProvisioningTimeoutError: did not finish"
        assert failed.resource == "redis/redis"

    def test_empty_result_aborts(self):
        assert FailureAggregator.verdict(PlanResult(plan_name="x")) == Verdict.ABORT

    def test_bundle_warnings_are_reported(self):
        result = _succeeded_result()
        result.bundle.missing.append(MissingCredential("k", "redis", "key", "output not present"))
        result.warnings.append("first")

        report = FailureAggregator().summarize(result)

        assert report.warnings[0] == "first"
        assert "output not present" in report.warnings[1]


class TestWriteTaskLogs:
    def test_writes_one_file_per_task_with_log(self, tmp_path):
        result = _succeeded_result()
        result.phase_results[0].task_results.append(_task_result("quiet", TaskStatus.SUCCEEDED, log=[]))
        report = FailureAggregator().summarize(result)

        written = write_task_logs(report, tmp_path / "logs")

        assert set(written) == {"redis"}
        assert written["redis"].read_text() == "line for redis\n"
        assert report.log_paths() == {"redis": tmp_path / "logs" / "redis.log"}
