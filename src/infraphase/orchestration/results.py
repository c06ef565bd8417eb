"""Result types for plan execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from infraphase.core.errors import ExitCode
from infraphase.orchestration.models import PhaseStatus, ResourceTask, TaskStatus

if TYPE_CHECKING:
    from infraphase.orchestration.credentials import CredentialBundle
    from infraphase.orchestration.propagation import PropagationResult


class DriverState(str, Enum):
    IDLE = "Idle"
    PLANNING = "Planning"
    EXECUTING_PHASE = "ExecutingPhase"
    COLLECTING = "Collecting"
    FINALIZING = "Finalizing"
    DONE = "Done"
    ABORTED = "Aborted"


class Verdict(str, Enum):
    SUCCESS = "Success"
    PARTIAL_FAILURE = "PartialFailure"
    ABORT = "Abort"

    @property
    def exit_code(self) -> ExitCode:
        return {
            Verdict.SUCCESS: ExitCode.SUCCESS,
            Verdict.PARTIAL_FAILURE: ExitCode.PARTIAL_FAILURE,
            Verdict.ABORT: ExitCode.ABORTED,
        }[self]


@dataclass
class TaskResult:
    """Snapshot of a task after it reached a terminal state (or was skipped)."""

    task_id: str
    phase: str
    status: TaskStatus
    resource_type: str
    resource_name: str
    outputs: dict[str, str] = field(default_factory=dict)
    log: list[str] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    duration_seconds: float = 0.0
    attempts: int = 0
    converged: bool = False

    @classmethod
    def from_task(cls, task: ResourceTask, phase: str) -> "TaskResult":
        return cls(
            task_id=task.id,
            phase=phase,
            status=task.status,
            resource_type=task.resource_type,
            resource_name=str(task.resource_name),
            outputs=dict(task.outputs),
            log=task.log.lines,
            error=str(task.error) if task.error is not None else None,
            error_type=type(task.error).__name__ if task.error is not None else None,
            duration_seconds=task.duration,
            attempts=task.attempts,
            converged=task.converged,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.SUCCEEDED


@dataclass
class PhaseResult:
    name: str
    index: int
    status: PhaseStatus
    task_results: list[TaskResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == PhaseStatus.SUCCEEDED

    @property
    def failed_tasks(self) -> list[TaskResult]:
        return [r for r in self.task_results if r.status == TaskStatus.FAILED]


@dataclass
class PlanResult:
    """Everything the driver produced for one run of a plan."""

    plan_name: str
    state: DriverState = DriverState.IDLE
    phase_results: list[PhaseResult] = field(default_factory=list)
    skipped_phases: list[PhaseResult] = field(default_factory=list)
    bundle: "CredentialBundle | None" = None
    propagation: "PropagationResult | None" = None
    warnings: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def all_phases(self) -> list[PhaseResult]:
        return self.phase_results + self.skipped_phases

    @property
    def phases_succeeded(self) -> bool:
        return not self.skipped_phases and all(p.succeeded for p in self.phase_results)

    def task_results(self) -> list[TaskResult]:
        return [r for phase in self.all_phases for r in phase.task_results]


@dataclass
class TaskRow:
    """One line of the end-of-run status table."""

    task_id: str
    phase: str
    status: TaskStatus
    resource: str
    duration_seconds: float
    attempts: int
    converged: bool
    error: str | None = None
    log_ref: str | None = None


@dataclass
class SecretRow:
    name: str
    task_id: str
    status: str
    error: str | None = None


@dataclass
class PlanReport:
    """Structured end-of-run report consumed by the CLI and CI."""

    plan_name: str
    verdict: Verdict
    tasks: list[TaskRow] = field(default_factory=list)
    secrets: list[SecretRow] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    result: PlanResult | None = field(default=None, repr=False)

    @property
    def exit_code(self) -> ExitCode:
        return self.verdict.exit_code

    @property
    def success(self) -> bool:
        return self.verdict == Verdict.SUCCESS

    def count(self, status: TaskStatus) -> int:
        return sum(1 for row in self.tasks if row.status == status)

    def log_paths(self) -> dict[str, Path]:
        return {row.task_id: Path(row.log_ref) for row in self.tasks if row.log_ref}
