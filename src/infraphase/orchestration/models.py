"""Provisioning plan model: resource tasks, phases and plans."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from infraphase.core.errors import InvalidStatusTransition, PlanValidationError


class TaskStatus(str, Enum):
    """Lifecycle of a resource task within one run."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.RUNNING},
    TaskStatus.RUNNING: {TaskStatus.SUCCEEDED, TaskStatus.FAILED},
    TaskStatus.SUCCEEDED: set(),
    TaskStatus.FAILED: set(),
}


class PhaseStatus(str, Enum):
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for transient provider failures.

    ``max_attempts=1`` disables retries.
    """

    max_attempts: int = 1
    backoff_seconds: float = 5.0
    backoff_max_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass(frozen=True)
class PollPolicy:
    """Fixed-interval polling with an upper bound on total wait."""

    interval_seconds: float = 10.0
    max_wait_seconds: float = 1800.0

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.max_wait_seconds <= 0:
            raise ValueError("max_wait_seconds must be positive")


class TaskLog:
    """Captured trace of a single task, kept regardless of outcome."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def append(self, event: str, **fields: Any) -> None:
        ts = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        extra = " ".join(f"{k}={v}" for k, v in fields.items())
        self._lines.append(f"{ts} {event}" + (f" {extra}" if extra else ""))

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines) + ("\n" if self._lines else "")

    def __len__(self) -> int:
        return len(self._lines)


@dataclass(eq=False)
class ResourceTask:
    """One external resource to provision and poll to a terminal state."""

    id: str
    resource_type: str
    resource_name: str | None = None
    provider: str = "default"
    parameters: dict[str, Any] = field(default_factory=dict)
    depends_on: frozenset[str] = field(default_factory=frozenset)
    required_outputs: tuple[str, ...] = ()
    secret_outputs: dict[str, str] = field(default_factory=dict)
    retry: RetryPolicy | None = None
    poll: PollPolicy | None = None

    # Runtime state, owned by the task runner
    outputs: dict[str, str] = field(default_factory=dict, init=False)
    log: TaskLog = field(default_factory=TaskLog, init=False, repr=False)
    error: Exception | None = field(default=None, init=False)
    attempts: int = field(default=0, init=False)
    converged: bool = field(default=False, init=False)
    started_at: float | None = field(default=None, init=False)
    finished_at: float | None = field(default=None, init=False)
    _status: TaskStatus = field(default=TaskStatus.PENDING, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise PlanValidationError("Resource task id is required")
        if self.resource_name is None:
            self.resource_name = self.id
        self.depends_on = frozenset(self.depends_on)
        self.required_outputs = tuple(self.required_outputs)

    @property
    def status(self) -> TaskStatus:
        return self._status

    def transition(self, status: TaskStatus) -> None:
        """Move to ``status``; only forward moves are allowed."""
        if status not in _ALLOWED_TRANSITIONS[self._status]:
            raise InvalidStatusTransition(
                f"Task {self.id} cannot move from {self._status.value} to {status.value}",
                {"task_id": self.id},
            )
        self._status = status

    @property
    def duration(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return self.finished_at - self.started_at


@dataclass
class Phase:
    """Tasks with no dependency on each other, eligible to run concurrently."""

    name: str
    tasks: list[ResourceTask] = field(default_factory=list)
    index: int = 0

    @property
    def task_ids(self) -> set[str]:
        return {t.id for t in self.tasks}

    @property
    def result(self) -> PhaseStatus:
        if all(t.status == TaskStatus.SUCCEEDED for t in self.tasks):
            return PhaseStatus.SUCCEEDED
        if any(t.status == TaskStatus.FAILED for t in self.tasks):
            return PhaseStatus.FAILED
        if all(t.status == TaskStatus.PENDING for t in self.tasks):
            return PhaseStatus.PENDING
        return PhaseStatus.FAILED


@dataclass
class ProvisioningPlan:
    """Ordered phases; each phase is gated on full success of the previous one."""

    name: str
    phases: list[Phase] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for index, phase in enumerate(self.phases):
            phase.index = index

    def tasks(self) -> Iterator[ResourceTask]:
        for phase in self.phases:
            yield from phase.tasks

    def get(self, task_id: str) -> ResourceTask | None:
        for task in self.tasks():
            if task.id == task_id:
                return task
        return None

    def phase_of(self, task_id: str) -> Phase | None:
        for phase in self.phases:
            if task_id in phase.task_ids:
                return phase
        return None

    def validate(self) -> None:
        """Check structural invariants; raise PlanValidationError on violation."""
        if not self.phases:
            raise PlanValidationError(f"Plan '{self.name}' has no phases")

        seen_tasks: dict[str, int] = {}
        seen_names: dict[tuple[str, str, str], str] = {}
        seen_secrets: dict[str, str] = {}
        errors: list[str] = []

        for index, phase in enumerate(self.phases):
            if not phase.tasks:
                errors.append(f"Phase '{phase.name}' has no tasks")
            for task in phase.tasks:
                if task.id in seen_tasks:
                    errors.append(f"Duplicate task id '{task.id}'")
                    continue
                seen_tasks[task.id] = index

                key = (task.provider, task.resource_type, str(task.resource_name))
                if key in seen_names:
                    errors.append(
                        f"Tasks '{seen_names[key]}' and '{task.id}' target the same resource "
                        f"{task.resource_type}/{task.resource_name}"
                    )
                seen_names[key] = task.id

                for secret_name in task.secret_outputs.values():
                    if secret_name in seen_secrets:
                        errors.append(
                            f"Secret '{secret_name}' is produced by both "
                            f"'{seen_secrets[secret_name]}' and '{task.id}'"
                        )
                    seen_secrets[secret_name] = task.id

        for index, phase in enumerate(self.phases):
            for task in phase.tasks:
                for dep in sorted(task.depends_on):
                    if dep == task.id:
                        errors.append(f"Task '{task.id}' depends on itself")
                    elif dep not in seen_tasks:
                        errors.append(f"Task '{task.id}' depends on unknown task '{dep}'")
                    elif seen_tasks[dep] == index:
                        errors.append(
                            f"Task '{task.id}' depends on '{dep}' in the same phase "
                            f"'{phase.name}'"
                        )
                    elif seen_tasks[dep] > index:
                        errors.append(
                            f"Task '{task.id}' in phase '{phase.name}' depends on '{dep}' "
                            f"in a later phase"
                        )

        if errors:
            raise PlanValidationError(
                f"Plan '{self.name}' is invalid: {errors[0]}",
                {"errors": "; ".join(errors)},
            )
