"""Orchestration package: phased, parallel resource provisioning."""

from infraphase.orchestration.aggregator import FailureAggregator, write_task_logs
from infraphase.orchestration.context import ExecutionContext
from infraphase.orchestration.credentials import (
    CredentialBundle,
    CredentialCollector,
    CredentialEntry,
)
from infraphase.orchestration.engine import OrchestratorDriver
from infraphase.orchestration.models import (
    Phase,
    PhaseStatus,
    PollPolicy,
    ProvisioningPlan,
    ResourceTask,
    RetryPolicy,
    TaskStatus,
)
from infraphase.orchestration.plan_builder import PlanBuilder
from infraphase.orchestration.propagation import PropagationResult, SecretPropagator
from infraphase.orchestration.registry import ResourceTypeRegistry, ResourceTypeSpec
from infraphase.orchestration.results import (
    DriverState,
    PhaseResult,
    PlanReport,
    PlanResult,
    TaskResult,
    Verdict,
)
from infraphase.orchestration.scheduler import ParallelScheduler
from infraphase.orchestration.task import ResourceTaskRunner

__all__ = [
    "CredentialBundle",
    "CredentialCollector",
    "CredentialEntry",
    "DriverState",
    "ExecutionContext",
    "FailureAggregator",
    "OrchestratorDriver",
    "ParallelScheduler",
    "Phase",
    "PhaseResult",
    "PhaseStatus",
    "PlanBuilder",
    "PlanReport",
    "PlanResult",
    "PollPolicy",
    "PropagationResult",
    "ProvisioningPlan",
    "ResourceTask",
    "ResourceTaskRunner",
    "ResourceTypeRegistry",
    "ResourceTypeSpec",
    "RetryPolicy",
    "SecretPropagator",
    "TaskResult",
    "TaskStatus",
    "Verdict",
    "write_task_logs",
]
