"""Builds a ProvisioningPlan from a plan definition (usually a YAML document)."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

import structlog

from infraphase.core.errors import PermanentConfigurationError, PlanValidationError
from infraphase.orchestration.context import ExecutionContext, output_references
from infraphase.orchestration.models import (
    Phase,
    PollPolicy,
    ProvisioningPlan,
    ResourceTask,
    RetryPolicy,
)
from infraphase.orchestration.registry import ResourceTypeRegistry, ResourceTypeSpec

logger = structlog.get_logger()


class PlanBuilder:
    """Builds plans by combining task definitions with resource type declarations.

    A definition either lists ``phases`` explicitly or gives a flat ``tasks``
    list, in which case tasks are layered into phases by dependency depth.
    """

    def __init__(self, registry: ResourceTypeRegistry | None = None) -> None:
        self._registry = registry or ResourceTypeRegistry()

    def build(
        self,
        definition: Mapping[str, Any],
        variables: Mapping[str, str] | None = None,
    ) -> ProvisioningPlan:
        """Build and validate a plan; raise PlanValidationError on bad input."""
        if not isinstance(definition, Mapping):
            raise PlanValidationError("Plan definition must be a mapping")

        name = str(definition.get("name") or "plan")
        plan_vars = {str(k): str(v) for k, v in (definition.get("variables") or {}).items()}
        plan_vars.update({str(k): str(v) for k, v in (variables or {}).items()})

        registry = self._registry_with(definition.get("resource_types") or {})
        ctx = ExecutionContext(variables=plan_vars)

        if "phases" in definition:
            phases = [
                Phase(
                    name=str(p.get("name") or f"phase-{i}"),
                    tasks=[self._task(t, registry, ctx) for t in p.get("tasks") or []],
                )
                for i, p in enumerate(self._list(definition, "phases"), 1)
            ]
        elif "tasks" in definition:
            tasks = [self._task(t, registry, ctx) for t in self._list(definition, "tasks")]
            phases = self.layer(tasks)
        else:
            raise PlanValidationError(f"Plan '{name}' defines neither 'phases' nor 'tasks'")

        plan = ProvisioningPlan(name=name, phases=phases, variables=plan_vars)
        plan.validate()
        logger.debug(
            "plan_built",
            plan=name,
            phases=len(plan.phases),
            tasks=sum(len(p.tasks) for p in plan.phases),
        )
        return plan

    @staticmethod
    def layer(tasks: List[ResourceTask]) -> List[Phase]:
        """Group tasks into phases so each task runs one phase after its deepest dependency."""
        by_id: Dict[str, ResourceTask] = {}
        for task in tasks:
            if task.id in by_id:
                raise PlanValidationError(f"Duplicate task id '{task.id}'")
            by_id[task.id] = task

        for task in tasks:
            unknown = sorted(task.depends_on - set(by_id))
            if unknown:
                raise PlanValidationError(
                    f"Task '{task.id}' depends on unknown task(s): {', '.join(unknown)}"
                )

        depth: Dict[str, int] = {}
        remaining = {t.id: set(t.depends_on) for t in tasks}
        level = 0
        while remaining:
            ready = [tid for tid, deps in remaining.items() if not deps - set(depth)]
            if not ready:
                raise PlanValidationError(
                    f"Dependency cycle among tasks: {', '.join(sorted(remaining))}"
                )
            for tid in ready:
                depth[tid] = level
                del remaining[tid]
            level += 1

        phases = [Phase(name=f"phase-{i + 1}") for i in range(level)]
        for task in tasks:
            phases[depth[task.id]].tasks.append(task)
        return phases

    def _registry_with(self, declared: Mapping[str, Any]) -> ResourceTypeRegistry:
        if not isinstance(declared, Mapping):
            raise PlanValidationError("'resource_types' must be a mapping")
        registry = ResourceTypeRegistry()
        for type_name in self._registry.list():
            spec = self._registry.get(type_name)
            if spec is not None:
                registry.register(spec)
        for type_name, data in declared.items():
            registry.register(ResourceTypeSpec.from_dict(str(type_name), data or {}))
        return registry

    def _task(
        self,
        data: Mapping[str, Any],
        registry: ResourceTypeRegistry,
        ctx: ExecutionContext,
    ) -> ResourceTask:
        if not isinstance(data, Mapping):
            raise PlanValidationError(f"Task definition must be a mapping, got {data!r}")
        task_id = data.get("id")
        resource_type = data.get("type")
        if not task_id or not resource_type:
            raise PlanValidationError(f"Task definition needs 'id' and 'type': {dict(data)}")
        task_id = str(task_id)

        resource_name = str(data.get("name") or task_id)
        if output_references(resource_name):
            raise PlanValidationError(f"Task '{task_id}': resource name cannot use task outputs")
        try:
            resource_name = ctx.resolve(resource_name)
        except PermanentConfigurationError as exc:
            raise PlanValidationError(f"Task '{task_id}': {exc.message}") from exc

        parameters = dict(data.get("parameters") or {})
        depends_on = {str(d) for d in data.get("depends_on") or []}
        depends_on |= output_references(parameters) - {task_id}

        spec = registry.get(str(resource_type)) or ResourceTypeSpec(name=str(resource_type))
        required = list(spec.required_outputs)
        required += [o for o in data.get("required_outputs") or [] if o not in required]
        secret_outputs = spec.secret_names(task_id, resource_name)
        secret_outputs.update({str(k): str(v) for k, v in (data.get("secrets") or {}).items()})

        try:
            retry = RetryPolicy(**data["retry"]) if data.get("retry") else None
            poll = PollPolicy(**data["poll"]) if data.get("poll") else None
        except (TypeError, ValueError) as exc:
            raise PlanValidationError(f"Task '{task_id}': invalid retry/poll policy: {exc}") from exc

        return ResourceTask(
            id=task_id,
            resource_type=str(resource_type),
            resource_name=resource_name,
            provider=str(data.get("provider") or "default"),
            parameters=parameters,
            depends_on=frozenset(depends_on),
            required_outputs=tuple(required),
            secret_outputs=secret_outputs,
            retry=retry,
            poll=poll,
        )

    @staticmethod
    def _list(definition: Mapping[str, Any], key: str) -> List[Any]:
        value = definition.get(key) or []
        if not isinstance(value, list):
            raise PlanValidationError(f"'{key}' must be a list")
        return value
