"""
CLI command for planning (validating and previewing) a provisioning run.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from infraphase.cli.ux import console, header, print_table, warning
from infraphase.config.loader import DEFAULT_PROVIDER, load_plan_file
from infraphase.core.errors import ConfigurationError, ExitCode, main_with_error_handling
from infraphase.orchestration.models import ProvisioningPlan
from infraphase.orchestration.plan_builder import PlanBuilder


def parse_variables(pairs: Sequence[str] | None) -> dict[str, str]:
    """Turn ``--var K=V`` arguments into a mapping."""
    variables: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"Invalid --var '{pair}', expected KEY=VALUE")
        variables[key.strip()] = value
    return variables


def plan_to_dict(plan: ProvisioningPlan) -> dict[str, Any]:
    return {
        "plan": plan.name,
        "variables": plan.variables,
        "phases": [
            {
                "name": phase.name,
                "tasks": [
                    {
                        "id": task.id,
                        "type": task.resource_type,
                        "name": task.resource_name,
                        "provider": task.provider,
                        "depends_on": sorted(task.depends_on),
                        "required_outputs": list(task.required_outputs),
                        "secrets": sorted(task.secret_outputs.values()),
                    }
                    for task in phase.tasks
                ],
            }
            for phase in plan.phases
        ],
    }


def print_plan_summary(plan: ProvisioningPlan, undeclared: list[str]) -> None:
    """Print the phases and tasks that apply would run."""
    header(f"Plan: {plan.name}")
    console.print()

    total = len(plan.phases)
    for position, phase in enumerate(plan.phases, 1):
        print_table(
            f"[{position}/{total}] {phase.name}",
            ["Task", "Resource", "Provider", "Depends on", "Secrets"],
            [
                [
                    task.id,
                    f"{task.resource_type}/{task.resource_name}",
                    task.provider,
                    ", ".join(sorted(task.depends_on)) or "-",
                    ", ".join(sorted(task.secret_outputs.values())) or "-",
                ]
                for task in phase.tasks
            ],
        )

    tasks = sum(len(p.tasks) for p in plan.phases)
    secrets = sum(len(t.secret_outputs) for t in plan.tasks())
    console.print()
    console.print(
        f"[bold]{tasks} task(s) in {total} phase(s); {secrets} secret(s) will be propagated[/bold]"
    )
    for alias in undeclared:
        warning(f"Provider alias '{alias}' is not declared in the plan file")
    console.print()


@main_with_error_handling()
def plan_command(
    plan_file: str | None,
    variables: Sequence[str] | None = None,
    output_format: str = "table",
) -> int:
    """
    Validate a plan file and show its phases without provisioning anything.

    Returns:
        Exit code (0 for a valid plan, 10/12 for configuration or validation errors)
    """
    definition = load_plan_file(plan_file)
    plan = PlanBuilder().build(definition, parse_variables(variables))

    declared = set(definition.get("providers") or {}) | {DEFAULT_PROVIDER}
    undeclared = sorted({t.provider for t in plan.tasks()} - declared)

    if output_format == "json":
        output = plan_to_dict(plan)
        output["undeclared_providers"] = undeclared
        print(json.dumps(output, indent=2))
    else:
        print_plan_summary(plan, undeclared)

    return ExitCode.SUCCESS
