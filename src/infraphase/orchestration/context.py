"""Explicit execution context threaded between phases."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from infraphase.core.errors import PermanentConfigurationError

# ${var:name}, ${output:task.key}, ${env:NAME}
REFERENCE_PATTERN = re.compile(r"\$\{(\w+):([^}]+)\}")


def output_references(value: Any) -> set[str]:
    """Task ids referenced through ``${output:TASK.KEY}`` anywhere in ``value``."""
    found: set[str] = set()
    if isinstance(value, str):
        for kind, ref in REFERENCE_PATTERN.findall(value):
            if kind == "output" and "." in ref:
                found.add(ref.split(".", 1)[0])
    elif isinstance(value, Mapping):
        for item in value.values():
            found |= output_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            found |= output_references(item)
    return found


@dataclass
class ExecutionContext:
    """Values visible to tasks: plan variables plus outputs of finished tasks.

    Outputs are merged only after a phase has joined, so tasks never observe a
    sibling's partial results.
    """

    variables: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, dict[str, str]] = field(default_factory=dict)
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)

    def record_outputs(self, task_id: str, outputs: Mapping[str, str]) -> None:
        self.outputs[task_id] = dict(outputs)

    def lookup(self, kind: str, ref: str) -> str:
        if kind == "var":
            if ref not in self.variables:
                raise PermanentConfigurationError(f"Undefined variable '{ref}'")
            return str(self.variables[ref])
        if kind == "env":
            if ref not in self.environ:
                raise PermanentConfigurationError(f"Environment variable '{ref}' is not set")
            return self.environ[ref]
        if kind == "output":
            task_id, _, key = ref.partition(".")
            if not key:
                raise PermanentConfigurationError(f"Output reference '{ref}' needs TASK.KEY")
            task_outputs = self.outputs.get(task_id)
            if task_outputs is None:
                raise PermanentConfigurationError(f"Outputs of task '{task_id}' are not available")
            if key not in task_outputs:
                raise PermanentConfigurationError(f"Task '{task_id}' has no output '{key}'")
            return task_outputs[key]
        raise PermanentConfigurationError(f"Unknown reference kind '{kind}' in '${{{kind}:{ref}}}'")

    def resolve(self, value: Any) -> Any:
        """Substitute references in strings, recursing into dicts and lists."""
        if isinstance(value, str):
            return REFERENCE_PATTERN.sub(lambda m: self.lookup(m.group(1), m.group(2)), value)
        if isinstance(value, Mapping):
            return {k: self.resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve(v) for v in value]
        return value
