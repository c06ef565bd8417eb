"""Static per-resource-type declarations used when building plans."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from infraphase.core.errors import PlanValidationError


@dataclass(frozen=True)
class ResourceTypeSpec:
    """What every task of a resource type must produce.

    ``secret_outputs`` maps an output name to a secret name template; the
    template may use ``{task_id}`` and ``{resource_name}``.
    """

    name: str
    required_outputs: tuple[str, ...] = ()
    secret_outputs: Dict[str, str] = field(default_factory=dict)
    description: str | None = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ResourceTypeSpec":
        secret_outputs = data.get("secret_outputs") or {}
        if not isinstance(secret_outputs, dict):
            raise PlanValidationError(f"resource_types.{name}.secret_outputs must be a mapping")
        return cls(
            name=name,
            required_outputs=tuple(data.get("required_outputs") or ()),
            secret_outputs={str(k): str(v) for k, v in secret_outputs.items()},
            description=data.get("description"),
        )

    def secret_names(self, task_id: str, resource_name: str) -> Dict[str, str]:
        try:
            return {
                output: template.format(task_id=task_id, resource_name=resource_name)
                for output, template in self.secret_outputs.items()
            }
        except (KeyError, IndexError, ValueError) as exc:
            raise PlanValidationError(
                f"Bad secret name template in resource type '{self.name}': {exc}"
            ) from exc


class ResourceTypeRegistry:
    """In-memory registry for resource type declarations."""

    def __init__(self) -> None:
        self._types: Dict[str, ResourceTypeSpec] = {}

    def register(self, spec: ResourceTypeSpec) -> None:
        """Register a type by its name."""
        self._types[spec.name] = spec

    def get(self, name: str) -> Optional[ResourceTypeSpec]:
        """Get a type declaration by name."""
        return self._types.get(name)

    def list(self) -> List[str]:
        """List all registered type names."""
        return list(self._types.keys())
