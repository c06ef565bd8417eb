from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol


class ProvisioningState(str, Enum):
    """Closed set of provisioning states reported by a provider."""

    NOT_FOUND = "NotFound"
    PROVISIONING = "Provisioning"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProvisioningState.SUCCEEDED, ProvisioningState.FAILED)

    @classmethod
    def from_raw(cls, raw: str | None) -> "ProvisioningState":
        """Map a provider's textual state onto the closed enum.

        Unknown non-empty values are treated as in progress so that new
        intermediate states never end a poll loop early.
        """
        if raw is None or not str(raw).strip():
            return cls.NOT_FOUND
        value = str(raw).strip().lower()
        if value in _SUCCEEDED_STATES:
            return cls.SUCCEEDED
        if value in _FAILED_STATES:
            return cls.FAILED
        if value in _NOT_FOUND_STATES:
            return cls.NOT_FOUND
        return cls.PROVISIONING


_SUCCEEDED_STATES = frozenset({"succeeded", "success", "ready", "available"})
_FAILED_STATES = frozenset({"failed", "canceled", "cancelled", "error"})
_NOT_FOUND_STATES = frozenset({"notfound", "not_found", "deleted", "absent"})


@dataclass(frozen=True)
class OperationHandle:
    """Reference to a create/update operation started on a provider."""

    resource_type: str
    name: str
    operation_id: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ProvisioningProvider(Protocol):
    """Contract for the external provisioning API consumed by resource tasks.

    ``create`` must be idempotent by name: calling it again with the same name
    and parameters converges on the same resource.
    """

    name: str

    async def create(
        self, resource_type: str, name: str, parameters: dict[str, Any]
    ) -> OperationHandle:
        ...

    async def get_state(self, resource_type: str, name: str) -> ProvisioningState:
        ...

    async def get_outputs(self, resource_type: str, name: str) -> dict[str, str]:
        ...

    async def aclose(self) -> None:
        ...
