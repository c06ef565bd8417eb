"""In-memory provisioning provider for dry runs and tests."""

from __future__ import annotations

import asyncio
import hashlib
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import structlog

from infraphase.core.errors import PermanentConfigurationError, TransientProvisioningError
from infraphase.providers.base import OperationHandle, ProvisioningState
from infraphase.providers.registry import register_provider

logger = structlog.get_logger()


@dataclass
class SimulatedResource:
    resource_type: str
    name: str
    parameters: dict[str, Any]
    state: ProvisioningState
    ready_at: float
    outputs: dict[str, str] = field(default_factory=dict)


class SimulatedProvider:
    """Provider whose resources become ready after a configurable delay.

    Behaviour can be injected per resource name: ``failures`` end in
    ``Failed``, ``stuck`` never leave ``Provisioning`` until released,
    ``rejected`` raise a configuration error on create, and
    ``transient_failures`` raise a transient error for the first N calls.
    """

    def __init__(
        self,
        *,
        provisioning_seconds: float = 0.0,
        durations: dict[str, float] | None = None,
        outputs: dict[str, dict[str, str]] | None = None,
        failures: Iterable[str] = (),
        stuck: Iterable[str] = (),
        rejected: Iterable[str] = (),
        transient_failures: dict[str, int] | None = None,
        name: str = "simulated",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.provisioning_seconds = provisioning_seconds
        self.durations = dict(durations or {})
        self.outputs = {k: dict(v) for k, v in (outputs or {}).items()}
        self.failures = set(failures)
        self.stuck = set(stuck)
        self.rejected = set(rejected)
        self.transient_failures = dict(transient_failures or {})
        self._clock = clock
        self._resources: dict[str, SimulatedResource] = {}
        self.create_calls: list[str] = []
        self.state_calls: list[str] = []

    def seed(
        self,
        resource_type: str,
        name: str,
        *,
        state: ProvisioningState = ProvisioningState.SUCCEEDED,
        outputs: dict[str, str] | None = None,
        ready_in: float = 0.0,
    ) -> None:
        """Register a resource that already exists upstream.

        With ``state=Provisioning`` the resource finishes ``ready_in`` seconds from now.
        """
        self._resources[name] = SimulatedResource(
            resource_type=resource_type,
            name=name,
            parameters={},
            state=state,
            ready_at=self._clock() + ready_in,
            outputs=outputs if outputs is not None else self._outputs_for(resource_type, name),
        )

    def release(self, name: str) -> None:
        """Let a stuck resource finish on its next state query."""
        self.stuck.discard(name)

    def resource(self, name: str) -> SimulatedResource | None:
        return self._resources.get(name)

    def _outputs_for(self, resource_type: str, name: str) -> dict[str, str]:
        digest = hashlib.sha256(f"{resource_type}/{name}".encode()).hexdigest()
        endpoint = f"{name}.{resource_type}.simulated.local"
        outputs = {
            "id": f"/simulated/{resource_type}/{name}",
            "name": name,
            "endpoint": endpoint,
            "host": endpoint,
            "key": digest[:32],
            "password": digest[32:],
            "connection_string": f"Endpoint={endpoint};Key={digest[:32]}",
        }
        outputs.update(self.outputs.get(name, {}))
        return outputs

    def _lookup(self, resource_type: str, name: str) -> SimulatedResource | None:
        """Return the resource under ``name``; a different type there is a naming conflict."""
        existing = self._resources.get(name)
        if existing is not None and existing.resource_type != resource_type:
            raise PermanentConfigurationError(
                f"Name {name} is already taken by a {existing.resource_type} resource",
                {"requested_type": resource_type, "existing_type": existing.resource_type},
            )
        return existing

    def _maybe_fail_transiently(self, name: str, operation: str) -> None:
        remaining = self.transient_failures.get(name, 0)
        if remaining > 0:
            self.transient_failures[name] = remaining - 1
            raise TransientProvisioningError(f"Simulated transient {operation} failure for {name}")

    async def create(
        self, resource_type: str, name: str, parameters: dict[str, Any]
    ) -> OperationHandle:
        self.create_calls.append(name)
        await asyncio.sleep(0)
        self._maybe_fail_transiently(name, "create")

        if name in self.rejected:
            raise PermanentConfigurationError(f"Simulated provider rejected parameters for {name}")

        self._lookup(resource_type, name)

        duration = self.durations.get(name, self.provisioning_seconds)
        self._resources[name] = SimulatedResource(
            resource_type=resource_type,
            name=name,
            parameters=dict(parameters),
            state=ProvisioningState.PROVISIONING,
            ready_at=self._clock() + duration,
            outputs=self._outputs_for(resource_type, name),
        )
        logger.debug("simulated_create", name=name, duration=duration)
        return OperationHandle(
            resource_type=resource_type,
            name=name,
            operation_id=f"op-{len(self.create_calls)}",
        )

    async def get_state(self, resource_type: str, name: str) -> ProvisioningState:
        self.state_calls.append(name)
        await asyncio.sleep(0)
        self._maybe_fail_transiently(name, "state")

        resource = self._lookup(resource_type, name)
        if resource is None:
            return ProvisioningState.NOT_FOUND

        if (
            resource.state == ProvisioningState.PROVISIONING
            and name not in self.stuck
            and self._clock() >= resource.ready_at
        ):
            resource.state = (
                ProvisioningState.FAILED if name in self.failures else ProvisioningState.SUCCEEDED
            )
        return resource.state

    async def get_outputs(self, resource_type: str, name: str) -> dict[str, str]:
        await asyncio.sleep(0)
        resource = self._lookup(resource_type, name)
        if resource is None or resource.state != ProvisioningState.SUCCEEDED:
            return {}
        return dict(resource.outputs)

    async def aclose(self) -> None:
        return None


register_provider(
    "simulated",
    SimulatedProvider,
    description="In-memory provider with simulated provisioning delays",
)
