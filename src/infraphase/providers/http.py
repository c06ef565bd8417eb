"""Provisioning provider backed by a resource-oriented REST API."""

from __future__ import annotations

from typing import Any

import structlog
from circuitbreaker import CircuitBreakerError

from infraphase.clients.base import PermanentHTTPError, RetryableHTTPError
from infraphase.clients.provisioning import ProvisioningAPIClient
from infraphase.core.errors import PermanentConfigurationError, TransientProvisioningError
from infraphase.providers.base import OperationHandle, ProvisioningState
from infraphase.providers.registry import register_provider

logger = structlog.get_logger()

_CONFIGURATION_STATUSES = (400, 409, 422)
_ACCESS_DENIED_STATUSES = (401, 403)


def _permanent_error(
    exc: PermanentHTTPError, operation: str, resource_type: str, name: str
) -> PermanentConfigurationError | None:
    if exc.status_code in _ACCESS_DENIED_STATUSES:
        return PermanentConfigurationError(
            f"Provider denied access to {resource_type}/{name} during {operation}",
            {"status": exc.status_code},
        )
    if operation == "create" and exc.status_code in _CONFIGURATION_STATUSES:
        return PermanentConfigurationError(
            f"Provider rejected {resource_type}/{name}",
            {"status": exc.status_code},
        )
    return None


class HttpProvisioningProvider:
    """Provider that drives the provisioning REST API.

    ``PUT /resources/{type}/{name}`` starts or updates a resource,
    ``GET /resources/{type}/{name}`` reports ``provisioningState`` and
    ``GET /resources/{type}/{name}/outputs`` returns the output map.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        name: str = "http",
        client: ProvisioningAPIClient | None = None,
    ) -> None:
        self.name = name
        self._client = client or ProvisioningAPIClient(
            base_url, token, timeout=timeout, max_retries=max_retries
        )

    async def create(
        self, resource_type: str, name: str, parameters: dict[str, Any]
    ) -> OperationHandle:
        try:
            response = await self._client.put_resource(resource_type, name, parameters)
        except PermanentHTTPError as exc:
            permanent = _permanent_error(exc, "create", resource_type, name)
            if permanent is not None:
                raise permanent from exc
            raise TransientProvisioningError(
                f"Create failed for {resource_type}/{name}", {"status": exc.status_code}
            ) from exc
        except (RetryableHTTPError, CircuitBreakerError) as exc:
            raise TransientProvisioningError(
                f"Create failed for {resource_type}/{name}: {exc}"
            ) from exc

        logger.debug("http_resource_put", resource_type=resource_type, name=name)
        return OperationHandle(
            resource_type=resource_type,
            name=name,
            operation_id=response.get("operationId"),
        )

    async def get_state(self, resource_type: str, name: str) -> ProvisioningState:
        try:
            body = await self._client.get_resource(resource_type, name)
        except PermanentHTTPError as exc:
            if exc.status_code == 404:
                return ProvisioningState.NOT_FOUND
            permanent = _permanent_error(exc, "state query", resource_type, name)
            if permanent is not None:
                raise permanent from exc
            raise TransientProvisioningError(
                f"State query failed for {resource_type}/{name}", {"status": exc.status_code}
            ) from exc
        except (RetryableHTTPError, CircuitBreakerError) as exc:
            raise TransientProvisioningError(
                f"State query failed for {resource_type}/{name}: {exc}"
            ) from exc

        reported_type = body.get("resourceType")
        if reported_type and str(reported_type) != resource_type:
            raise PermanentConfigurationError(
                f"Name {name} is already taken by a {reported_type} resource",
                {"requested_type": resource_type, "existing_type": str(reported_type)},
            )

        raw = body.get("provisioningState") or body.get("properties", {}).get(
            "provisioningState"
        )
        return ProvisioningState.from_raw(raw)

    async def get_outputs(self, resource_type: str, name: str) -> dict[str, str]:
        try:
            body = await self._client.get_outputs(resource_type, name)
        except PermanentHTTPError as exc:
            permanent = _permanent_error(exc, "output query", resource_type, name)
            if permanent is not None:
                raise permanent from exc
            raise TransientProvisioningError(
                f"Output query failed for {resource_type}/{name}", {"status": exc.status_code}
            ) from exc
        except (RetryableHTTPError, CircuitBreakerError) as exc:
            raise TransientProvisioningError(
                f"Output query failed for {resource_type}/{name}: {exc}"
            ) from exc

        outputs = body.get("outputs", body)
        return {str(k): str(v) for k, v in outputs.items() if v is not None}

    async def aclose(self) -> None:
        await self._client.aclose()


register_provider(
    "http",
    HttpProvisioningProvider,
    description="Resource-oriented provisioning REST API",
)
