from __future__ import annotations

from typing import Any

from infraphase.clients.base import BaseHTTPClient


class ProvisioningAPIClient(BaseHTTPClient):
    """Client for a resource-oriented provisioning REST API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
    ) -> None:
        super().__init__(
            base_url, timeout=timeout, max_retries=max_retries, backoff_seconds=backoff_seconds
        )
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def put_resource(
        self, resource_type: str, name: str, parameters: dict[str, Any]
    ) -> dict[str, Any]:
        return await self.put(
            f"/resources/{resource_type}/{name}", json={"parameters": parameters}
        )

    async def get_resource(self, resource_type: str, name: str) -> dict[str, Any]:
        return await self.get(f"/resources/{resource_type}/{name}")

    async def get_outputs(self, resource_type: str, name: str) -> dict[str, Any]:
        return await self.get(f"/resources/{resource_type}/{name}/outputs")
