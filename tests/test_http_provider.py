"""Tests for providers/http.py."""

from unittest.mock import AsyncMock

import pytest
import respx
from httpx import Response

from infraphase.clients.base import RetryableHTTPError
from infraphase.core.errors import PermanentConfigurationError, TransientProvisioningError
from infraphase.providers.base import ProvisioningState
from infraphase.providers.http import HttpProvisioningProvider

BASE = "https://provision.example.com"


@pytest.fixture
def provider():
    return HttpProvisioningProvider(BASE, "token", name="azure")


class TestCreate:
    @pytest.mark.asyncio
    async def test_returns_operation_handle(self, provider):
        with respx.mock:
            respx.put(f"{BASE}/resources/redis/cache").mock(
                return_value=Response(202, json={"operationId": "op-42"})
            )
            handle = await provider.create("redis", "cache", {"sku": "Basic"})

        assert handle.operation_id == "op-42"
        assert handle.resource_type == "redis"
        assert handle.name == "cache"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 409, 422])
    async def test_rejections_are_configuration_errors(self, provider, status):
        with respx.mock:
            respx.put(f"{BASE}/resources/redis/cache").mock(return_value=Response(status))
            with pytest.raises(PermanentConfigurationError) as exc_info:
                await provider.create("redis", "cache", {})

        assert exc_info.value.details["status"] == status

    @pytest.mark.asyncio
    async def test_other_client_errors_are_transient(self, provider):
        with respx.mock:
            respx.put(f"{BASE}/resources/redis/cache").mock(return_value=Response(404))
            with pytest.raises(TransientProvisioningError):
                await provider.create("redis", "cache", {})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_access_denied_is_not_retryable(self, provider, status):
        with respx.mock:
            route = respx.put(f"{BASE}/resources/redis/cache").mock(
                return_value=Response(status)
            )
            with pytest.raises(PermanentConfigurationError) as exc_info:
                await provider.create("redis", "cache", {})

        assert not isinstance(exc_info.value, TransientProvisioningError)
        assert exc_info.value.details["status"] == status
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_are_transient(self):
        client = AsyncMock()
        client.put_resource.side_effect = RetryableHTTPError("HTTP 503")
        provider = HttpProvisioningProvider(BASE, client=client)

        with pytest.raises(TransientProvisioningError, match="503"):
            await provider.create("redis", "cache", {})


class TestGetState:
    """Tests for provisioning state mapping."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, expected",
        [
            ({"provisioningState": "Succeeded"}, ProvisioningState.SUCCEEDED),
            ({"provisioningState": "Failed"}, ProvisioningState.FAILED),
            ({"provisioningState": "Updating"}, ProvisioningState.PROVISIONING),
            ({"properties": {"provisioningState": "Canceled"}}, ProvisioningState.FAILED),
            ({}, ProvisioningState.NOT_FOUND),
        ],
    )
    async def test_maps_states(self, provider, body, expected):
        with respx.mock:
            respx.get(f"{BASE}/resources/redis/cache").mock(return_value=Response(200, json=body))
            assert await provider.get_state("redis", "cache") == expected

    @pytest.mark.asyncio
    async def test_404_is_not_found(self, provider):
        with respx.mock:
            respx.get(f"{BASE}/resources/redis/cache").mock(return_value=Response(404))
            assert await provider.get_state("redis", "cache") == ProvisioningState.NOT_FOUND

    @pytest.mark.asyncio
    async def test_resource_of_another_type_is_a_conflict(self, provider):
        body = {"resourceType": "postgres", "provisioningState": "Succeeded"}
        with respx.mock:
            respx.get(f"{BASE}/resources/redis/cache").mock(return_value=Response(200, json=body))
            with pytest.raises(PermanentConfigurationError, match="already taken"):
                await provider.get_state("redis", "cache")

    @pytest.mark.asyncio
    async def test_access_denied_is_configuration_error(self, provider):
        with respx.mock:
            respx.get(f"{BASE}/resources/redis/cache").mock(return_value=Response(401))
            with pytest.raises(PermanentConfigurationError, match="denied access"):
                await provider.get_state("redis", "cache")


class TestGetOutputs:
    @pytest.mark.asyncio
    async def test_reads_outputs_mapping(self, provider):
        with respx.mock:
            respx.get(f"{BASE}/resources/redis/cache/outputs").mock(
                return_value=Response(200, json={"outputs": {"endpoint": "h", "port": 6380, "x": None}})
            )
            outputs = await provider.get_outputs("redis", "cache")

        assert outputs == {"endpoint": "h", "port": "6380"}

    @pytest.mark.asyncio
    async def test_failure_is_transient(self, provider):
        with respx.mock:
            respx.get(f"{BASE}/resources/redis/cache/outputs").mock(return_value=Response(404))
            with pytest.raises(TransientProvisioningError):
                await provider.get_outputs("redis", "cache")

    @pytest.mark.asyncio
    async def test_access_denied_is_configuration_error(self, provider):
        with respx.mock:
            respx.get(f"{BASE}/resources/redis/cache/outputs").mock(return_value=Response(403))
            with pytest.raises(PermanentConfigurationError):
                await provider.get_outputs("redis", "cache")


@pytest.mark.asyncio
async def test_aclose_closes_client():
    client = AsyncMock()
    provider = HttpProvisioningProvider(BASE, client=client)

    await provider.aclose()

    client.aclose.assert_awaited_once()
