"""Provisioning providers and built-in registrations."""

# Import built-in providers for side effects (registration)
from infraphase.providers import http as _http  # noqa: F401
from infraphase.providers import simulated as _simulated  # noqa: F401
from infraphase.providers.base import OperationHandle, ProvisioningProvider, ProvisioningState
from infraphase.providers.registry import (
    create_provider,
    list_providers,
    register_provider,
)

__all__ = [
    "OperationHandle",
    "ProvisioningProvider",
    "ProvisioningState",
    "create_provider",
    "list_providers",
    "register_provider",
]
