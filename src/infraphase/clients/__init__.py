from infraphase.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from infraphase.clients.provisioning import ProvisioningAPIClient

__all__ = ["BaseHTTPClient", "PermanentHTTPError", "ProvisioningAPIClient", "RetryableHTTPError"]
