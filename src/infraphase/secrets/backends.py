"""
Cloud secret stores - lazy loaded when needed.

These stores require additional dependencies:
- AzureKeyVaultStore: azure-identity, azure-keyvault-secrets
- AWSSecretsManagerStore: boto3
- VaultSecretStore: hvac
"""

from __future__ import annotations

import importlib.util
import os
import re
from typing import TYPE_CHECKING

import structlog

from infraphase.secrets import BaseSecretStore, SecretBackend, _sanitize_path

if TYPE_CHECKING:
    from infraphase.secrets import SecretStoreConfig

logger = structlog.get_logger()

_AZURE_NAME_INVALID = re.compile(r"[^0-9A-Za-z-]")


def _sanitize_error(exc: Exception) -> str:
    """Sanitize error message to avoid leaking sensitive details."""
    return type(exc).__name__


def _require(*modules: str) -> None:
    for module in modules:
        if importlib.util.find_spec(module) is None:
            raise ImportError(f"{module} is not installed")


class AzureKeyVaultStore(BaseSecretStore):
    """Azure Key Vault store."""

    backend = SecretBackend.AZURE

    def __init__(self, config: "SecretStoreConfig"):
        _require("azure.identity", "azure.keyvault.secrets")
        if not config.azure_vault_url:
            raise ValueError("azure_vault_url is required for the azure secret store")
        self.config = config
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client

        from azure.identity import DefaultAzureCredential
        from azure.keyvault.secrets import SecretClient

        credential = DefaultAzureCredential()
        self._client = SecretClient(vault_url=self.config.azure_vault_url, credential=credential)
        return self._client

    def _secret_name(self, name: str) -> str:
        # Key Vault names allow only alphanumerics and dashes
        return _AZURE_NAME_INVALID.sub("-", f"{self.config.prefix}{name}")

    def get_secret(self, name: str) -> str | None:
        try:
            secret = self._get_client().get_secret(self._secret_name(name))
            return secret.value
        except Exception as e:
            logger.debug(
                "azure_secret_not_found", name=_sanitize_path(name), error=_sanitize_error(e)
            )
            return None

    def set_secret(self, name: str, value: str) -> bool:
        try:
            self._get_client().set_secret(self._secret_name(name), value)
            return True
        except Exception as e:
            logger.error(
                "azure_set_secret_failed", name=_sanitize_path(name), error=_sanitize_error(e)
            )
            raise

    def list_secrets(self) -> list[str]:
        try:
            names = [p.name for p in self._get_client().list_properties_of_secrets()]
        except Exception:
            return []
        prefix = self._secret_name("") if self.config.prefix else ""
        return sorted(n[len(prefix) :] for n in names if n.startswith(prefix))

    def supports_write(self) -> bool:
        return True


class AWSSecretsManagerStore(BaseSecretStore):
    """AWS Secrets Manager store. One secret per name, plain string values."""

    backend = SecretBackend.AWS

    def __init__(self, config: "SecretStoreConfig"):
        _require("boto3")
        self.config = config
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client

        import boto3

        self._client = boto3.client("secretsmanager", region_name=self.config.aws_region)
        return self._client

    def get_secret(self, name: str) -> str | None:
        try:
            response = self._get_client().get_secret_value(SecretId=f"{self.config.prefix}{name}")
            return response.get("SecretString")
        except Exception as e:
            logger.debug(
                "aws_secret_not_found", name=_sanitize_path(name), error=_sanitize_error(e)
            )
            return None

    def set_secret(self, name: str, value: str) -> bool:
        client = self._get_client()
        secret_id = f"{self.config.prefix}{name}"
        try:
            try:
                client.put_secret_value(SecretId=secret_id, SecretString=value)
            except client.exceptions.ResourceNotFoundException:
                client.create_secret(Name=secret_id, SecretString=value)
            return True
        except Exception as e:
            logger.error(
                "aws_set_secret_failed", name=_sanitize_path(name), error=_sanitize_error(e)
            )
            raise

    def list_secrets(self) -> list[str]:
        try:
            paginator = self._get_client().get_paginator("list_secrets")
            secrets = []
            for page in paginator.paginate():
                for secret in page.get("SecretList", []):
                    secret_name = secret.get("Name", "")
                    if secret_name.startswith(self.config.prefix):
                        secrets.append(secret_name[len(self.config.prefix) :])
            return sorted(secrets)
        except Exception:
            return []

    def supports_write(self) -> bool:
        return True


class VaultSecretStore(BaseSecretStore):
    """HashiCorp Vault store (default KV v2 mount), one key per secret under the prefix."""

    backend = SecretBackend.VAULT

    def __init__(self, config: "SecretStoreConfig"):
        _require("hvac")
        if not config.vault_address:
            raise ValueError("vault_address is required for the vault secret store")
        self.config = config
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client

        import hvac

        self._client = hvac.Client(
            url=self.config.vault_address,
            namespace=self.config.vault_namespace,
        )
        token = os.environ.get("VAULT_TOKEN")
        if token:
            self._client.token = token
        return self._client

    def _path(self, name: str) -> str:
        return f"{self.config.vault_path_prefix}/{self.config.prefix}{name}"

    def get_secret(self, name: str) -> str | None:
        try:
            response = self._get_client().secrets.kv.v2.read_secret_version(path=self._path(name))
            return response.get("data", {}).get("data", {}).get("value")
        except Exception as e:
            logger.debug(
                "vault_secret_not_found", name=_sanitize_path(name), error=_sanitize_error(e)
            )
            return None

    def set_secret(self, name: str, value: str) -> bool:
        try:
            self._get_client().secrets.kv.v2.create_or_update_secret(
                path=self._path(name), secret={"value": value}
            )
            return True
        except Exception as e:
            logger.error(
                "vault_set_secret_failed", name=_sanitize_path(name), error=_sanitize_error(e)
            )
            raise

    def list_secrets(self) -> list[str]:
        try:
            response = self._get_client().secrets.kv.v2.list_secrets(
                path=self.config.vault_path_prefix
            )
            keys = response.get("data", {}).get("keys", [])
        except Exception:
            return []
        return sorted(k[len(self.config.prefix) :] for k in keys if k.startswith(self.config.prefix))

    def supports_write(self) -> bool:
        return True
