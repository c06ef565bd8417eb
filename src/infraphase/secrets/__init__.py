"""
Secret stores that receive the credential bundle after provisioning.

Core backends (always available):
- In-memory store (dry runs and simulations)
- Secrets file (~/.infraphase/secrets.yaml)
- Environment variables (read-only)

Optional backends (loaded on demand):
- Azure Key Vault (requires azure-identity, azure-keyvault-secrets)
- AWS Secrets Manager (requires boto3)
- HashiCorp Vault (requires hvac)
"""

from __future__ import annotations

import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()


class SecretBackend(StrEnum):
    """Supported secret store backends."""

    MEMORY = "memory"
    FILE = "file"
    ENV = "env"
    AZURE = "azure"
    AWS = "aws"
    VAULT = "vault"


@dataclass
class SecretStoreConfig:
    """Configuration for the secret store written by the propagator."""

    backend: SecretBackend = SecretBackend.FILE
    prefix: str = ""

    # Azure config
    azure_vault_url: str | None = None

    # AWS config
    aws_region: str = "us-east-1"

    # Vault config
    vault_address: str | None = None
    vault_namespace: str | None = None
    vault_path_prefix: str = "infraphase"

    # File config
    credentials_file: Path = field(
        default_factory=lambda: Path.home() / ".infraphase" / "secrets.yaml"
    )


class SecretBackendUnavailableError(Exception):
    """Raised when a configured backend cannot be constructed."""

    def __init__(self, backend: str, reason: str):
        super().__init__(f"Secret backend '{backend}' is unavailable: {reason}")
        self.backend = backend
        self.reason = reason



class SecretStoreError(Exception):
    """Raised when a store's backing data cannot be read safely."""

def _sanitize_path(path: str) -> str:
    """Mask a secret name for logging."""
    if not path or len(path) <= 2:
        return "***"
    if "/" in path:
        return f"{path.split('/', 1)[0]}/***"
    return f"{path[:2]}***"


class BaseSecretStore(ABC):
    """Base class for secret stores."""

    backend: SecretBackend

    @abstractmethod
    def get_secret(self, name: str) -> str | None:
        """Get a secret by name."""
        pass

    @abstractmethod
    def set_secret(self, name: str, value: str) -> bool:
        """Create or update a secret (if supported)."""
        pass

    @abstractmethod
    def list_secrets(self) -> list[str]:
        """List available secrets."""
        pass

    def supports_write(self) -> bool:
        """Whether this store supports writing secrets."""
        return False


class MemorySecretStore(BaseSecretStore):
    """Process-local secret store."""

    backend = SecretBackend.MEMORY

    def __init__(self, initial: dict[str, str] | None = None):
        self._secrets: dict[str, str] = dict(initial or {})

    def get_secret(self, name: str) -> str | None:
        return self._secrets.get(name)

    def set_secret(self, name: str, value: str) -> bool:
        self._secrets[name] = value
        return True

    def list_secrets(self) -> list[str]:
        return sorted(self._secrets)

    def supports_write(self) -> bool:
        return True


class EnvSecretStore(BaseSecretStore):
    """Environment variable secret store (read-only)."""

    backend = SecretBackend.ENV

    def __init__(self, prefix: str = "INFRAPHASE_SECRET_"):
        self.prefix = prefix

    def get_secret(self, name: str) -> str | None:
        return os.environ.get(self._name_to_env(name))

    def set_secret(self, name: str, value: str) -> bool:
        return False

    def list_secrets(self) -> list[str]:
        return [
            key[len(self.prefix) :].lower().replace("_", "-")
            for key in os.environ
            if key.startswith(self.prefix)
        ]

    def _name_to_env(self, name: str) -> str:
        """Convert secret name to environment variable name."""
        normalized = name.replace("/", "_").replace("-", "_").upper()
        return f"{self.prefix}{normalized}"


class FileSecretStore(BaseSecretStore):
    """File-based secret store using a flat YAML mapping."""

    backend = SecretBackend.FILE

    def __init__(self, credentials_file: Path):
        self.credentials_file = credentials_file
        self._cache: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._cache is not None:
            return self._cache

        if not self.credentials_file.exists():
            self._cache = {}
            return self._cache

        try:
            with open(self.credentials_file) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(
                "failed_to_load_secrets_file",
                file=str(self.credentials_file),
                error_type=type(e).__name__,
            )
            raise SecretStoreError(
                f"Cannot read secrets file {self.credentials_file}: {type(e).__name__}"
            ) from e

        if not isinstance(data, dict):
            raise SecretStoreError(f"Secrets file {self.credentials_file} must contain a mapping")

        self._cache = data
        return self._cache

    def get_secret(self, name: str) -> str | None:
        value = self._load().get(name)
        return str(value) if value is not None else None

    def set_secret(self, name: str, value: str) -> bool:
        data = dict(self._load())
        data[name] = value

        directory = self.credentials_file.parent
        directory.mkdir(parents=True, exist_ok=True)
        # mkstemp creates the file with mode 0600
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".secrets-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.credentials_file)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self._cache = data
        return True

    def list_secrets(self) -> list[str]:
        return sorted(self._load())

    def supports_write(self) -> bool:
        return True


def _load_cloud_backend(backend_type: SecretBackend, config: SecretStoreConfig) -> BaseSecretStore:
    """Lazy-load a cloud backend."""
    try:
        if backend_type == SecretBackend.AZURE:
            from infraphase.secrets.backends import AzureKeyVaultStore

            return AzureKeyVaultStore(config)
        if backend_type == SecretBackend.AWS:
            from infraphase.secrets.backends import AWSSecretsManagerStore

            return AWSSecretsManagerStore(config)
        if backend_type == SecretBackend.VAULT:
            from infraphase.secrets.backends import VaultSecretStore

            return VaultSecretStore(config)
    except (ImportError, ValueError) as e:
        raise SecretBackendUnavailableError(backend_type.value, str(e)) from e
    raise SecretBackendUnavailableError(backend_type.value, "unknown backend")


def create_secret_store(config: SecretStoreConfig | None = None) -> BaseSecretStore:
    """Build the secret store described by ``config``."""
    config = config or SecretStoreConfig()

    if config.backend == SecretBackend.MEMORY:
        return MemorySecretStore()
    if config.backend == SecretBackend.FILE:
        return FileSecretStore(config.credentials_file)
    if config.backend == SecretBackend.ENV:
        return EnvSecretStore()

    store = _load_cloud_backend(config.backend, config)
    logger.debug("secret_store_loaded", backend=config.backend.value)
    return store


__all__ = [
    "SecretBackend",
    "SecretStoreConfig",
    "SecretBackendUnavailableError",
    "SecretStoreError",
    "BaseSecretStore",
    "MemorySecretStore",
    "EnvSecretStore",
    "FileSecretStore",
    "create_secret_store",
]
