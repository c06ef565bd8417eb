"""Tests for secrets/backends.py with mocked SDK clients."""

from unittest.mock import MagicMock, patch

import pytest

from infraphase.secrets import SecretStoreConfig
from infraphase.secrets.backends import (
    AWSSecretsManagerStore,
    AzureKeyVaultStore,
    VaultSecretStore,
)


@pytest.fixture(autouse=True)
def sdks_installed():
    with patch("infraphase.secrets.backends._require"):
        yield


class TestAzureKeyVaultStore:
    """Tests for the Key Vault store."""

    def _store(self, prefix=""):
        store = AzureKeyVaultStore(
            SecretStoreConfig(azure_vault_url="https://kv.vault.azure.net", prefix=prefix)
        )
        store._client = MagicMock()
        return store

    def test_names_are_sanitized(self):
        store = self._store(prefix="shop_")
        store.set_secret("redis/key", "v")
        store._client.set_secret.assert_called_once_with("shop-redis-key", "v")

    def test_get_missing_returns_none(self):
        store = self._store()
        store._client.get_secret.side_effect = Exception("SecretNotFound")
        assert store.get_secret("x") is None

    def test_set_failure_is_raised(self):
        store = self._store()
        store._client.set_secret.side_effect = PermissionError("forbidden")
        with pytest.raises(PermissionError):
            store.set_secret("x", "v")

    def test_list_strips_prefix(self):
        store = self._store(prefix="shop-")
        props = [MagicMock(), MagicMock()]
        props[0].name = "shop-a"
        props[1].name = "other-b"
        store._client.list_properties_of_secrets.return_value = props
        assert store.list_secrets() == ["a"]


class TestAWSSecretsManagerStore:
    """Tests for the Secrets Manager store."""

    def _store(self):
        store = AWSSecretsManagerStore(SecretStoreConfig(prefix="shop/"))
        store._client = MagicMock()
        store._client.exceptions.ResourceNotFoundException = type(
            "ResourceNotFoundException", (Exception,), {}
        )
        return store

    def test_updates_existing_secret(self):
        store = self._store()
        assert store.set_secret("redis-key", "v") is True
        store._client.put_secret_value.assert_called_once_with(
            SecretId="shop/redis-key", SecretString="v"
        )
        store._client.create_secret.assert_not_called()

    def test_creates_missing_secret(self):
        store = self._store()
        store._client.put_secret_value.side_effect = (
            store._client.exceptions.ResourceNotFoundException()
        )
        assert store.set_secret("redis-key", "v") is True
        store._client.create_secret.assert_called_once_with(Name="shop/redis-key", SecretString="v")

    def test_get_secret(self):
        store = self._store()
        store._client.get_secret_value.return_value = {"SecretString": "v"}
        assert store.get_secret("redis-key") == "v"
        store._client.get_secret_value.assert_called_once_with(SecretId="shop/redis-key")


class TestVaultSecretStore:
    """Tests for the HashiCorp Vault store."""

    def _store(self):
        store = VaultSecretStore(SecretStoreConfig(vault_address="https://vault.local"))
        store._client = MagicMock()
        return store

    def test_writes_value_key(self):
        store = self._store()
        store.set_secret("redis-key", "v")
        store._client.secrets.kv.v2.create_or_update_secret.assert_called_once_with(
            path="infraphase/redis-key", secret={"value": "v"}
        )

    def test_reads_value_key(self):
        store = self._store()
        store._client.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"value": "v"}}
        }
        assert store.get_secret("redis-key") == "v"

    def test_requires_address(self):
        with pytest.raises(ValueError):
            VaultSecretStore(SecretStoreConfig())
