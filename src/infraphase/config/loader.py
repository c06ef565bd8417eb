"""
Plan file discovery, loading and wiring.

Search order:
1. Explicit path (PLAN argument)
2. .infraphase/plan.yaml (project root)
3. infraphase.yaml (project root)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

import structlog
import yaml

from infraphase.config.settings import Settings
from infraphase.core.errors import ConfigurationError, ProvisioningError
from infraphase.orchestration.context import ExecutionContext, output_references
from infraphase.providers import create_provider
from infraphase.secrets import SecretBackend, SecretStoreConfig

logger = structlog.get_logger()

DEFAULT_PROVIDER = "default"


def get_plan_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the plan file to use.

    Returns:
        Path to the plan file or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        return None

    for candidate in (Path.cwd() / ".infraphase" / "plan.yaml", Path.cwd() / "infraphase.yaml"):
        if candidate.exists():
            return candidate

    return None


def load_plan_file(path: str | Path | None = None) -> dict[str, Any]:
    """Read a YAML plan definition; raise ConfigurationError when it cannot be used."""
    plan_path = get_plan_path(path)
    if plan_path is None:
        raise ConfigurationError(
            f"Plan file not found: {path}" if path else "No plan file found",
            {"searched": str(path) if path else ".infraphase/plan.yaml, infraphase.yaml"},
        )

    try:
        with open(plan_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {plan_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Plan file {plan_path} must contain a mapping")

    logger.debug("loaded_plan_file", path=str(plan_path))
    return data


def parse_secret_store_config(
    data: Mapping[str, Any] | None, settings: Settings
) -> SecretStoreConfig | None:
    """Parse the ``secret_store`` section of a plan, falling back to settings.

    ``backend: none`` disables propagation.
    """
    data = data or {}
    backend_str = str(data.get("backend", settings.secret_backend)).lower()
    if backend_str == "none":
        return None
    try:
        backend = SecretBackend(backend_str)
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown secret backend '{backend_str}'",
            {"available": ", ".join(b.value for b in SecretBackend)},
        ) from e

    azure = data.get("azure") or {}
    aws = data.get("aws") or {}
    vault = data.get("vault") or {}

    return SecretStoreConfig(
        backend=backend,
        prefix=str(data.get("prefix", settings.secret_prefix)),
        azure_vault_url=azure.get("vault_url", settings.azure_vault_url),
        aws_region=aws.get("region", settings.aws_region),
        vault_address=vault.get("address", settings.vault_address),
        vault_namespace=vault.get("namespace"),
        vault_path_prefix=vault.get("path_prefix", settings.vault_path_prefix),
        credentials_file=Path(data.get("credentials_file", settings.credentials_file)).expanduser(),
    )


def build_providers(
    definition: Mapping[str, Any],
    aliases: Iterable[str],
    settings: Settings,
    *,
    simulate: bool = False,
    variables: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Instantiate one provider per alias used by the plan.

    Options may reference ``${var:NAME}`` and ``${env:NAME}``. The ``default``
    alias falls back to the HTTP provider configured in settings. With
    ``simulate`` every alias gets a SimulatedProvider instead.
    """
    declared = definition.get("providers") or {}
    if not isinstance(declared, Mapping):
        raise ConfigurationError("'providers' must be a mapping of alias to options")

    ctx = ExecutionContext(variables=dict(variables or {}))
    providers: dict[str, Any] = {}

    for alias in sorted(set(aliases)):
        if simulate:
            options = dict((declared.get(alias) or {}).get("simulation") or {})
            providers[alias] = create_provider("simulated", name=alias, **options)
            continue

        if alias in declared:
            options = dict(declared[alias] or {})
        elif alias == DEFAULT_PROVIDER:
            if not settings.provider_base_url:
                raise ConfigurationError(
                    "No 'default' provider declared and INFRAPHASE_PROVIDER_BASE_URL is not set"
                )
            options = {
                "kind": "http",
                "base_url": settings.provider_base_url,
                "token": settings.provider_token,
            }
        else:
            raise ConfigurationError(f"Provider alias '{alias}' is not declared")

        kind = str(options.pop("kind", "http"))
        options.pop("simulation", None)
        if output_references(options):
            raise ConfigurationError(f"Provider '{alias}' options cannot use task outputs")
        try:
            options = ctx.resolve(options)
        except ProvisioningError as e:
            raise ConfigurationError(f"Provider '{alias}': {e.message}") from e

        if kind == "http":
            options.setdefault("timeout", settings.http_timeout)
            options.setdefault("max_retries", settings.http_max_retries)
        providers[alias] = create_provider(kind, name=alias, **options)
        logger.debug("provider_created", alias=alias, kind=kind)

    return providers
