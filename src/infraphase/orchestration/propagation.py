"""Writes the credential bundle into the secret store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from infraphase.core.errors import SecretPropagationError
from infraphase.orchestration.credentials import CredentialBundle
from infraphase.secrets import BaseSecretStore, _sanitize_path

logger = structlog.get_logger()


class WriteStatus(str, Enum):
    WRITTEN = "written"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class SecretWriteResult:
    name: str
    task_id: str
    status: WriteStatus
    error: SecretPropagationError | None = None

    @property
    def ok(self) -> bool:
        return self.status != WriteStatus.FAILED


@dataclass
class PropagationResult:
    results: list[SecretWriteResult] = field(default_factory=list)

    @property
    def failed(self) -> list[SecretWriteResult]:
        return [r for r in self.results if not r.ok]

    @property
    def succeeded(self) -> list[SecretWriteResult]:
        return [r for r in self.results if r.ok]

    @property
    def complete(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)


class SecretPropagator:
    """Upserts every bundle entry; one failed write never blocks the others."""

    def __init__(self, store: BaseSecretStore) -> None:
        self._store = store

    def propagate(self, bundle: CredentialBundle) -> PropagationResult:
        result = PropagationResult()
        for entry in bundle:
            result.results.append(self._write(entry.name, entry.value, entry.task_id))

        logger.info(
            "secrets_propagated",
            backend=getattr(self._store, "backend", "custom"),
            written=sum(1 for r in result.results if r.status == WriteStatus.WRITTEN),
            unchanged=sum(1 for r in result.results if r.status == WriteStatus.UNCHANGED),
            failed=len(result.failed),
        )
        return result

    def _write(self, name: str, value: str, task_id: str) -> SecretWriteResult:
        masked = _sanitize_path(name)
        try:
            if self._store.get_secret(name) == value:
                logger.debug("secret_unchanged", name=masked)
                return SecretWriteResult(name, task_id, WriteStatus.UNCHANGED)
            if not self._store.set_secret(name, value):
                raise SecretPropagationError(
                    f"Secret store rejected write of '{name}'", secret_name=name
                )
        except SecretPropagationError as exc:
            logger.warning("secret_write_failed", name=masked, error=exc.message)
            return SecretWriteResult(name, task_id, WriteStatus.FAILED, exc)
        except Exception as exc:
            error = SecretPropagationError(
                f"Writing '{name}' failed: {type(exc).__name__}: {exc}",
                {"error_type": type(exc).__name__},
                secret_name=name,
            )
            logger.warning("secret_write_failed", name=masked, error_type=type(exc).__name__)
            return SecretWriteResult(name, task_id, WriteStatus.FAILED, error)

        logger.debug("secret_written", name=masked)
        return SecretWriteResult(name, task_id, WriteStatus.WRITTEN)
