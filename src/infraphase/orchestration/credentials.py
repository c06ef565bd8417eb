"""Collection of secret-worthy outputs from succeeded tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

import structlog

from infraphase.orchestration.models import ProvisioningPlan, TaskStatus

logger = structlog.get_logger()


@dataclass(frozen=True)
class CredentialEntry:
    name: str
    value: str = field(repr=False)
    task_id: str
    phase: str
    output: str


@dataclass(frozen=True)
class MissingCredential:
    name: str
    task_id: str
    output: str
    reason: str


@dataclass
class CredentialBundle:
    """Secret name → value, each entry tagged with its producing task."""

    entries: dict[str, CredentialEntry] = field(default_factory=dict)
    missing: list[MissingCredential] = field(default_factory=list)

    def add(self, entry: CredentialEntry) -> None:
        if entry.name in self.entries:
            raise ValueError(f"Secret '{entry.name}' collected twice")
        self.entries[entry.name] = entry

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[CredentialEntry]:
        return iter(self.entries.values())

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def get(self, name: str) -> CredentialEntry | None:
        return self.entries.get(name)

    def by_task(self, task_id: str) -> list[CredentialEntry]:
        return [e for e in self.entries.values() if e.task_id == task_id]

    @property
    def warnings(self) -> list[str]:
        return [
            f"Secret '{m.name}' from {m.task_id}.{m.output} not collected: {m.reason}"
            for m in self.missing
        ]


class CredentialCollector:
    """Extracts declared secret outputs from every succeeded task of a plan.

    Fails closed: a declared secret that cannot be read is recorded as missing,
    never fabricated.
    """

    def collect(self, plan: ProvisioningPlan) -> CredentialBundle:
        bundle = CredentialBundle()
        for phase in plan.phases:
            for task in phase.tasks:
                for output, secret_name in task.secret_outputs.items():
                    if task.status != TaskStatus.SUCCEEDED:
                        bundle.missing.append(
                            MissingCredential(
                                secret_name, task.id, output, f"task is {task.status.value}"
                            )
                        )
                        continue
                    value = task.outputs.get(output)
                    if not value:
                        bundle.missing.append(
                            MissingCredential(secret_name, task.id, output, "output not present")
                        )
                        continue
                    bundle.add(
                        CredentialEntry(
                            name=secret_name,
                            value=value,
                            task_id=task.id,
                            phase=phase.name,
                            output=output,
                        )
                    )

        for warning in bundle.warnings:
            logger.warning("credential_missing", detail=warning)
        logger.info("credentials_collected", entries=len(bundle), missing=len(bundle.missing))
        return bundle
