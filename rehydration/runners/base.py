"""Task runner base class.

A runner starts one worker task per admitted rehydration and returns
immediately. It does not supervise the task; the worker finalizes its own
idempotency record.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass

from rehydration.models.dataset import DatasetVersion, User

# Worker task environment
DATASET_ID_KEY = "DATASET_ID"
DATASET_VERSION_ID_KEY = "DATASET_VERSION_ID"
USER_NAME_KEY = "USER_NAME"
USER_EMAIL_KEY = "USER_EMAIL"
ENV_KEY = "ENV"
IDEMPOTENCY_TABLE_NAME_KEY = "IDEMPOTENCY_TABLE_NAME"
TRACKING_TABLE_NAME_KEY = "TRACKING_TABLE_NAME"
REGION_KEY = "REGION"

SETTINGS_ENV_PREFIX = "REHYDRATION_"


@dataclass(frozen=True)
class TaskSpec:
    """Inputs of one worker task."""

    dataset: DatasetVersion
    user: User
    env: str
    idempotency_table: str
    tracking_table: str | None = None
    region: str | None = None

    def environment(self) -> dict[str, str]:
        """Environment variables read by the worker."""
        environment = {
            DATASET_ID_KEY: str(self.dataset.dataset_id),
            DATASET_VERSION_ID_KEY: str(self.dataset.version_id),
            USER_NAME_KEY: self.user.name,
            USER_EMAIL_KEY: self.user.email,
            ENV_KEY: self.env,
            IDEMPOTENCY_TABLE_NAME_KEY: self.idempotency_table,
        }
        if self.tracking_table:
            environment[TRACKING_TABLE_NAME_KEY] = self.tracking_table
        if self.region:
            environment[REGION_KEY] = self.region
        return environment


def forwarded_settings_env() -> dict[str, str]:
    """Service settings overrides to hand down to a worker in another environment."""
    return {k: v for k, v in os.environ.items() if k.startswith(SETTINGS_ENV_PREFIX)}


@dataclass(frozen=True)
class TaskInfo:
    """A started worker task."""

    task_arn: str


class TaskRunner(ABC):
    """Starts worker tasks."""

    @abstractmethod
    async def run(self, spec: TaskSpec) -> TaskInfo:
        """Start a worker for ``spec``.

        Raises:
            TaskStartError: If the task could not be started.
        """
        ...

    async def close(self) -> None:
        """Release runner resources."""
