"""Docker task runner using aiodocker.

Runs the worker image as a detached container. The container removes
itself on exit; its id is used as the task ARN.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import aiodocker
import structlog
from aiodocker.exceptions import DockerError

from rehydration.errors import TaskStartError
from rehydration.runners.base import TaskInfo, TaskRunner, TaskSpec, forwarded_settings_env

if TYPE_CHECKING:
    from rehydration.config import DockerRunnerConfig

logger = structlog.get_logger()


class DockerTaskRunner(TaskRunner):
    """Starts worker containers on the local docker daemon."""

    def __init__(self, config: "DockerRunnerConfig") -> None:
        socket_url = config.socket
        if socket_url.startswith("unix://"):
            self._socket = socket_url
        else:
            self._socket = f"unix://{socket_url}"
        self._image = config.image
        self._network = config.network
        self._log = logger.bind(runner="docker")
        self._client: aiodocker.Docker | None = None

    async def _get_client(self) -> aiodocker.Docker:
        """Get or create the aiodocker client."""
        if self._client is None:
            self._client = aiodocker.Docker(url=self._socket)
        return self._client

    async def close(self) -> None:
        """Close the docker client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _network_exists(self, name: str) -> bool:
        client = await self._get_client()
        try:
            await client.networks.get(name)
            return True
        except DockerError as e:
            if e.status == 404:
                return False
            raise

    async def _build_config(self, spec: TaskSpec) -> dict[str, Any]:
        environment = {**forwarded_settings_env(), **spec.environment()}
        host_config: dict[str, Any] = {"AutoRemove": True}

        if self._network:
            if await self._network_exists(self._network):
                host_config["NetworkMode"] = self._network
            else:
                self._log.warning("runner.docker.network_not_found", network=self._network)

        return {
            "Image": self._image,
            "Cmd": ["python", "-m", "rehydration.worker"],
            "Env": [f"{k}={v}" for k, v in environment.items()],
            "Labels": {
                "rehydration.managed": "true",
                "rehydration.dataset_version": spec.dataset.record_id,
            },
            "HostConfig": host_config,
        }

    async def run(self, spec: TaskSpec) -> TaskInfo:
        name = (
            f"rehydrate-{spec.dataset.dataset_id}-{spec.dataset.version_id}-"
            f"{uuid.uuid4().hex[:8]}"
        )
        self._log.info("runner.docker.run", image=self._image, name=name)
        try:
            client = await self._get_client()
            config = await self._build_config(spec)
            container = await client.containers.create(config=config, name=name)
            await container.start()
        except DockerError as e:
            raise TaskStartError(f"error starting worker container {name}: {e}") from e

        self._log.info("runner.docker.started", container_id=container.id, name=name)
        return TaskInfo(task_arn=container.id)
