"""Worker task runners."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rehydration.runners.base import TaskInfo, TaskRunner, TaskSpec

if TYPE_CHECKING:
    from rehydration.config import Settings


def create_runner(settings: "Settings") -> TaskRunner:
    """Build the configured task runner."""
    runner = settings.runner
    if runner.type == "ecs":
        from rehydration.runners.ecs import EcsTaskRunner

        return EcsTaskRunner.from_config(runner.ecs, region=settings.storage.region)
    if runner.type == "docker":
        from rehydration.runners.docker import DockerTaskRunner

        return DockerTaskRunner(runner.docker)
    if runner.type == "k8s":
        from rehydration.runners.k8s import K8sTaskRunner

        return K8sTaskRunner(runner.k8s)
    if runner.type == "process":
        from rehydration.runners.process import ProcessTaskRunner

        return ProcessTaskRunner(runner.process)
    raise ValueError(f"Unsupported runner type: {runner.type}")


__all__ = ["TaskInfo", "TaskRunner", "TaskSpec", "create_runner"]
