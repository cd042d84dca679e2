"""ECS (Fargate) task runner using boto3."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import TYPE_CHECKING, Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from rehydration.errors import TaskStartError
from rehydration.runners.base import TaskInfo, TaskRunner, TaskSpec

if TYPE_CHECKING:
    from rehydration.config import EcsRunnerConfig

logger = structlog.get_logger()


class EcsTaskRunner(TaskRunner):
    """Runs the worker as a Fargate task with container environment overrides."""

    def __init__(self, client: Any, config: "EcsRunnerConfig") -> None:
        self._client = client
        self._config = config
        self._log = logger.bind(runner="ecs", cluster=config.cluster)

    @classmethod
    def from_config(cls, config: "EcsRunnerConfig", region: str | None = None) -> "EcsTaskRunner":
        return cls(boto3.client("ecs", region_name=region), config)

    def run_task_input(self, spec: TaskSpec) -> dict[str, Any]:
        cfg = self._config
        return {
            "cluster": cfg.cluster,
            "taskDefinition": cfg.task_definition,
            "launchType": "FARGATE",
            "count": 1,
            "networkConfiguration": {
                "awsvpcConfiguration": {
                    "subnets": list(cfg.subnets),
                    "securityGroups": list(cfg.security_groups),
                    "assignPublicIp": "ENABLED" if cfg.assign_public_ip else "DISABLED",
                }
            },
            "overrides": {
                "containerOverrides": [
                    {
                        "name": cfg.container_name,
                        "environment": [
                            {"name": k, "value": v} for k, v in spec.environment().items()
                        ],
                    }
                ]
            },
        }

    async def run(self, spec: TaskSpec) -> TaskInfo:
        self._log.info("runner.ecs.run", dataset=spec.dataset.record_id)
        try:
            out = await asyncio.to_thread(partial(self._client.run_task, **self.run_task_input(spec)))
        except (ClientError, BotoCoreError) as e:
            raise TaskStartError(f"error starting Fargate task: {e}") from e

        tasks = out.get("tasks", [])
        failures = out.get("failures", [])
        task_arn = tasks[0].get("taskArn", "") if tasks else ""
        for extra in tasks[1:]:
            self._log.warning("runner.ecs.unexpected_task", task_arn=extra.get("taskArn"))

        if failures:
            messages = [
                f"[arn: {f.get('arn', '')}, reason: {f.get('reason', '')}, detail: {f.get('detail', '')}]"
                for f in failures
            ]
            if not task_arn:
                raise TaskStartError(
                    f"task failures: {', '.join(messages)}",
                    details={"failures": failures},
                )
            # The task is running and owns the record; report and carry on
            self._log.warning("runner.ecs.partial_failures", task_arn=task_arn, failures=messages)

        if not task_arn:
            raise TaskStartError("ECS runTask returned no tasks and no failures")

        self._log.info("runner.ecs.started", task_arn=task_arn, last_status=tasks[0].get("lastStatus"))
        return TaskInfo(task_arn=task_arn)
