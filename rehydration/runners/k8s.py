"""Kubernetes task runner using kubernetes-asyncio.

Runs the worker image as a batch Job with no retries; the worker finalizes
its own record, so a failed pod must not be restarted behind its back.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from kubernetes_asyncio import client, config
from kubernetes_asyncio.client import ApiClient, ApiException

from rehydration.errors import TaskStartError
from rehydration.runners.base import TaskInfo, TaskRunner, TaskSpec, forwarded_settings_env

if TYPE_CHECKING:
    from rehydration.config import K8sRunnerConfig

logger = structlog.get_logger()


class K8sTaskRunner(TaskRunner):
    """Starts workers as Kubernetes Jobs."""

    def __init__(self, k8s_cfg: "K8sRunnerConfig") -> None:
        self._namespace = k8s_cfg.namespace
        self._kubeconfig = k8s_cfg.kubeconfig
        self._image = k8s_cfg.image
        self._service_account = k8s_cfg.service_account
        self._image_pull_secrets = k8s_cfg.image_pull_secrets
        self._ttl_after_finished = k8s_cfg.ttl_seconds_after_finished
        self._label_prefix = k8s_cfg.label_prefix

        self._log = logger.bind(runner="k8s", namespace=self._namespace)
        self._api_client: ApiClient | None = None
        self._config_loaded = False

    def _label(self, key: str) -> str:
        return f"{self._label_prefix}.{key}"

    async def _ensure_config(self) -> None:
        """Load Kubernetes configuration once."""
        if self._config_loaded:
            return

        if self._kubeconfig:
            await config.load_kube_config(config_file=self._kubeconfig)
            self._log.info("k8s.config.loaded", source="kubeconfig", path=self._kubeconfig)
        else:
            config.load_incluster_config()
            self._log.info("k8s.config.loaded", source="incluster")

        self._config_loaded = True

    async def _get_api_client(self) -> ApiClient:
        await self._ensure_config()
        if self._api_client is None:
            self._api_client = ApiClient()
        return self._api_client

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None

    def build_job(self, spec: TaskSpec, job_name: str) -> client.V1Job:
        """Job manifest for one worker task."""
        environment = {**forwarded_settings_env(), **spec.environment()}
        labels = {
            self._label("managed"): "true",
            self._label("dataset_id"): str(spec.dataset.dataset_id),
            self._label("version_id"): str(spec.dataset.version_id),
        }

        container = client.V1Container(
            name="rehydrate",
            image=self._image,
            image_pull_policy="IfNotPresent",
            command=["python", "-m", "rehydration.worker"],
            env=[client.V1EnvVar(name=k, value=v) for k, v in environment.items()],
        )

        image_pull_secrets = None
        if self._image_pull_secrets:
            image_pull_secrets = [
                client.V1LocalObjectReference(name=secret)
                for secret in self._image_pull_secrets
            ]

        return client.V1Job(
            api_version="batch/v1",
            kind="Job",
            metadata=client.V1ObjectMeta(
                name=job_name,
                namespace=self._namespace,
                labels=labels,
            ),
            spec=client.V1JobSpec(
                backoff_limit=0,
                ttl_seconds_after_finished=self._ttl_after_finished,
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(labels=labels),
                    spec=client.V1PodSpec(
                        containers=[container],
                        image_pull_secrets=image_pull_secrets,
                        service_account_name=self._service_account,
                        restart_policy="Never",
                    ),
                ),
            ),
        )

    async def run(self, spec: TaskSpec) -> TaskInfo:
        job_name = (
            f"rehydrate-{spec.dataset.dataset_id}-{spec.dataset.version_id}-"
            f"{uuid.uuid4().hex[:8]}"
        )
        self._log.info("runner.k8s.run", image=self._image, job_name=job_name)
        try:
            api_client = await self._get_api_client()
            batch = client.BatchV1Api(api_client)
            created = await batch.create_namespaced_job(
                namespace=self._namespace,
                body=self.build_job(spec, job_name),
            )
        except ApiException as e:
            raise TaskStartError(
                f"error creating worker job {job_name}: {e.status} {e.reason}"
            ) from e

        uid = created.metadata.uid if created.metadata else None
        self._log.info("runner.k8s.started", job_name=job_name, uid=uid)
        return TaskInfo(task_arn=f"k8s:{self._namespace}/{job_name}")
