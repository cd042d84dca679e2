"""Rehydration service configuration management.

Configuration sources (in priority order):
1. Environment variables (REHYDRATION_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MiB = 1024 * 1024


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # SQLite for local use; postgresql+asyncpg:// in deployed environments
    url: str = "sqlite+aiosqlite:///./rehydration.db"
    echo: bool = False


class IdempotencyConfig(BaseModel):
    """Idempotency record configuration."""

    table_name: str = "idempotency_records"

    # How long a completed rehydration stays available before it is expired
    ttl_days: int = 14

    # Retries when admission observes a record that vanished between reads
    max_retries: int = 2


class TrackingConfig(BaseModel):
    """Request tracking configuration."""

    enabled: bool = True
    table_name: str = "tracking_entries"

    # Max unhandled entries notified per finalize
    query_limit: int = 20


class StorageConfig(BaseModel):
    """Object store (S3) configuration."""

    region: str | None = None
    endpoint_url: str | None = None  # For MinIO / LocalStack

    rehydration_bucket: str = "rehydration-bucket"

    # Leading segment of every destination key. Not part of the rehydration location.
    key_prefix: str = "rehydrated/"
    location_scheme: str = "s3"

    # Publish buckets are requester-pays
    requester_pays: bool = True

    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    max_pool_connections: int = 50


class CopyConfig(BaseModel):
    """Copy engine configuration."""

    workers: int = 20

    # Files of at least this size are copied with multipart copy
    multipart_threshold: int = 100 * MiB
    part_size: int = 50 * MiB
    max_parts: int = 10000
    multipart_workers: int = 10
    multipart_timeout_seconds: float = 30 * 60


class DiscoverConfig(BaseModel):
    """Discover service configuration."""

    hosts: dict[str, str] = Field(
        default_factory=lambda: {
            "prod": "https://api.pennsieve.io",
            "dev": "https://api.pennsieve.net",
        }
    )
    default_host: str = "https://api.pennsieve.net"
    timeout_seconds: float = 30.0

    def host_for(self, env: str) -> str:
        """Resolve the discover host for a deployment environment."""
        return self.hosts.get(env, self.default_host)


class EcsRunnerConfig(BaseModel):
    """ECS (Fargate) task runner configuration."""

    cluster: str = ""
    task_definition: str = ""
    container_name: str = "rehydrate"
    subnets: list[str] = Field(default_factory=list)
    security_groups: list[str] = Field(default_factory=list)
    assign_public_ip: bool = True


class DockerRunnerConfig(BaseModel):
    """Docker task runner configuration."""

    socket: str = "unix:///var/run/docker.sock"
    image: str = "rehydration-worker:latest"

    # Optional docker network for worker containers
    network: str | None = None


class K8sRunnerConfig(BaseModel):
    """Kubernetes task runner configuration. Each worker runs as a Job."""

    namespace: str = "rehydration"
    kubeconfig: str | None = None  # None = in-cluster config
    image: str = "rehydration-worker:latest"
    service_account: str | None = None
    image_pull_secrets: list[str] = Field(default_factory=list)

    # Finished Jobs are garbage collected by the cluster after this long
    ttl_seconds_after_finished: int = 3600
    label_prefix: str = "rehydration"


class ProcessRunnerConfig(BaseModel):
    """Local process task runner configuration."""

    # None = the interpreter running the service
    python: str | None = None


class RunnerConfig(BaseModel):
    """Worker task runner configuration."""

    type: Literal["ecs", "docker", "k8s", "process"] = "process"
    ecs: EcsRunnerConfig = Field(default_factory=EcsRunnerConfig)
    docker: DockerRunnerConfig = Field(default_factory=DockerRunnerConfig)
    k8s: K8sRunnerConfig = Field(default_factory=K8sRunnerConfig)
    process: ProcessRunnerConfig = Field(default_factory=ProcessRunnerConfig)


class ExpirationConfig(BaseModel):
    """Expiration sweeper configuration."""

    enabled: bool = True
    run_on_startup: bool = False
    interval_seconds: float = 3600

    # Records handled per sweep
    batch_limit: int = 100

    # Keys per DeleteObjects call (S3 maximum is 1000)
    delete_batch_size: int = 1000


class NotificationConfig(BaseModel):
    """Notification configuration."""

    type: Literal["log", "ses"] = "log"
    sender: str = "support@pennsieve.io"

    # Used to build dataset links in messages
    domain: str = "pennsieve.net"
    region: str | None = None


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"

    # JSON lines when true, console renderer otherwise
    json_logs: bool = True


class Settings(BaseSettings):
    """Rehydration service settings."""

    model_config = SettingsConfigDict(
        env_prefix="REHYDRATION_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # Deployment environment, passed to workers as ENV
    env: str = "dev"

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    idempotency: IdempotencyConfig = Field(default_factory=IdempotencyConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    copy_engine: CopyConfig = Field(default_factory=CopyConfig)
    discover: DiscoverConfig = Field(default_factory=DiscoverConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    expiration: ExpirationConfig = Field(default_factory=ExpirationConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Config file values arrive as init kwargs; the environment overrides them
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. REHYDRATION_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/rehydration/config.yaml
    """
    import os

    config_paths = [
        os.environ.get("REHYDRATION_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/rehydration/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Configuration is loaded from:
    1. YAML config file (if exists)
    2. Environment variables (override)
    3. Defaults
    """
    file_config = _load_config_file()
    return Settings(**file_config)
