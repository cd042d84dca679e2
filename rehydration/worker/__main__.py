"""Worker task entry point: ``python -m rehydration.worker``.

Runs one rehydration attempt for the dataset version named in the
environment and exits 0 on success, 1 otherwise.
"""

from __future__ import annotations

import asyncio
import sys

import pydantic
import structlog

from rehydration.config import Settings, get_settings
from rehydration.db import close_db
from rehydration.logging import configure_logging
from rehydration.rehydrator import CopyEngine, CopyProcessor, RehydrationOrchestrator
from rehydration.rehydrator.orchestrator import EXIT_FAILURE
from rehydration.services.discover import DiscoverClient, create_http_client
from rehydration.services.notification import create_notifier
from rehydration.storage import MultipartCopier, PrefixCleaner, S3ObjectStore
from rehydration.stores import IdempotencyStore, TrackingStore
from rehydration.utils.paths import DestinationLayout
from rehydration.worker.env import TaskEnv

logger = structlog.get_logger()


async def run_worker(task_env: TaskEnv, settings: Settings) -> int:
    """Wire the worker components and run the attempt."""
    storage = settings.storage
    if task_env.region:
        storage = storage.model_copy(update={"region": task_env.region})

    store = S3ObjectStore.from_config(storage)
    copy_config = settings.copy_engine
    processor = CopyProcessor(
        store,
        MultipartCopier.from_config(store, copy_config),
        threshold=copy_config.multipart_threshold,
    )
    engine = CopyEngine(processor, workers=copy_config.workers)

    tracking_store = None
    if task_env.tracking_table_name:
        tracking_store = TrackingStore(table_name=task_env.tracking_table_name)

    try:
        async with create_http_client(settings.discover) as http_client:
            discover = DiscoverClient(
                http_client,
                host=settings.discover.host_for(task_env.env),
                timeout_seconds=settings.discover.timeout_seconds,
            )
            orchestrator = RehydrationOrchestrator(
                task_env.dataset,
                task_env.user,
                discover=discover,
                engine=engine,
                idempotency_store=IdempotencyStore(table_name=task_env.idempotency_table_name),
                layout=DestinationLayout.from_config(storage),
                cleaner=PrefixCleaner(store, batch_size=settings.expiration.delete_batch_size),
                notifier=create_notifier(settings.notification),
                tracking_store=tracking_store,
                ttl_days=settings.idempotency.ttl_days,
                tracking_limit=settings.tracking.query_limit,
            )
            return await orchestrator.run()
    finally:
        await close_db()


def main() -> None:
    settings = get_settings()
    configure_logging(settings.logging.level, settings.logging.json_logs)

    try:
        task_env = TaskEnv()
    except pydantic.ValidationError as e:
        logger.error(
            "worker.config.invalid",
            errors=[
                {"variable": ".".join(str(p) for p in err["loc"]).upper(), "error": err["msg"]}
                for err in e.errors()
            ],
        )
        sys.exit(EXIT_FAILURE)

    logger.info(
        "worker.started",
        dataset_id=task_env.dataset_id,
        version_id=task_env.dataset_version_id,
        env=task_env.env,
    )
    sys.exit(asyncio.run(run_worker(task_env, settings)))


if __name__ == "__main__":
    main()
