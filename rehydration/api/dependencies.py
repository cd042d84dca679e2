"""FastAPI dependencies for the rehydration API.

Provides dependency injection for:
- Task runner and object store (process-wide singletons)
- Idempotency and tracking stores
- Admission handler and expiration sweeper
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from rehydration.config import get_settings
from rehydration.runners import TaskRunner, create_runner
from rehydration.services.admission import AdmissionHandler
from rehydration.services.expiration.sweeper import ExpirationSweeper
from rehydration.storage import ObjectStore, PrefixCleaner, S3ObjectStore
from rehydration.stores import IdempotencyStore, TrackingStore
from rehydration.utils.paths import DestinationLayout


@lru_cache
def get_runner() -> TaskRunner:
    """Get cached task runner instance."""
    return create_runner(get_settings())


@lru_cache
def get_object_store() -> ObjectStore:
    """Get cached object store; the boto3 client inside is shared."""
    return S3ObjectStore.from_config(get_settings().storage)


@lru_cache
def get_idempotency_store() -> IdempotencyStore:
    return IdempotencyStore(table_name=get_settings().idempotency.table_name)


@lru_cache
def get_tracking_store() -> TrackingStore | None:
    tracking = get_settings().tracking
    if not tracking.enabled:
        return None
    return TrackingStore(table_name=tracking.table_name)


def get_admission_handler() -> AdmissionHandler:
    """Get AdmissionHandler with injected dependencies."""
    settings = get_settings()
    return AdmissionHandler(
        get_idempotency_store(),
        get_runner(),
        env=settings.env,
        tracking_store=get_tracking_store(),
        region=settings.storage.region,
        max_retries=settings.idempotency.max_retries,
    )


def build_sweeper() -> ExpirationSweeper:
    """Build an expiration sweeper from settings."""
    settings = get_settings()
    return ExpirationSweeper(
        get_idempotency_store(),
        PrefixCleaner(get_object_store(), batch_size=settings.expiration.delete_batch_size),
        DestinationLayout.from_config(settings.storage),
        batch_limit=settings.expiration.batch_limit,
    )


def get_request_id(request: Request) -> str:
    """Request ID assigned by the request ID middleware."""
    return getattr(request.state, "request_id", "") or ""


# Type aliases for cleaner dependency injection
AdmissionHandlerDep = Annotated[AdmissionHandler, Depends(get_admission_handler)]
RequestIdDep = Annotated[str, Depends(get_request_id)]
