"""Data models."""

from rehydration.models.dataset import DatasetVersion, User
from rehydration.models.idempotency import (
    ExpirationIndexEntry,
    IdempotencyRecord,
    RecordStatus,
)
from rehydration.models.tracking import TrackingEntry, TrackingStatus, UnhandledEntry

__all__ = [
    "DatasetVersion",
    "ExpirationIndexEntry",
    "IdempotencyRecord",
    "RecordStatus",
    "TrackingEntry",
    "TrackingStatus",
    "UnhandledEntry",
    "User",
]
