"""Record stores."""

from rehydration.stores.idempotency import IdempotencyStore, idempotency_table
from rehydration.stores.tracking import TrackingStore, tracking_table

__all__ = [
    "IdempotencyStore",
    "TrackingStore",
    "idempotency_table",
    "tracking_table",
]
