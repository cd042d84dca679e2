"""Expiration of completed rehydrations."""

from rehydration.services.expiration.base import SweepResult
from rehydration.services.expiration.coordinator import NoopCoordinator, SweepCoordinator
from rehydration.services.expiration.scheduler import ExpirationScheduler
from rehydration.services.expiration.sweeper import ExpirationSweeper

__all__ = [
    "ExpirationScheduler",
    "ExpirationSweeper",
    "NoopCoordinator",
    "SweepCoordinator",
    "SweepResult",
]
