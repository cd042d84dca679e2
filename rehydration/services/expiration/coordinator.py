"""Sweep coordination for multi-instance deployments.

Sweeps are already safe to overlap: every record is claimed with a
compare-and-set. A coordinator only keeps instances from repeating work.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator


class SweepCoordinator(ABC):
    """Decides whether a sweep should run on this instance."""

    @abstractmethod
    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[bool]:
        """Attempt to acquire the sweep lock.

        Usage:
            async with coordinator.acquire() as acquired:
                if acquired:
                    ...

        Yields:
            True if the lock was acquired, False if another instance holds it
        """
        ...


class NoopCoordinator(SweepCoordinator):
    """Always allows the sweep. Used for single-instance deployments."""

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[bool]:
        yield True
