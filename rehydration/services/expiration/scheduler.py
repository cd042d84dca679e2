"""Expiration scheduler - runs the sweeper periodically."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

import structlog

from rehydration.services.expiration.base import SweepResult
from rehydration.services.expiration.coordinator import NoopCoordinator, SweepCoordinator
from rehydration.services.expiration.sweeper import ExpirationSweeper

if TYPE_CHECKING:
    from rehydration.config import ExpirationConfig

logger = structlog.get_logger()


class ExpirationScheduler:
    """Scheduler for expiration sweeps.

    Responsibilities:
    - Manage background loop for periodic sweeps
    - Handle sweep errors without stopping the scheduler
    - Coordinate with other instances (via coordinator)

    A sweeper is built per cycle by ``sweeper_factory`` so each cycle works
    with fresh store sessions.

    Usage:
        scheduler = ExpirationScheduler(lambda: ExpirationSweeper(...), settings.expiration)
        await scheduler.run_once()
        await scheduler.start()
        await scheduler.stop()
    """

    def __init__(
        self,
        sweeper_factory: Callable[[], ExpirationSweeper],
        config: "ExpirationConfig",
        coordinator: SweepCoordinator | None = None,
    ) -> None:
        self._sweeper_factory = sweeper_factory
        self._config = config
        self._coordinator = coordinator or NoopCoordinator()
        self._log = logger.bind(service="expiration_scheduler")

        self._running = False
        self._task: asyncio.Task | None = None

        # Serializes run_once and the background loop
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the background loop is running."""
        return self._running

    async def run_once(self) -> SweepResult:
        """Run one sweep, waiting for any sweep already in progress."""
        async with self._run_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> SweepResult:
        self._log.info("expiration.cycle.start")

        async with self._coordinator.acquire() as acquired:
            if not acquired:
                self._log.info("expiration.cycle.skipped", reason="coordination_lock_not_acquired")
                return SweepResult()

            try:
                result = await self._sweeper_factory().run()
            except Exception as e:
                self._log.exception("expiration.cycle.failed", error=str(e))
                result = SweepResult()
                result.add_error(f"Sweep failed: {e}")
                return result

        for error in result.errors:
            self._log.warning("expiration.cycle.item_error", error=error)

        self._log.info(
            "expiration.cycle.complete",
            cleaned=result.cleaned,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result

    async def start(self) -> None:
        """Start the background loop. Call stop() to shut it down."""
        if self._running:
            self._log.warning("expiration.scheduler.already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._background_loop())
        self._log.info(
            "expiration.scheduler.started",
            interval_seconds=self._config.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the background loop."""
        if not self._running:
            return

        self._log.info("expiration.scheduler.stopping")
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._log.info("expiration.scheduler.stopped")

    async def _background_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                self._log.exception("expiration.scheduler.cycle_error", error=str(e))

            try:
                await asyncio.sleep(self._config.interval_seconds)
            except asyncio.CancelledError:
                break
