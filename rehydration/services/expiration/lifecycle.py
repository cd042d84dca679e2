"""Expiration scheduler lifecycle for FastAPI lifespan integration."""

from __future__ import annotations

import structlog

from rehydration.api.dependencies import build_sweeper
from rehydration.config import get_settings
from rehydration.services.expiration.scheduler import ExpirationScheduler

logger = structlog.get_logger()

# Global scheduler instance
_expiration_scheduler: ExpirationScheduler | None = None


async def init_expiration_scheduler() -> ExpirationScheduler:
    """Initialize the expiration scheduler.

    The scheduler is always created so that ``POST /v1/expirations`` works;
    the background loop only starts when ``expiration.enabled`` is true.
    """
    global _expiration_scheduler

    config = get_settings().expiration
    logger.info(
        "expiration.init",
        enabled=config.enabled,
        interval_seconds=config.interval_seconds,
        run_on_startup=config.run_on_startup,
        batch_limit=config.batch_limit,
    )

    _expiration_scheduler = ExpirationScheduler(build_sweeper, config)

    if not config.enabled:
        logger.info("expiration.background_disabled", reason="expiration.enabled=false")
        return _expiration_scheduler

    if config.run_on_startup:
        logger.info("expiration.run_on_startup.start")
        result = await _expiration_scheduler.run_once()
        logger.info(
            "expiration.run_on_startup.complete",
            cleaned=result.cleaned,
            errors=len(result.errors),
        )

    await _expiration_scheduler.start()
    return _expiration_scheduler


async def shutdown_expiration_scheduler() -> None:
    """Stop the expiration scheduler. Called during lifespan shutdown."""
    global _expiration_scheduler

    if _expiration_scheduler is not None:
        await _expiration_scheduler.stop()
        _expiration_scheduler = None


def get_expiration_scheduler() -> ExpirationScheduler | None:
    """Get the current scheduler instance."""
    return _expiration_scheduler
