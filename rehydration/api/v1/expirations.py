"""Expiration trigger endpoint.

For deployments that schedule expiration externally (cron, EventBridge)
with ``expiration.enabled: false``.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response

from rehydration.errors import ExpirationError
from rehydration.services.expiration.lifecycle import get_expiration_scheduler

router = APIRouter()


@router.post("", status_code=204)
async def run_expiration() -> Response:
    """Run one expiration sweep and wait for it.

    **Status Codes**:
    - 204: Sweep finished without errors
    - 500: Sweep reported errors; affected records are retried by a later sweep
    - 503: Scheduler unavailable
    """
    scheduler = get_expiration_scheduler()
    if scheduler is None:
        raise HTTPException(
            status_code=503,
            detail="Expiration scheduler is not available.",
        )

    result = await scheduler.run_once()
    if not result.success:
        raise ExpirationError(
            f"expiration sweep finished with {len(result.errors)} error(s)",
            details={
                "cleaned": result.cleaned,
                "skipped": result.skipped,
                "errors": result.errors,
            },
        )
    return Response(status_code=204)
