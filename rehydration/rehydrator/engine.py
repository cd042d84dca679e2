"""Concurrent copy engine."""

from __future__ import annotations

import asyncio

import structlog

from rehydration.rehydrator.processor import CopyProcessor
from rehydration.rehydrator.units import FileResult, RehydrationUnit

logger = structlog.get_logger()


class CopyEngine:
    """Runs per-file copies on a fixed pool of workers.

    Every unit is attempted regardless of other failures, and exactly one
    result is returned per unit.
    """

    def __init__(self, processor: CopyProcessor, workers: int = 20) -> None:
        if workers <= 0:
            raise ValueError(f"workers must be positive, got {workers}")
        self._processor = processor
        self._workers = workers

    async def run(self, units: list[RehydrationUnit], log=None) -> list[FileResult]:
        log = log or logger
        total = len(units)
        if total == 0:
            return []

        inbox: asyncio.Queue[RehydrationUnit | None] = asyncio.Queue(maxsize=total)
        outbox: asyncio.Queue[FileResult] = asyncio.Queue(maxsize=total)

        async def work(worker_id: int) -> None:
            while True:
                unit = await inbox.get()
                if unit is None:
                    return
                result = FileResult(worker_id=worker_id, unit=unit)
                try:
                    await self._processor.copy(unit.src, unit.dest, log=log)
                except Exception as e:
                    result.error = e
                    log.warning(
                        "copy.file.failed",
                        worker_id=worker_id,
                        error=str(e),
                        **unit.log_fields(),
                    )
                await outbox.put(result)

        workers = [asyncio.create_task(work(i + 1)) for i in range(self._workers)]
        try:
            for unit in units:
                inbox.put_nowait(unit)
            for _ in workers:
                await inbox.put(None)

            results = [await outbox.get() for _ in range(total)]
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                task.cancel()

        log.info(
            "copy.engine.complete",
            files=total,
            failed=sum(1 for r in results if r.error is not None),
        )
        return results
