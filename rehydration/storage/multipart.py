"""Concurrent server-side multipart copy.

Parts are fed through a bounded queue to a fixed pool of workers. Each worker
copies one byte range per part and reports a completion; an aggregator
collects completions until the pool has finished. Any worker error sets the
shared ``worker_failed`` flag: remaining parts are drained without copying,
finalize is skipped and the upload is aborted.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from rehydration.errors import CopyError
from rehydration.storage.base import CompletedPart, ObjectStore
from rehydration.utils.paths import CopySource

if TYPE_CHECKING:
    from rehydration.config import CopyConfig

logger = structlog.get_logger()


@dataclass(frozen=True)
class PartRange:
    """One ranged part of a multipart copy."""

    part_number: int
    start: int
    end: int

    @property
    def byte_range(self) -> str:
        return f"bytes={self.start}-{self.end}"


def plan_parts(size: int, part_size: int) -> list[PartRange]:
    """Split ``size`` bytes into ranges of ``part_size``; the last may be smaller.

    A zero-byte object still yields one (empty) part.
    """
    if part_size <= 0:
        raise ValueError(f"part size must be positive, got {part_size}")
    count = max(1, math.ceil(size / part_size))
    parts = []
    for i in range(count):
        start = i * part_size
        end = min(start + part_size - 1, size - 1)
        parts.append(PartRange(part_number=i + 1, start=start, end=max(end, start)))
    return parts


@dataclass
class _CopyState:
    worker_failed: bool = False
    errors: list[str] = field(default_factory=list)


class MultipartCopier:
    """Copies one object by ranged parts."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        part_size: int,
        max_parts: int = 10000,
        workers: int = 10,
        timeout_seconds: float = 30 * 60,
    ) -> None:
        self._store = store
        self._part_size = part_size
        self._max_parts = max_parts
        self._workers = workers
        self._timeout = timeout_seconds

    @classmethod
    def from_config(cls, store: ObjectStore, config: "CopyConfig") -> "MultipartCopier":
        return cls(
            store,
            part_size=config.part_size,
            max_parts=config.max_parts,
            workers=config.multipart_workers,
            timeout_seconds=config.multipart_timeout_seconds,
        )

    async def copy(
        self,
        source: CopySource,
        size: int,
        dest_bucket: str,
        dest_key: str,
        log=None,
    ) -> None:
        """Copy ``source`` to ``dest_bucket/dest_key``.

        Raises:
            CopyError: If the copy failed, timed out or needs too many parts.
                The upload has been aborted (best effort) in every failure case.
        """
        log = (log or logger).bind(
            copy_source=source.header(),
            dest_bucket=dest_bucket,
            dest_key=dest_key,
            size=size,
        )
        parts = plan_parts(size, self._part_size)
        if len(parts) > self._max_parts:
            raise CopyError(
                dest_key,
                f"object of {size} bytes needs {len(parts)} parts of {self._part_size} bytes; "
                f"at most {self._max_parts} are allowed",
            )

        upload_id = await self._create_upload(dest_bucket, dest_key, log)
        log = log.bind(upload_id=upload_id)
        try:
            async with asyncio.timeout(self._timeout):
                completed = await self._copy_parts(source, dest_bucket, dest_key, upload_id, parts, log)
                await self._store.complete_multipart_upload(dest_bucket, dest_key, upload_id, completed)
        except TimeoutError as e:
            await self._abort(dest_bucket, dest_key, upload_id, log)
            raise CopyError(
                dest_key, f"multipart copy of {dest_key} timed out after {self._timeout}s"
            ) from e
        except asyncio.CancelledError:
            await asyncio.shield(self._abort(dest_bucket, dest_key, upload_id, log))
            raise
        except CopyError:
            await self._abort(dest_bucket, dest_key, upload_id, log)
            raise
        except Exception as e:
            await self._abort(dest_bucket, dest_key, upload_id, log)
            raise CopyError(dest_key, f"multipart copy of {dest_key} failed: {e}") from e

        log.info("copy.multipart.complete", parts=len(parts))

    async def _copy_parts(
        self,
        source: CopySource,
        bucket: str,
        key: str,
        upload_id: str,
        parts: list[PartRange],
        log,
    ) -> list[CompletedPart]:
        part_queue: asyncio.Queue[PartRange | None] = asyncio.Queue(maxsize=self._workers)
        completions: asyncio.Queue[CompletedPart | None] = asyncio.Queue()
        collected: list[CompletedPart] = []
        state = _CopyState()

        async def allocate() -> None:
            for part in parts:
                await part_queue.put(part)
            for _ in range(self._workers):
                await part_queue.put(None)

        async def work(worker_id: int) -> None:
            while True:
                part = await part_queue.get()
                if part is None:
                    return
                if state.worker_failed:
                    continue
                try:
                    etag = await self._store.upload_part_copy(
                        source, bucket, key, upload_id, part.part_number, part.byte_range
                    )
                except Exception as e:
                    state.worker_failed = True
                    state.errors.append(f"part {part.part_number}: {e}")
                    log.warning(
                        "copy.multipart.part_failed",
                        worker_id=worker_id,
                        part_number=part.part_number,
                        byte_range=part.byte_range,
                        error=str(e),
                    )
                    continue
                await completions.put(CompletedPart(part_number=part.part_number, etag=etag))

        async def aggregate() -> None:
            while (completed := await completions.get()) is not None:
                collected.append(completed)

        async with asyncio.TaskGroup() as group:
            aggregator = group.create_task(aggregate())
            group.create_task(allocate())
            async with asyncio.TaskGroup() as pool:
                for worker_id in range(self._workers):
                    pool.create_task(work(worker_id))
            await completions.put(None)
            await aggregator

        if state.worker_failed:
            raise CopyError(key, f"multipart copy of {key} failed: {'; '.join(state.errors)}")

        collected.sort(key=lambda p: p.part_number)
        return collected

    async def _create_upload(self, bucket: str, key: str, log) -> str:
        """Start the upload outside the copy timeout.

        The request runs on in its thread if the caller is cancelled; the
        upload it creates is aborted once it returns.
        """
        creating = asyncio.ensure_future(self._store.create_multipart_upload(bucket, key))
        try:
            return await asyncio.shield(creating)
        except asyncio.CancelledError:
            await asyncio.shield(self._abort_when_created(creating, bucket, key, log))
            raise
        except Exception as e:
            raise CopyError(key, f"multipart copy of {key} failed to start: {e}") from e

    async def _abort_when_created(self, creating: asyncio.Future, bucket: str, key: str, log) -> None:
        try:
            upload_id = await creating
        except Exception as e:
            log.warning("copy.multipart.create_failed", error=str(e))
            return
        await self._abort(bucket, key, upload_id, log.bind(upload_id=upload_id))

    async def _abort(self, bucket: str, key: str, upload_id: str, log) -> None:
        try:
            await self._store.abort_multipart_upload(bucket, key, upload_id)
            log.info("copy.multipart.aborted")
        except Exception as e:
            log.warning("copy.multipart.abort_failed", error=str(e))
