"""Expiration sweeper.

Claims due COMPLETED records with a compare-and-set to EXPIRED, purges
their objects and deletes the record. A record whose objects could not all
be deleted stays EXPIRED; the next sweep picks it up again.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from rehydration.errors import ConditionFailedError, TransportError
from rehydration.models.idempotency import ExpirationIndexEntry, RecordStatus
from rehydration.services.expiration.base import SweepResult
from rehydration.storage.cleaner import PrefixCleaner
from rehydration.stores.idempotency import IdempotencyStore
from rehydration.utils.datetime import utcnow
from rehydration.utils.paths import DestinationLayout

logger = structlog.get_logger()

DEFAULT_BATCH_LIMIT = 100


class ExpirationSweeper:
    """One pass over the expiration index."""

    def __init__(
        self,
        store: IdempotencyStore,
        cleaner: PrefixCleaner,
        layout: DestinationLayout,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        self._store = store
        self._cleaner = cleaner
        self._layout = layout
        self._batch_limit = batch_limit
        self._log = logger.bind(component="expiration_sweeper")

    @property
    def name(self) -> str:
        return "expiration"

    async def run(self, now: datetime | None = None) -> SweepResult:
        """Sweep records due at ``now`` (default: current UTC time).

        Raises:
            TransportError: If the expiration index cannot be queried.
        """
        now = now or utcnow()
        result = SweepResult()

        due = await self._store.query_expiration_index(now, self._batch_limit)
        leftover = await self._store.query_expiration_index(
            now, self._batch_limit, status=RecordStatus.EXPIRED
        )
        self._log.info("expiration.sweep.start", due=len(due), leftover=len(leftover))

        for entry in due:
            await self._expire(entry, result)
        for entry in leftover:
            await self._purge(entry, entry.rehydration_location, result)

        self._log.info(
            "expiration.sweep.complete",
            cleaned=result.cleaned,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result

    async def _expire(self, entry: ExpirationIndexEntry, result: SweepResult) -> None:
        log = self._log.bind(record_id=entry.id, location=entry.rehydration_location)
        try:
            record = await self._store.expire_by_index(entry)
        except ConditionFailedError as e:
            log.info("expiration.record.skipped", expected=e.expected, actual=e.actual)
            result.skipped += 1
            return
        except TransportError as e:
            log.error("expiration.record.expire_failed", error=str(e))
            result.add_error(f"error expiring idempotency record {entry.id}: {e}")
            return

        log.info("expiration.record.expired", task_arn=record.task_arn)
        await self._purge(entry, record.rehydration_location or entry.rehydration_location, result)

    async def _purge(
        self,
        entry: ExpirationIndexEntry,
        location: str | None,
        result: SweepResult,
    ) -> None:
        log = self._log.bind(record_id=entry.id, location=location)
        try:
            bucket, prefix = self._layout.keys_prefix_for_location(location or "")
        except ValueError as e:
            log.error("expiration.location.invalid", error=str(e))
            result.add_error(f"error cleaning rehydration location {location}: {e}")
            return

        try:
            cleaned = await self._cleaner.clean(bucket, prefix)
        except (TransportError, ValueError) as e:
            log.error("expiration.clean.failed", bucket=bucket, prefix=prefix, error=str(e))
            result.add_error(f"error cleaning rehydration location {location}: {e}")
            return

        log.info("expiration.clean.done", count=cleaned.count, deleted=cleaned.deleted)
        if cleaned.errors:
            for err in cleaned.errors:
                log.warning("expiration.object.delete_failed", key=err.key, code=err.code, error=err.message)
                result.add_error(
                    f"error deleting file from rehydration location {location}: {err.message}"
                )
            return

        try:
            await self._store.delete_record(entry.id)
        except TransportError as e:
            log.error("expiration.record.delete_failed", error=str(e))
            result.add_error(f"error deleting idempotency record {entry.id}: {e}")
            return

        log.info("expiration.record.deleted")
        result.cleaned += 1
