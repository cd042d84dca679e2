"""One rehydration attempt, as run by the worker task.

The worker owns a single IN_PROGRESS idempotency record. It either promotes
it to COMPLETED or deletes it so that a later request can retry.
"""

from __future__ import annotations

from collections import OrderedDict

import structlog

from rehydration.errors import RehydrationError
from rehydration.models.dataset import DatasetVersion, User
from rehydration.models.idempotency import IdempotencyRecord, RecordStatus
from rehydration.models.tracking import TrackingStatus, UnhandledEntry
from rehydration.rehydrator.engine import CopyEngine
from rehydration.rehydrator.units import (
    DestinationObject,
    RehydrationResult,
    RehydrationUnit,
    SourceObject,
)
from rehydration.services.discover import DiscoverClient
from rehydration.services.notification import Notifier
from rehydration.storage.cleaner import PrefixCleaner
from rehydration.stores.idempotency import IdempotencyStore
from rehydration.stores.tracking import TrackingStore
from rehydration.utils.datetime import expiration_from, utcnow
from rehydration.utils.paths import DestinationLayout

logger = structlog.get_logger()

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class RehydrationOrchestrator:
    """Fetches the file list, runs the copy engine and finalizes the record."""

    def __init__(
        self,
        dataset: DatasetVersion,
        user: User,
        *,
        discover: DiscoverClient,
        engine: CopyEngine,
        idempotency_store: IdempotencyStore,
        layout: DestinationLayout,
        cleaner: PrefixCleaner,
        notifier: Notifier,
        tracking_store: TrackingStore | None = None,
        ttl_days: int = 14,
        tracking_limit: int = 20,
        task_arn: str | None = None,
    ) -> None:
        self._dataset = dataset
        self._user = user
        self._discover = discover
        self._engine = engine
        self._store = idempotency_store
        self._layout = layout
        self._cleaner = cleaner
        self._notifier = notifier
        self._tracking = tracking_store
        self._ttl_days = ttl_days
        self._tracking_limit = tracking_limit
        self._task_arn = task_arn
        self._copies_attempted = False
        self._log = logger.bind(
            component="rehydrator",
            dataset_id=dataset.dataset_id,
            version_id=dataset.version_id,
            user_name=user.name,
            user_email=user.email,
        )

    @property
    def location(self) -> str:
        return self._layout.location(self._dataset)

    async def run(self) -> int:
        """Run the attempt. Returns the worker exit code."""
        self._log.info("rehydration.started")
        try:
            result = await self.rehydrate()
        except Exception as e:
            self._log.exception("rehydration.failed", error=str(e))
            await self._finalize_failure()
            return EXIT_FAILURE

        failures = result.failures
        if failures:
            for failure in failures:
                self._log.error(
                    "rehydration.file.failed",
                    worker_id=failure.worker_id,
                    error=str(failure.error),
                    **failure.unit.log_fields(),
                )
            self._log.error(
                "rehydration.failed",
                files=len(result.file_results),
                failed=len(failures),
            )
            await self._finalize_failure()
            return EXIT_FAILURE

        if not await self._finalize_success(result.location):
            await self._finalize_failure()
            return EXIT_FAILURE

        self._log.info(
            "rehydration.completed",
            files=len(result.file_results),
            location=result.location,
        )
        return EXIT_SUCCESS

    async def rehydrate(self) -> RehydrationResult:
        """Resolve every file, then copy them all.

        Raises:
            DiscoverError: If any discover call fails. No copy has started.
        """
        dataset_id, version_id = self._dataset.dataset_id, self._dataset.version_id

        summary = await self._discover.get_dataset_by_version(dataset_id, version_id)
        self._log.info("rehydration.source", source_uri=summary.uri)

        metadata = await self._discover.get_dataset_metadata_by_version(dataset_id, version_id)
        units: list[RehydrationUnit] = []
        for file in metadata.files:
            versioned = await self._discover.get_dataset_file_by_version(
                dataset_id, version_id, file.path
            )
            units.append(
                RehydrationUnit(
                    src=SourceObject(
                        uri=versioned.uri,
                        version_id=versioned.s3_version_id,
                        size=file.size,
                        name=file.name,
                        path=file.path,
                    ),
                    dest=DestinationObject(
                        bucket=self._layout.bucket,
                        key=self._layout.key(self._dataset, file.path),
                    ),
                )
            )

        self._log.info("rehydration.copy.start", files=len(units))
        self._copies_attempted = True
        file_results = await self._engine.run(units, log=self._log)
        return RehydrationResult(location=self.location, file_results=file_results)

    async def _finalize_success(self, location: str) -> bool:
        record_id = self._dataset.record_id
        try:
            current = await self._store.get_record(record_id)
            task_arn = current.task_arn if current and current.task_arn else self._task_arn
            record = IdempotencyRecord(
                id=record_id,
                status=RecordStatus.COMPLETED,
                rehydration_location=location,
                expiration_date=expiration_from(utcnow(), self._ttl_days),
                task_arn=task_arn,
            )
            await self._store.update_record(record)
        except RehydrationError as e:
            self._log.error("rehydration.finalize.update_failed", record_id=record_id, error=str(e))
            return False

        self._log.info(
            "rehydration.finalize.completed",
            record_id=record_id,
            expiration_date=record.expiration_date.isoformat(),
        )
        await self._notify(success=True, location=location)
        return True

    async def _finalize_failure(self) -> None:
        record_id = self._dataset.record_id
        if self._copies_attempted:
            await self._purge_partial_output()

        try:
            await self._store.delete_record(record_id)
            self._log.info("rehydration.finalize.record_deleted", record_id=record_id)
        except RehydrationError as e:
            self._log.error("rehydration.finalize.delete_failed", record_id=record_id, error=str(e))

        await self._notify(success=False)

    async def _purge_partial_output(self) -> None:
        prefix = self._layout.key_prefix_for(self._dataset)
        try:
            result = await self._cleaner.clean(self._layout.bucket, prefix)
        except (RehydrationError, ValueError) as e:
            self._log.warning("rehydration.purge.failed", prefix=prefix, error=str(e))
            return
        if result.errors:
            self._log.warning(
                "rehydration.purge.incomplete",
                prefix=prefix,
                deleted=result.deleted,
                errors=[str(err) for err in result.errors],
            )

    async def _notify(self, success: bool, location: str | None = None) -> None:
        """Notify requesters. Failures here never change the outcome."""
        entries: list[UnhandledEntry] = []
        if self._tracking is not None:
            try:
                entries = await self._tracking.query_unhandled(self._dataset, self._tracking_limit)
            except RehydrationError as e:
                self._log.error("rehydration.tracking.query_failed", error=str(e))

        if not entries:
            await self._send(self._user, success, location, self._task_arn or "")
            return

        # One message per address, every entry marked
        by_email: OrderedDict[str, list[UnhandledEntry]] = OrderedDict()
        for entry in entries:
            by_email.setdefault(entry.user_email, []).append(entry)

        status = TrackingStatus.COMPLETED if success else TrackingStatus.FAILED
        for email, email_entries in by_email.items():
            first = email_entries[0]
            sent = await self._send(
                User(name=first.user_name, email=email),
                success,
                location,
                first.request_id,
            )
            sent_date = utcnow() if sent else None
            for entry in email_entries:
                try:
                    await self._tracking.email_sent(entry.id, sent_date, status)
                except RehydrationError as e:
                    self._log.error(
                        "rehydration.tracking.update_failed",
                        entry_id=entry.id,
                        error=str(e),
                    )

    async def _send(self, user: User, success: bool, location: str | None, request_id: str) -> bool:
        try:
            if success:
                await self._notifier.send_rehydration_complete(self._dataset, user, location or "")
            else:
                await self._notifier.send_rehydration_failed(self._dataset, user, request_id)
        except Exception as e:
            self._log.error("rehydration.notify.failed", email=user.email, error=str(e))
            return False
        return True
