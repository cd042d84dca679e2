"""Admission of rehydration requests.

For a given dataset version at most one request wins the conditional insert
of an IN_PROGRESS idempotency record and starts a worker. Every other request
is answered from the record it lost to: in progress, completed (with the
location) or being expired.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from rehydration.errors import (
    ExpiredError,
    InconsistentStateError,
    InProgressError,
    RecordAlreadyExistsError,
    RehydrationError,
    TaskStartError,
    ValidationError,
)
from rehydration.models.dataset import DatasetVersion, User
from rehydration.models.idempotency import IdempotencyRecord, RecordStatus
from rehydration.models.tracking import TrackingEntry, TrackingStatus
from rehydration.runners.base import TaskRunner, TaskSpec
from rehydration.stores.idempotency import IdempotencyStore
from rehydration.stores.tracking import TrackingStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class AdmissionRequest:
    """A validated rehydration request."""

    dataset: DatasetVersion
    user: User
    request_id: str = ""


@dataclass(frozen=True)
class AdmissionResult:
    """Either a started task or the location of a finished rehydration."""

    task_arn: str | None = None
    rehydration_location: str | None = None

    @property
    def started(self) -> bool:
        return self.task_arn is not None


def validate_request(
    dataset_id: int | None,
    version_id: int | None,
    user_name: str | None,
    user_email: str | None,
    request_id: str = "",
) -> AdmissionRequest:
    """Build an AdmissionRequest, rejecting missing or non-positive fields.

    Raises:
        ValidationError: Naming the first missing or invalid field.
    """
    if not dataset_id:
        raise ValidationError('missing "datasetId"', details={"field": "datasetId"})
    if dataset_id < 0:
        raise ValidationError('invalid "datasetId": must be positive', details={"field": "datasetId"})
    if not version_id:
        raise ValidationError('missing "datasetVersionId"', details={"field": "datasetVersionId"})
    if version_id < 0:
        raise ValidationError(
            'invalid "datasetVersionId": must be positive', details={"field": "datasetVersionId"}
        )
    if not user_name or not user_name.strip():
        raise ValidationError('missing user "name"', details={"field": "user.name"})
    if not user_email or not user_email.strip():
        raise ValidationError('missing user "email"', details={"field": "user.email"})
    return AdmissionRequest(
        dataset=DatasetVersion(dataset_id=dataset_id, version_id=version_id),
        user=User(name=user_name, email=user_email),
        request_id=request_id,
    )


class AdmissionHandler:
    """Arbitrates concurrent requests through the idempotency store."""

    def __init__(
        self,
        store: IdempotencyStore,
        runner: TaskRunner,
        *,
        env: str,
        tracking_store: TrackingStore | None = None,
        region: str | None = None,
        max_retries: int = 2,
    ) -> None:
        self._store = store
        self._runner = runner
        self._env = env
        self._tracking = tracking_store
        self._region = region
        self._max_retries = max_retries
        self._log = logger.bind(component="admission")

    async def admit(self, request: AdmissionRequest) -> AdmissionResult:
        """Admit ``request``.

        Raises:
            InProgressError: A worker already owns the dataset version.
            ExpiredError: The previous rehydration is being expired.
            InconsistentStateError: The record kept vanishing between reads.
            TaskStartError: The worker could not be started; the record was
                rolled back.
            TransportError: On store failures.
        """
        log = self._log.bind(
            request_id=request.request_id,
            dataset_id=request.dataset.dataset_id,
            version_id=request.dataset.version_id,
            user_name=request.user.name,
            user_email=request.user.email,
        )
        log.info("admission.started")

        try:
            result = await self._arbitrate(request, log)
        except InProgressError as e:
            log.info("admission.in_progress", task_arn=e.details.get("taskARN"))
            await self._track(request, TrackingStatus.IN_PROGRESS, e.details.get("taskARN"), log)
            raise
        except RehydrationError as e:
            log.warning("admission.rejected", code=e.code, error=e.message)
            await self._track(request, TrackingStatus.UNKNOWN, None, log)
            raise

        if result.started:
            await self._track(request, TrackingStatus.IN_PROGRESS, result.task_arn, log)
        else:
            log.info("admission.completed", location=result.rehydration_location)
            await self._track(request, TrackingStatus.COMPLETED, None, log)
        return result

    async def _arbitrate(self, request: AdmissionRequest, log) -> AdmissionResult:
        record_id = request.dataset.record_id
        for attempt in range(self._max_retries + 1):
            try:
                await self._store.save_in_progress(record_id)
            except RecordAlreadyExistsError as e:
                existing = e.existing or await self._store.get_record(record_id)
                if existing is None:
                    # Deleted between the insert and the read
                    log.warning("admission.record.vanished", record_id=record_id, attempt=attempt)
                    continue
                return self._from_existing(existing)
            return await self._start(request, log)

        raise InconsistentStateError(
            f"record {record_id} existed but could not be read after {self._max_retries + 1} attempts",
            details={"id": record_id},
        )

    def _from_existing(self, existing: IdempotencyRecord) -> AdmissionResult:
        if existing.status == RecordStatus.EXPIRED:
            raise ExpiredError(
                f"expiration in progress for {existing.id}",
                details={"id": existing.id},
            )
        if existing.status == RecordStatus.IN_PROGRESS:
            raise InProgressError(
                f"rehydration of {existing.id} already in progress",
                details={"id": existing.id, "taskARN": existing.task_arn},
            )
        return AdmissionResult(rehydration_location=existing.rehydration_location)

    async def _start(self, request: AdmissionRequest, log) -> AdmissionResult:
        record_id = request.dataset.record_id
        spec = TaskSpec(
            dataset=request.dataset,
            user=request.user,
            env=self._env,
            idempotency_table=self._store.table.name,
            tracking_table=self._tracking.table.name if self._tracking is not None else None,
            region=self._region,
        )
        try:
            info = await self._runner.run(spec)
        except Exception as e:
            log.error("admission.task.start_failed", error=str(e))
            await self._rollback(record_id, log)
            if isinstance(e, TaskStartError):
                raise
            raise TaskStartError(f"error starting rehydration task: {e}") from e

        log.info("admission.task.started", task_arn=info.task_arn)
        try:
            await self._store.set_task_arn(record_id, info.task_arn)
        except RehydrationError as e:
            # The worker already owns the record
            log.error("admission.task_arn.update_failed", task_arn=info.task_arn, error=str(e))
        return AdmissionResult(task_arn=info.task_arn)

    async def _rollback(self, record_id: str, log) -> None:
        try:
            await self._store.delete_record(record_id)
        except RehydrationError as e:
            log.error("admission.rollback_failed", record_id=record_id, error=str(e))

    async def _track(
        self,
        request: AdmissionRequest,
        status: TrackingStatus,
        task_arn: str | None,
        log,
    ) -> None:
        if self._tracking is None:
            return
        entry = TrackingEntry(
            dataset_version=request.dataset.record_id,
            user_name=request.user.name,
            user_email=request.user.email,
            request_id=request.request_id,
            rehydration_status=status,
            task_arn=task_arn,
        )
        try:
            await self._tracking.put_entry(entry)
        except RehydrationError as e:
            log.error("admission.tracking.put_failed", status=status.value, error=str(e))
