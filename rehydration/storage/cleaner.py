"""Deletes every object under a key prefix."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from rehydration.errors import TransportError
from rehydration.storage.base import MAX_DELETE_BATCH, DeleteObjectError, ObjectStore

logger = structlog.get_logger()


@dataclass
class CleanResult:
    """Outcome of cleaning one prefix.

    Attributes:
        bucket: Bucket that was cleaned
        count: Number of objects found under the prefix
        deleted: Number of objects successfully deleted
        errors: Per-object delete failures
    """

    bucket: str
    count: int = 0
    deleted: int = 0
    errors: list[DeleteObjectError] = field(default_factory=list)


class PrefixCleaner:
    """Purges "folders" from a bucket in batched deletes."""

    def __init__(self, store: ObjectStore, batch_size: int = MAX_DELETE_BATCH) -> None:
        if batch_size <= 0 or batch_size > MAX_DELETE_BATCH:
            raise ValueError(
                f"batch size {batch_size} is out of range (0, {MAX_DELETE_BATCH}]"
            )
        self._store = store
        self._batch_size = batch_size
        self._log = logger.bind(component="prefix_cleaner")

    async def clean(self, bucket: str, prefix: str) -> CleanResult:
        """Delete all objects in ``bucket`` under ``prefix``.

        Listing completes before any delete is issued so that deletes never
        disturb the listing.

        Raises:
            ValueError: If the bucket or prefix is empty, or the prefix does
                not end with ``/``.
            TransportError: If listing or a delete call fails.
        """
        if not bucket:
            raise ValueError("bucket cannot be empty")
        if not prefix:
            raise ValueError("prefix cannot be empty")
        if not prefix.endswith("/"):
            raise ValueError(f"prefix must end in '/': {prefix}")

        keys: list[str] = []
        try:
            async for page in self._store.list_under_prefix(bucket, prefix):
                keys.extend(page)
        except TransportError as e:
            raise TransportError(
                f"error listing objects in {bucket} under {prefix}: {e}"
            ) from e

        result = CleanResult(bucket=bucket, count=len(keys))
        for start in range(0, len(keys), self._batch_size):
            batch = keys[start : start + self._batch_size]
            try:
                batch_result = await self._store.delete_batch(bucket, batch)
            except TransportError as e:
                raise TransportError(
                    f"error deleting objects in {bucket} under {prefix} "
                    f"({result.deleted} of {result.count} already deleted): {e}"
                ) from e
            result.deleted += batch_result.deleted
            result.errors.extend(batch_result.errors)

        self._log.info(
            "storage.prefix.cleaned",
            bucket=bucket,
            prefix=prefix,
            count=result.count,
            deleted=result.deleted,
            errors=len(result.errors),
        )
        return result
