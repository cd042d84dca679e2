"""Object store interface.

All copies are server-side. Multipart copy is built on the primitive
multipart calls here and driven by :class:`rehydration.storage.multipart.MultipartCopier`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from rehydration.utils.paths import CopySource

# DeleteObjects accepts at most this many keys per call
MAX_DELETE_BATCH = 1000


@dataclass(frozen=True)
class DeleteObjectError:
    """Per-object failure reported in-band by a batched delete."""

    key: str
    code: str = ""
    message: str = ""

    def __str__(self) -> str:
        return f"error deleting object {self.key}: {self.message} (code: {self.code})"


@dataclass
class DeleteBatchResult:
    deleted: int = 0
    errors: list[DeleteObjectError] = field(default_factory=list)


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    etag: str


class ObjectStore(ABC):
    """Abstract object store.

    Operations raise :class:`rehydration.errors.TransportError` on
    call-level failures.
    """

    @abstractmethod
    async def copy_object(self, source: CopySource, dest_bucket: str, dest_key: str) -> None:
        """Copy a version-pinned object in a single request."""
        ...

    @abstractmethod
    async def create_multipart_upload(self, bucket: str, key: str) -> str:
        """Start a multipart upload and return its upload id."""
        ...

    @abstractmethod
    async def upload_part_copy(
        self,
        source: CopySource,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        byte_range: str,
    ) -> str:
        """Copy a byte range of ``source`` as one part. Returns the part ETag."""
        ...

    @abstractmethod
    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: list[CompletedPart],
    ) -> None:
        """Finalize a multipart upload. ``parts`` must be sorted by part number."""
        ...

    @abstractmethod
    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        ...

    @abstractmethod
    def list_under_prefix(self, bucket: str, prefix: str) -> AsyncIterator[list[str]]:
        """Lazily yield pages of keys under ``prefix``."""
        ...

    @abstractmethod
    async def delete_batch(self, bucket: str, keys: list[str]) -> DeleteBatchResult:
        """Delete up to :data:`MAX_DELETE_BATCH` keys.

        Per-object failures are returned in the result, not raised.
        """
        ...
