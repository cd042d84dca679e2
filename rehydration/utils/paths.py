"""Object key and URI helpers.

Destination keys look like ``{key_prefix}{datasetId}/{versionId}/{path}``.
The rehydration location handed to callers omits the key prefix:
``{scheme}://{bucket}/{datasetId}/{versionId}/``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import quote, urlparse

from rehydration.models.dataset import DatasetVersion

if TYPE_CHECKING:
    from rehydration.config import StorageConfig


def parse_object_uri(uri: str) -> tuple[str, str]:
    """Split ``s3://bucket/key`` into ``(bucket, key)``.

    Raises:
        ValueError: If the URI has no bucket.
    """
    parsed = urlparse(uri)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"invalid object URI: {uri!r}")
    return parsed.netloc, parsed.path.lstrip("/")


def parse_location(location: str) -> tuple[str, str]:
    """Split a rehydration location into ``(bucket, dataset version prefix)``.

    Raises:
        ValueError: If the prefix is empty or does not end with ``/``.
    """
    bucket, prefix = parse_object_uri(location)
    if not prefix:
        raise ValueError(f"location {location!r} has an empty prefix")
    if not prefix.endswith("/"):
        raise ValueError(f"location {location!r} prefix {prefix!r} does not end with '/'")
    return bucket, prefix


@dataclass(frozen=True)
class CopySource:
    """A version-pinned source object for CopyObject / UploadPartCopy."""

    bucket: str
    key: str
    version_id: str

    def header(self) -> str:
        """Render as ``bucket/key?versionId=...`` with the key path-escaped."""
        return f"{self.bucket}/{quote(self.key, safe='/~')}?versionId={quote(self.version_id, safe='')}"

    def as_boto(self) -> dict[str, str]:
        """Dict form accepted by boto3, which escapes the key itself."""
        source = {"Bucket": self.bucket, "Key": self.key}
        if self.version_id:
            source["VersionId"] = self.version_id
        return source

    def __str__(self) -> str:
        return self.header()


@dataclass(frozen=True)
class DestinationLayout:
    """Maps dataset versions to destination keys and locations."""

    bucket: str
    key_prefix: str = "rehydrated/"
    scheme: str = "s3"

    @classmethod
    def from_config(cls, storage: "StorageConfig") -> "DestinationLayout":
        return cls(
            bucket=storage.rehydration_bucket,
            key_prefix=storage.key_prefix,
            scheme=storage.location_scheme,
        )

    def version_prefix(self, dataset: DatasetVersion) -> str:
        """Dataset version segment shared by keys and the location."""
        return f"{dataset.dataset_id}/{dataset.version_id}/"

    def key_prefix_for(self, dataset: DatasetVersion) -> str:
        """Key prefix under which every file of ``dataset`` is written."""
        return f"{self.key_prefix}{self.version_prefix(dataset)}"

    def key(self, dataset: DatasetVersion, path: str) -> str:
        return f"{self.key_prefix_for(dataset)}{path.lstrip('/')}"

    def location(self, dataset: DatasetVersion) -> str:
        return f"{self.scheme}://{self.bucket}/{self.version_prefix(dataset)}"

    def keys_prefix_for_location(self, location: str) -> tuple[str, str]:
        """Resolve a location to ``(bucket, key prefix)`` for purging.

        Raises:
            ValueError: If the location prefix is empty or lacks a trailing ``/``.
        """
        bucket, prefix = parse_location(location)
        return bucket, f"{self.key_prefix}{prefix}"
