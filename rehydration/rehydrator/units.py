"""Per-file rehydration units and results."""

from __future__ import annotations

from dataclasses import dataclass, field

from rehydration.utils.paths import CopySource, parse_object_uri


@dataclass(frozen=True)
class SourceObject:
    """A published file pinned to one object version."""

    uri: str
    version_id: str
    size: int
    name: str
    path: str

    @property
    def copy_source(self) -> CopySource:
        bucket, key = parse_object_uri(self.uri)
        return CopySource(bucket=bucket, key=key, version_id=self.version_id)


@dataclass(frozen=True)
class DestinationObject:
    bucket: str
    key: str


@dataclass(frozen=True)
class RehydrationUnit:
    src: SourceObject
    dest: DestinationObject

    def log_fields(self) -> dict[str, object]:
        return {
            "source_uri": self.src.uri,
            "source_version": self.src.version_id,
            "size": self.src.size,
            "dest_bucket": self.dest.bucket,
            "dest_key": self.dest.key,
        }


@dataclass
class FileResult:
    worker_id: int
    unit: RehydrationUnit
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RehydrationResult:
    location: str
    file_results: list[FileResult] = field(default_factory=list)

    @property
    def failures(self) -> list[FileResult]:
        return [r for r in self.file_results if r.error is not None]
