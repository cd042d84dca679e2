"""Dataset version and user value types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DatasetVersion:
    """A published (datasetId, versionId) pair, the unit of rehydration."""

    dataset_id: int
    version_id: int

    @property
    def record_id(self) -> str:
        """Canonical string form, also the idempotency record key."""
        return f"{self.dataset_id}/{self.version_id}/"

    @classmethod
    def from_record_id(cls, record_id: str) -> "DatasetVersion":
        """Parse the canonical ``"{datasetId}/{versionId}/"`` form.

        Raises:
            ValueError: If the id is not in canonical form.
        """
        parts = record_id.split("/")
        if len(parts) != 3 or parts[2] != "":
            raise ValueError(f"invalid dataset version id: {record_id!r}")
        try:
            return cls(dataset_id=int(parts[0]), version_id=int(parts[1]))
        except ValueError as e:
            raise ValueError(f"invalid dataset version id: {record_id!r}") from e

    def __str__(self) -> str:
        return self.record_id


@dataclass(frozen=True)
class User:
    """Requesting user, carried for notification and audit."""

    name: str
    email: str
