"""Idempotency record data model.

One record per dataset version serializes concurrent rehydration requests
and caches the outcome. See ``rehydration.stores.idempotency`` for the
conditional writes that maintain it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from rehydration.models.types import UTCDateTime
from rehydration.utils.datetime import format_timestamp, parse_timestamp

# Marshalled attribute names
ID_ATTR = "id"
STATUS_ATTR = "status"
LOCATION_ATTR = "rehydrationLocation"
TASK_ARN_ATTR = "taskARN"
EXPIRATION_DATE_ATTR = "expirationDate"


class RecordStatus(str, Enum):
    """Idempotency record status."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"

    @classmethod
    def parse(cls, value: str) -> "RecordStatus":
        """Case-insensitive lookup.

        Raises:
            ValueError: For unknown statuses.
        """
        try:
            return cls(value.upper())
        except ValueError as e:
            raise ValueError(f"unknown idempotency status: [{value}]") from e


class IdempotencyRecord(SQLModel, table=True):
    """Idempotency record for a dataset version rehydration."""

    __tablename__ = "idempotency_records"
    # Expiration index: range scans over (status, expiration_date)
    __table_args__ = (
        Index("ix_idempotency_records_expiration", "status", "expiration_date"),
    )

    # Canonical dataset version string, "{datasetId}/{versionId}/"
    id: str = Field(primary_key=True)
    status: RecordStatus = Field(default=RecordStatus.IN_PROGRESS)

    rehydration_location: str | None = Field(default=None)
    task_arn: str | None = Field(default=None)

    # Set iff status is COMPLETED or EXPIRED
    expiration_date: datetime | None = Field(default=None, sa_type=UTCDateTime)

    def to_item(self) -> dict[str, Any]:
        """Marshal to the external item form. Unset attributes are omitted."""
        item: dict[str, Any] = {ID_ATTR: self.id, STATUS_ATTR: self.status.value}
        if self.rehydration_location:
            item[LOCATION_ATTR] = self.rehydration_location
        if self.task_arn:
            item[TASK_ARN_ATTR] = self.task_arn
        if self.expiration_date is not None:
            item[EXPIRATION_DATE_ATTR] = format_timestamp(self.expiration_date)
        return item

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "IdempotencyRecord":
        """Unmarshal from the external item form.

        Raises:
            ValueError: On a missing id, unknown status or bad timestamp.
        """
        if not item.get(ID_ATTR):
            raise ValueError(f"item has no {ID_ATTR!r}: {item}")
        expiration = item.get(EXPIRATION_DATE_ATTR)
        return cls(
            id=item[ID_ATTR],
            status=RecordStatus.parse(item.get(STATUS_ATTR, "")),
            rehydration_location=item.get(LOCATION_ATTR) or None,
            task_arn=item.get(TASK_ARN_ATTR) or None,
            expiration_date=parse_timestamp(expiration) if expiration else None,
        )

    def same_as(self, other: "IdempotencyRecord") -> bool:
        """Field-wise equality."""
        return (
            self.id == other.id
            and self.status == other.status
            and self.rehydration_location == other.rehydration_location
            and self.task_arn == other.task_arn
            and self.expiration_date == other.expiration_date
        )


@dataclass(frozen=True)
class ExpirationIndexEntry:
    """Projection of a record returned by expiration index queries."""

    id: str
    status: RecordStatus
    rehydration_location: str | None
    expiration_date: datetime
