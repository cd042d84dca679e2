"""Request tracking data model.

One entry per admitted request. At finalize the worker notifies every
requester of its dataset version and marks their entries handled.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from rehydration.models.types import UTCDateTime
from rehydration.utils.datetime import utcnow


class TrackingStatus(str, Enum):
    """Rehydration status as seen by one requester."""

    # Admission failed before it could start or find a task
    UNKNOWN = "UNKNOWN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TrackingEntry(SQLModel, table=True):
    """A single rehydration request."""

    __tablename__ = "tracking_entries"
    __table_args__ = (
        Index("ix_tracking_entries_dataset_version_status", "dataset_version", "rehydration_status"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    dataset_version: str
    user_name: str
    user_email: str
    request_id: str = Field(default="")
    request_date: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    rehydration_status: TrackingStatus = Field(default=TrackingStatus.IN_PROGRESS)
    email_sent_date: datetime | None = Field(default=None, sa_type=UTCDateTime)
    task_arn: str | None = Field(default=None)


@dataclass(frozen=True)
class UnhandledEntry:
    """Projection used to notify requesters at finalize."""

    id: str
    dataset_version: str
    user_name: str
    user_email: str
    request_id: str = ""
