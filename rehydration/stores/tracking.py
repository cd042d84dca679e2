"""Request tracking store."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import Table, and_, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from rehydration.db.session import SessionFactory, bind_table, get_async_session
from rehydration.errors import TransportError
from rehydration.models.dataset import DatasetVersion
from rehydration.models.tracking import TrackingEntry, TrackingStatus, UnhandledEntry

logger = structlog.get_logger()


def tracking_table(name: str | None = None) -> Table:
    """The tracking table, optionally under a configured name."""
    table = TrackingEntry.__table__
    return bind_table(table, name) if name else table


class TrackingStore:
    """Tracks who asked for which dataset version, and whether they were told."""

    def __init__(
        self,
        session_factory: SessionFactory = get_async_session,
        table_name: str | None = None,
    ) -> None:
        self._sessions = session_factory
        self._table = tracking_table(table_name)
        self._log = logger.bind(component="tracking_store", table=self._table.name)

    @property
    def table(self) -> Table:
        return self._table

    async def put_entry(self, entry: TrackingEntry) -> None:
        stmt = insert(self._table).values(
            id=entry.id,
            dataset_version=entry.dataset_version,
            user_name=entry.user_name,
            user_email=entry.user_email,
            request_id=entry.request_id,
            request_date=entry.request_date,
            rehydration_status=entry.rehydration_status,
            email_sent_date=entry.email_sent_date,
            task_arn=entry.task_arn,
        )
        try:
            async with self._sessions() as session:
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise TransportError(f"error putting tracking entry {entry.id}: {e}") from e

    async def get_entry(self, entry_id: str) -> TrackingEntry | None:
        stmt = select(self._table).where(self._table.c.id == entry_id)
        try:
            async with self._sessions() as session:
                row = (await session.execute(stmt)).first()
        except SQLAlchemyError as e:
            raise TransportError(f"error getting tracking entry {entry_id}: {e}") from e
        return TrackingEntry.model_validate(dict(row._mapping)) if row is not None else None

    async def query_unhandled(
        self, dataset: DatasetVersion, limit: int
    ) -> list[UnhandledEntry]:
        """IN_PROGRESS entries for ``dataset`` that have not been notified."""
        c = self._table.c
        stmt = (
            select(c.id, c.dataset_version, c.user_name, c.user_email, c.request_id)
            .where(
                and_(
                    c.dataset_version == dataset.record_id,
                    c.rehydration_status == TrackingStatus.IN_PROGRESS,
                    c.email_sent_date.is_(None),
                )
            )
            .order_by(c.request_date)
            .limit(limit)
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise TransportError(f"error querying unhandled tracking entries: {e}") from e
        return [
            UnhandledEntry(
                id=row.id,
                dataset_version=row.dataset_version,
                user_name=row.user_name,
                user_email=row.user_email,
                request_id=row.request_id or "",
            )
            for row in rows
        ]

    async def email_sent(
        self,
        entry_id: str,
        email_sent_date: datetime | None,
        status: TrackingStatus,
    ) -> bool:
        """Mark an entry handled. Only entries without a sent date are updated.

        Returns:
            True if the entry was updated, False if it was already handled or absent.
        """
        c = self._table.c
        stmt = (
            update(self._table)
            .where(and_(c.id == entry_id, c.email_sent_date.is_(None)))
            .values(email_sent_date=email_sent_date, rehydration_status=status)
        )
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                updated = result.rowcount > 0
        except SQLAlchemyError as e:
            raise TransportError(f"error marking tracking entry {entry_id}: {e}") from e
        if not updated:
            self._log.warning("tracking.entry.already_handled", entry_id=entry_id)
        return updated
