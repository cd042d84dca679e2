"""Idempotency record store.

Every write is a single conditional statement committed on its own:
``INSERT`` relies on primary-key uniqueness for "does not exist yet", and
``UPDATE ... WHERE <precondition>`` plus a row-count check is the
compare-and-set. There are no multi-record transactions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import Table, and_, delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rehydration.db.session import SessionFactory, bind_table, get_async_session
from rehydration.errors import (
    ConditionFailedError,
    RecordAlreadyExistsError,
    RecordDoesNotExistError,
    TransportError,
)
from rehydration.models.idempotency import (
    EXPIRATION_DATE_ATTR,
    STATUS_ATTR,
    ExpirationIndexEntry,
    IdempotencyRecord,
    RecordStatus,
)
from rehydration.utils.datetime import format_timestamp

logger = structlog.get_logger()


def idempotency_table(name: str | None = None) -> Table:
    """The idempotency table, optionally under a configured name."""
    table = IdempotencyRecord.__table__
    return bind_table(table, name) if name else table


def _condition_view(status: RecordStatus | None, expiration: datetime | None) -> dict[str, Any]:
    return {
        STATUS_ATTR: status.value if status is not None else None,
        EXPIRATION_DATE_ATTR: format_timestamp(expiration) if expiration is not None else None,
    }


class IdempotencyStore:
    """Conditional CRUD over idempotency records."""

    def __init__(
        self,
        session_factory: SessionFactory = get_async_session,
        table_name: str | None = None,
    ) -> None:
        self._sessions = session_factory
        self._table = idempotency_table(table_name)
        self._log = logger.bind(component="idempotency_store", table=self._table.name)

    @property
    def table(self) -> Table:
        return self._table

    def _row_to_record(self, row) -> IdempotencyRecord:
        return IdempotencyRecord.model_validate(dict(row._mapping))

    async def save_in_progress(self, record_id: str, task_arn: str | None = None) -> None:
        """Insert an IN_PROGRESS record if none exists for ``record_id``.

        Raises:
            RecordAlreadyExistsError: A record already exists; the current one
                is attached when it could be read back.
            TransportError: On database errors.
        """
        stmt = insert(self._table).values(
            id=record_id,
            status=RecordStatus.IN_PROGRESS,
            task_arn=task_arn,
        )
        try:
            async with self._sessions() as session:
                await session.execute(stmt)
        except IntegrityError:
            existing = None
            try:
                existing = await self.get_record(record_id)
            except TransportError as e:
                self._log.warning(
                    "idempotency.save.read_existing_failed",
                    record_id=record_id,
                    error=str(e),
                )
            raise RecordAlreadyExistsError(record_id, existing) from None
        except SQLAlchemyError as e:
            raise TransportError(f"error saving in-progress record {record_id}: {e}") from e

        self._log.debug("idempotency.save.in_progress", record_id=record_id)

    async def get_record(self, record_id: str) -> IdempotencyRecord | None:
        """Return the record, or None when absent."""
        stmt = select(self._table).where(self._table.c.id == record_id)
        try:
            async with self._sessions() as session:
                row = (await session.execute(stmt)).first()
        except SQLAlchemyError as e:
            raise TransportError(f"error getting record {record_id}: {e}") from e
        return self._row_to_record(row) if row is not None else None

    async def update_record(self, record: IdempotencyRecord) -> None:
        """Overwrite the mutable fields of an existing record.

        Raises:
            RecordDoesNotExistError: If the record is absent.
        """
        stmt = (
            update(self._table)
            .where(self._table.c.id == record.id)
            .values(
                status=record.status,
                rehydration_location=record.rehydration_location,
                expiration_date=record.expiration_date,
                task_arn=record.task_arn,
            )
        )
        rowcount = await self._execute_write(stmt, f"error updating record {record.id}")
        if rowcount == 0:
            raise RecordDoesNotExistError(record.id)
        self._log.debug(
            "idempotency.record.updated",
            record_id=record.id,
            status=record.status.value,
        )

    async def set_task_arn(self, record_id: str, task_arn: str) -> None:
        """Record the owning task. Unconditional."""
        stmt = (
            update(self._table)
            .where(self._table.c.id == record_id)
            .values(task_arn=task_arn)
        )
        rowcount = await self._execute_write(stmt, f"error setting task ARN on record {record_id}")
        if rowcount == 0:
            self._log.warning("idempotency.task_arn.no_record", record_id=record_id, task_arn=task_arn)

    async def delete_record(self, record_id: str) -> None:
        stmt = delete(self._table).where(self._table.c.id == record_id)
        rowcount = await self._execute_write(stmt, f"error deleting record {record_id}")
        self._log.debug("idempotency.record.deleted", record_id=record_id, existed=rowcount > 0)

    async def expire_record(self, record_id: str) -> None:
        """Set status to EXPIRED.

        Raises:
            RecordDoesNotExistError: If the record is absent.
        """
        stmt = (
            update(self._table)
            .where(self._table.c.id == record_id)
            .values(status=RecordStatus.EXPIRED)
        )
        rowcount = await self._execute_write(stmt, f"error expiring record {record_id}")
        if rowcount == 0:
            raise RecordDoesNotExistError(record_id)

    async def set_expiration_date(self, record_id: str, expiration_date: datetime) -> None:
        """Set or extend the expiration date of a COMPLETED record.

        The new date must be later than the current one, if any.

        Raises:
            RecordDoesNotExistError: If the record is absent.
            ConditionFailedError: If the record is not COMPLETED or already
                expires at or after ``expiration_date``.
        """
        c = self._table.c
        stmt = (
            update(self._table)
            .where(
                and_(
                    c.id == record_id,
                    c.status == RecordStatus.COMPLETED,
                    or_(c.expiration_date.is_(None), c.expiration_date < expiration_date),
                )
            )
            .values(expiration_date=expiration_date)
        )
        rowcount = await self._execute_write(
            stmt, f"error setting expiration date on record {record_id}"
        )
        if rowcount > 0:
            return

        current = await self.get_record(record_id)
        if current is None:
            raise RecordDoesNotExistError(record_id)

        expected: dict[str, Any] = {}
        actual: dict[str, Any] = {}
        if current.status != RecordStatus.COMPLETED:
            expected[STATUS_ATTR] = RecordStatus.COMPLETED.value
            actual[STATUS_ATTR] = current.status.value
        if current.expiration_date is not None and current.expiration_date >= expiration_date:
            expected[EXPIRATION_DATE_ATTR] = f"< {format_timestamp(expiration_date)}"
            actual[EXPIRATION_DATE_ATTR] = format_timestamp(current.expiration_date)
        raise ConditionFailedError(record_id, expected, actual)

    async def query_expiration_index(
        self,
        now: datetime,
        limit: int,
        status: RecordStatus = RecordStatus.COMPLETED,
    ) -> list[ExpirationIndexEntry]:
        """Records in ``status`` whose expiration date is at or before ``now``.

        COMPLETED entries are due for expiry. EXPIRED entries are left over
        from a sweep whose object deletes failed.
        """
        c = self._table.c
        stmt = (
            select(c.id, c.status, c.rehydration_location, c.expiration_date)
            .where(
                and_(
                    c.status == status,
                    c.expiration_date.is_not(None),
                    c.expiration_date <= now,
                )
            )
            .limit(limit)
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise TransportError(f"error querying expiration index: {e}") from e

        return [
            ExpirationIndexEntry(
                id=row.id,
                status=RecordStatus(row.status),
                rehydration_location=row.rehydration_location,
                expiration_date=row.expiration_date,
            )
            for row in rows
        ]

    async def expire_by_index(self, entry: ExpirationIndexEntry) -> IdempotencyRecord:
        """Compare-and-set the record to EXPIRED.

        The projected status and expiration date are the precondition, so a
        record completed again or already expired by another sweeper is left
        alone.

        Raises:
            ConditionFailedError: If the record no longer matches ``entry``.
        """
        c = self._table.c
        stmt = (
            update(self._table)
            .where(
                and_(
                    c.id == entry.id,
                    c.status == entry.status,
                    c.expiration_date == entry.expiration_date,
                )
            )
            .values(status=RecordStatus.EXPIRED)
        )
        rowcount = await self._execute_write(stmt, f"error expiring record {entry.id}")

        current = await self.get_record(entry.id)
        if rowcount > 0 and current is not None:
            return current

        expected = _condition_view(entry.status, entry.expiration_date)
        if current is None:
            actual = _condition_view(None, None)
            message = f"record {entry.id} no longer exists"
        else:
            actual = _condition_view(current.status, current.expiration_date)
            message = None
        raise ConditionFailedError(entry.id, expected, actual, message=message)

    async def _execute_write(self, stmt, error_message: str) -> int:
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            raise TransportError(f"{error_message}: {e}") from e
