"""Unit tests for IdempotencyStore against SQLite.

Covers the conditional writes the arbitration protocol and the sweeper rely
on: insert-if-absent, update-if-present and compare-and-set expiry.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta, timezone

import pytest

from rehydration.errors import (
    ConditionFailedError,
    RecordAlreadyExistsError,
    RecordDoesNotExistError,
)
from rehydration.models.idempotency import ExpirationIndexEntry, IdempotencyRecord, RecordStatus
from rehydration.models.types import UTCDateTime
from rehydration.utils.datetime import expiration_from, utcnow

RECORD_ID = "5065/2/"
LOCATION = "s3://rehydration-bucket/5065/2/"


async def _completed(store, record_id=RECORD_ID, expiration=datetime(2024, 1, 1)) -> IdempotencyRecord:
    await store.save_in_progress(record_id)
    record = IdempotencyRecord(
        id=record_id,
        status=RecordStatus.COMPLETED,
        rehydration_location=f"s3://rehydration-bucket/{record_id}",
        expiration_date=expiration,
    )
    await store.update_record(record)
    return record


class TestSaveInProgress:
    async def test_inserts_in_progress_record(self, idempotency_store):
        await idempotency_store.save_in_progress(RECORD_ID)

        record = await idempotency_store.get_record(RECORD_ID)
        assert record is not None
        assert record.status is RecordStatus.IN_PROGRESS
        assert record.expiration_date is None

    async def test_second_insert_reports_existing_record(self, idempotency_store):
        await idempotency_store.save_in_progress(RECORD_ID, task_arn="arn:task/1")

        with pytest.raises(RecordAlreadyExistsError) as exc_info:
            await idempotency_store.save_in_progress(RECORD_ID)

        assert exc_info.value.record_id == RECORD_ID
        assert exc_info.value.existing is not None
        assert exc_info.value.existing.task_arn == "arn:task/1"

    async def test_concurrent_inserts_have_one_winner(self, idempotency_store):
        results = await asyncio.gather(
            *(idempotency_store.save_in_progress(RECORD_ID) for _ in range(5)),
            return_exceptions=True,
        )

        winners = [r for r in results if r is None]
        losers = [r for r in results if isinstance(r, RecordAlreadyExistsError)]
        assert len(winners) == 1
        assert len(losers) == 4


class TestUpdates:
    async def test_get_missing_record_returns_none(self, idempotency_store):
        assert await idempotency_store.get_record("1/1/") is None

    async def test_update_record(self, idempotency_store):
        record = await _completed(idempotency_store)

        stored = await idempotency_store.get_record(RECORD_ID)
        assert stored.same_as(record)

    async def test_update_missing_record_raises(self, idempotency_store):
        record = IdempotencyRecord(id="1/1/", status=RecordStatus.COMPLETED)
        with pytest.raises(RecordDoesNotExistError):
            await idempotency_store.update_record(record)

    async def test_set_task_arn(self, idempotency_store):
        await idempotency_store.save_in_progress(RECORD_ID)
        await idempotency_store.set_task_arn(RECORD_ID, "arn:task/9")

        assert (await idempotency_store.get_record(RECORD_ID)).task_arn == "arn:task/9"

    async def test_set_task_arn_on_missing_record_does_not_create_it(self, idempotency_store):
        await idempotency_store.set_task_arn(RECORD_ID, "arn:task/9")
        assert await idempotency_store.get_record(RECORD_ID) is None

    async def test_delete_record_is_idempotent(self, idempotency_store):
        await idempotency_store.save_in_progress(RECORD_ID)
        await idempotency_store.delete_record(RECORD_ID)
        await idempotency_store.delete_record(RECORD_ID)
        assert await idempotency_store.get_record(RECORD_ID) is None

    async def test_expire_record(self, idempotency_store):
        await _completed(idempotency_store)
        await idempotency_store.expire_record(RECORD_ID)
        assert (await idempotency_store.get_record(RECORD_ID)).status is RecordStatus.EXPIRED

    async def test_expire_missing_record_raises(self, idempotency_store):
        with pytest.raises(RecordDoesNotExistError):
            await idempotency_store.expire_record(RECORD_ID)


class TestSetExpirationDate:
    async def test_extends_completed_record(self, idempotency_store):
        await _completed(idempotency_store, expiration=datetime(2024, 1, 1))
        later = datetime(2024, 2, 1)

        await idempotency_store.set_expiration_date(RECORD_ID, later)

        assert (await idempotency_store.get_record(RECORD_ID)).expiration_date == later

    async def test_rejects_earlier_date(self, idempotency_store):
        await _completed(idempotency_store, expiration=datetime(2024, 1, 1))

        with pytest.raises(ConditionFailedError) as exc_info:
            await idempotency_store.set_expiration_date(RECORD_ID, datetime(2023, 12, 1))

        assert "expirationDate" in exc_info.value.actual

    async def test_rejects_in_progress_record(self, idempotency_store):
        await idempotency_store.save_in_progress(RECORD_ID)

        with pytest.raises(ConditionFailedError) as exc_info:
            await idempotency_store.set_expiration_date(RECORD_ID, datetime(2024, 1, 1))

        assert exc_info.value.expected["status"] == "COMPLETED"
        assert exc_info.value.actual["status"] == "IN_PROGRESS"

    async def test_missing_record(self, idempotency_store):
        with pytest.raises(RecordDoesNotExistError):
            await idempotency_store.set_expiration_date(RECORD_ID, datetime(2024, 1, 1))


class TestExpirationIndex:
    async def test_query_returns_due_completed_records_only(self, idempotency_store):
        now = datetime(2024, 6, 1)
        await _completed(idempotency_store, "1/1/", expiration=now - timedelta(days=1))
        await _completed(idempotency_store, "2/1/", expiration=now)
        await _completed(idempotency_store, "3/1/", expiration=now + timedelta(seconds=1))
        await idempotency_store.save_in_progress("4/1/")

        entries = await idempotency_store.query_expiration_index(now, 100)

        assert sorted(e.id for e in entries) == ["1/1/", "2/1/"]
        assert all(e.status is RecordStatus.COMPLETED for e in entries)

    async def test_query_respects_limit(self, idempotency_store):
        now = datetime(2024, 6, 1)
        for i in range(5):
            await _completed(idempotency_store, f"{i + 1}/1/", expiration=now - timedelta(days=1))

        assert len(await idempotency_store.query_expiration_index(now, 3)) == 3

    async def test_query_expired_status(self, idempotency_store):
        now = datetime(2024, 6, 1)
        await _completed(idempotency_store, "1/1/", expiration=now - timedelta(days=1))
        await _completed(idempotency_store, "2/1/", expiration=now - timedelta(days=1))
        await idempotency_store.expire_record("2/1/")

        entries = await idempotency_store.query_expiration_index(now, 100, status=RecordStatus.EXPIRED)

        assert [e.id for e in entries] == ["2/1/"]

    async def test_expire_by_index(self, idempotency_store):
        record = await _completed(idempotency_store)
        [entry] = await idempotency_store.query_expiration_index(datetime(2024, 6, 1), 10)

        expired = await idempotency_store.expire_by_index(entry)

        assert expired.status is RecordStatus.EXPIRED
        assert expired.rehydration_location == record.rehydration_location

    async def test_expire_by_index_misses_when_record_was_extended(self, idempotency_store):
        await _completed(idempotency_store, expiration=datetime(2024, 1, 1))
        [entry] = await idempotency_store.query_expiration_index(datetime(2024, 6, 1), 10)
        await idempotency_store.set_expiration_date(RECORD_ID, datetime(2024, 12, 1))

        with pytest.raises(ConditionFailedError) as exc_info:
            await idempotency_store.expire_by_index(entry)

        assert exc_info.value.expected["expirationDate"] == "2024-01-01T00:00:00.000000Z"
        assert exc_info.value.actual["expirationDate"] == "2024-12-01T00:00:00.000000Z"
        assert (await idempotency_store.get_record(RECORD_ID)).status is RecordStatus.COMPLETED

    async def test_expire_by_index_misses_when_already_expired(self, idempotency_store):
        await _completed(idempotency_store)
        [entry] = await idempotency_store.query_expiration_index(datetime(2024, 6, 1), 10)
        await idempotency_store.expire_by_index(entry)

        with pytest.raises(ConditionFailedError) as exc_info:
            await idempotency_store.expire_by_index(entry)

        assert exc_info.value.actual["status"] == "EXPIRED"

    async def test_expire_by_index_on_deleted_record(self, idempotency_store):
        entry = ExpirationIndexEntry(
            id=RECORD_ID,
            status=RecordStatus.COMPLETED,
            rehydration_location=LOCATION,
            expiration_date=datetime(2024, 1, 1),
        )

        with pytest.raises(ConditionFailedError) as exc_info:
            await idempotency_store.expire_by_index(entry)

        assert exc_info.value.actual == {"status": None, "expirationDate": None}


async def test_table_uses_configured_name(idempotency_store):
    assert idempotency_store.table.name == "test_idempotency"


class TestTimestamps:
    async def test_expiration_date_column_type(self, idempotency_store):
        assert isinstance(idempotency_store.table.c.expiration_date.type, UTCDateTime)

    async def test_completion_with_current_time(self, idempotency_store):
        expiration = expiration_from(utcnow(), 14)
        await _completed(idempotency_store, expiration=expiration)

        record = await idempotency_store.get_record(RECORD_ID)

        assert record.status is RecordStatus.COMPLETED
        assert record.expiration_date == expiration

    async def test_aware_dates_are_stored_as_utc(self, idempotency_store):
        plus_two = timezone(timedelta(hours=2))
        await _completed(idempotency_store, expiration=datetime(2024, 1, 1, 14, 0, tzinfo=plus_two))

        record = await idempotency_store.get_record(RECORD_ID)
        entries = await idempotency_store.query_expiration_index(datetime(2024, 1, 1, 12, 0, tzinfo=UTC), 10)

        assert record.expiration_date == datetime(2024, 1, 1, 12, 0)
        assert [e.id for e in entries] == [RECORD_ID]
        assert (await idempotency_store.expire_by_index(entries[0])).status is RecordStatus.EXPIRED
