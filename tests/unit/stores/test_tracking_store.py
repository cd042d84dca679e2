"""Unit tests for TrackingStore against SQLite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from rehydration.models.dataset import DatasetVersion
from rehydration.models.tracking import TrackingEntry, TrackingStatus
from rehydration.models.types import UTCDateTime


def _entry(dataset: DatasetVersion, email: str, **kwargs) -> TrackingEntry:
    return TrackingEntry(
        dataset_version=dataset.record_id,
        user_name=email.split("@")[0],
        user_email=email,
        **kwargs,
    )


async def test_put_and_get_entry(tracking_store, dataset):
    entry = _entry(dataset, "a@example.com", request_id="req-1", task_arn="arn:task/1")
    await tracking_store.put_entry(entry)

    stored = await tracking_store.get_entry(entry.id)

    assert stored is not None
    assert stored.request_id == "req-1"
    assert stored.rehydration_status is TrackingStatus.IN_PROGRESS
    assert stored.email_sent_date is None


async def test_get_missing_entry(tracking_store):
    assert await tracking_store.get_entry("missing") is None


async def test_query_unhandled_filters_and_orders(tracking_store, dataset):
    base = datetime(2024, 1, 1)
    second = _entry(dataset, "b@example.com", request_date=base + timedelta(minutes=2))
    first = _entry(dataset, "a@example.com", request_date=base)
    completed = _entry(
        dataset, "c@example.com", request_date=base, rehydration_status=TrackingStatus.COMPLETED
    )
    notified = _entry(dataset, "d@example.com", request_date=base, email_sent_date=base)
    other = _entry(DatasetVersion(1, 1), "e@example.com", request_date=base)
    for entry in (second, first, completed, notified, other):
        await tracking_store.put_entry(entry)

    unhandled = await tracking_store.query_unhandled(dataset, limit=20)

    assert [e.user_email for e in unhandled] == ["a@example.com", "b@example.com"]


async def test_query_unhandled_limit(tracking_store, dataset):
    for i in range(4):
        await tracking_store.put_entry(_entry(dataset, f"u{i}@example.com"))

    assert len(await tracking_store.query_unhandled(dataset, limit=2)) == 2


async def test_email_sent_marks_entry_once(tracking_store, dataset):
    entry = _entry(dataset, "a@example.com")
    await tracking_store.put_entry(entry)
    sent = datetime(2024, 1, 2)

    assert await tracking_store.email_sent(entry.id, sent, TrackingStatus.COMPLETED) is True
    assert await tracking_store.email_sent(entry.id, datetime(2024, 1, 3), TrackingStatus.FAILED) is False

    stored = await tracking_store.get_entry(entry.id)
    assert stored.email_sent_date == sent
    assert stored.rehydration_status is TrackingStatus.COMPLETED
    assert await tracking_store.query_unhandled(dataset, limit=20) == []


async def test_failed_send_leaves_sent_date_unset(tracking_store, dataset):
    entry = _entry(dataset, "a@example.com")
    await tracking_store.put_entry(entry)

    await tracking_store.email_sent(entry.id, None, TrackingStatus.FAILED)

    stored = await tracking_store.get_entry(entry.id)
    assert stored.email_sent_date is None
    assert stored.rehydration_status is TrackingStatus.FAILED


async def test_dates_are_stored_as_naive_utc(tracking_store, dataset):
    assert isinstance(tracking_store.table.c.request_date.type, UTCDateTime)
    assert isinstance(tracking_store.table.c.email_sent_date.type, UTCDateTime)

    entry = _entry(dataset, "a@example.com", request_date=datetime(2024, 5, 1, 9, 30, tzinfo=UTC))
    await tracking_store.put_entry(entry)

    stored = await tracking_store.get_entry(entry.id)

    assert stored.request_date == datetime(2024, 5, 1, 9, 30)
