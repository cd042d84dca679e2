"""Unit tests for CopyProcessor."""

from __future__ import annotations

import pytest

from rehydration.errors import CopyError
from rehydration.rehydrator.processor import CopyProcessor
from rehydration.rehydrator.units import DestinationObject, SourceObject
from rehydration.storage.multipart import MultipartCopier
from tests.fakes import FakeObjectStore

THRESHOLD = 100


def _source(size: int, name: str = "data.csv") -> SourceObject:
    return SourceObject(
        uri=f"s3://publish-bucket/5065/files/{name}",
        version_id="v7",
        size=size,
        name=name,
        path=f"files/{name}",
    )


DEST = DestinationObject(bucket="rehydration-bucket", key="rehydrated/5065/2/files/data.csv")


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def processor(store) -> CopyProcessor:
    return CopyProcessor(store, MultipartCopier(store, part_size=40, workers=2), threshold=THRESHOLD)


async def test_below_threshold_uses_simple_copy(processor, store):
    await processor.copy(_source(THRESHOLD - 1), DEST)

    [(source, bucket, key)] = store.copy_calls
    assert (source.bucket, source.key, source.version_id) == ("publish-bucket", "5065/files/data.csv", "v7")
    assert (bucket, key) == (DEST.bucket, DEST.key)
    assert store.uploads == {}


async def test_threshold_uses_multipart(processor, store):
    await processor.copy(_source(THRESHOLD), DEST)

    assert store.copy_calls == []
    assert sorted(c[2] for c in store.part_calls) ==["bytes=0-39", "bytes=40-79", "bytes=80-99"]


async def test_empty_file_uses_simple_copy(processor, store):
    await processor.copy(_source(0), DEST)

    assert len(store.copy_calls) == 1


async def test_copy_failure_names_file(processor, store):
    store.fail_copy_keys = {DEST.key}

    with pytest.raises(CopyError) as exc_info:
        await processor.copy(_source(10), DEST)

    assert exc_info.value.file_name == "data.csv"
    assert "error copying data.csv" in exc_info.value.message


async def test_multipart_failure_names_file(processor, store):
    store.fail_part_numbers = {2}

    with pytest.raises(CopyError) as exc_info:
        await processor.copy(_source(THRESHOLD * 2), DEST)

    assert exc_info.value.file_name == "data.csv"


def test_uses_multipart(processor):
    assert not processor.uses_multipart(THRESHOLD - 1)
    assert processor.uses_multipart(THRESHOLD)
