"""Unit tests for S3ObjectStore using botocore's Stubber."""

from __future__ import annotations

import boto3
import pytest
from botocore.stub import ANY, Stubber

from rehydration.errors import TransportError
from rehydration.storage.base import CompletedPart
from rehydration.storage.s3 import S3ObjectStore
from rehydration.utils.paths import CopySource

SOURCE = CopySource(bucket="publish-bucket", key="5065/files/a b.txt", version_id="v1")


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def store(s3_client) -> S3ObjectStore:
    return S3ObjectStore(s3_client, requester_pays=True)


async def test_copy_object_pins_version_and_pays(store, stubber):
    stubber.add_response(
        "copy_object",
        {},
        {
            "CopySource": ANY,
            "Bucket": "rehydration-bucket",
            "Key": "rehydrated/5065/2/files/a b.txt",
            "RequestPayer": "requester",
        },
    )

    await store.copy_object(SOURCE, "rehydration-bucket", "rehydrated/5065/2/files/a b.txt")


async def test_copy_object_wraps_client_errors(store, stubber):
    stubber.add_client_error("copy_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(TransportError, match="error copying"):
        await store.copy_object(SOURCE, "rehydration-bucket", "k")


async def test_multipart_primitives(store, stubber):
    stubber.add_response(
        "create_multipart_upload",
        {"UploadId": "upload-1"},
        {"Bucket": "dest", "Key": "k", "RequestPayer": "requester"},
    )
    stubber.add_response(
        "upload_part_copy",
        {"CopyPartResult": {"ETag": '"etag-1"'}},
        {
            "Bucket": "dest",
            "Key": "k",
            "CopySource": ANY,
            "CopySourceRange": "bytes=0-99",
            "PartNumber": 1,
            "UploadId": "upload-1",
            "RequestPayer": "requester",
        },
    )
    stubber.add_response(
        "complete_multipart_upload",
        {},
        {
            "Bucket": "dest",
            "Key": "k",
            "UploadId": "upload-1",
            "MultipartUpload": {"Parts": [{"ETag": '"etag-1"', "PartNumber": 1}]},
            "RequestPayer": "requester",
        },
    )

    upload_id = await store.create_multipart_upload("dest", "k")
    etag = await store.upload_part_copy(SOURCE, "dest", "k", upload_id, 1, "bytes=0-99")
    await store.complete_multipart_upload("dest", "k", upload_id, [CompletedPart(1, etag)])

    assert upload_id == "upload-1"
    assert etag == '"etag-1"'


async def test_list_under_prefix_follows_continuation(store, stubber):
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "p/a"}, {"Key": "p/b"}], "IsTruncated": True, "NextContinuationToken": "t1"},
        {"Bucket": "b", "Prefix": "p/", "RequestPayer": "requester"},
    )
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "p/c"}], "IsTruncated": False},
        {"Bucket": "b", "Prefix": "p/", "ContinuationToken": "t1", "RequestPayer": "requester"},
    )

    pages = [page async for page in store.list_under_prefix("b", "p/")]

    assert pages == [["p/a", "p/b"], ["p/c"]]


async def test_list_empty_prefix_yields_nothing(store, stubber):
    stubber.add_response(
        "list_objects_v2",
        {"KeyCount": 0, "IsTruncated": False},
        {"Bucket": "b", "Prefix": "p/", "RequestPayer": "requester"},
    )

    assert [page async for page in store.list_under_prefix("b", "p/")] == []


async def test_list_failure_on_a_later_page_is_a_transport_error(store, stubber):
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "p/a"}], "IsTruncated": True, "NextContinuationToken": "t1"},
        {"Bucket": "b", "Prefix": "p/", "RequestPayer": "requester"},
    )
    stubber.add_client_error("list_objects_v2", service_error_code="AccessDenied", http_status_code=403)
    pages = []

    with pytest.raises(TransportError, match="error listing objects in b under p/"):
        async for page in store.list_under_prefix("b", "p/"):
            pages.append(page)

    assert pages == [["p/a"]]


async def test_delete_batch_reports_per_object_errors(store, stubber):
    stubber.add_response(
        "delete_objects",
        {"Errors": [{"Key": "p/b", "Code": "AccessDenied", "Message": "Access Denied"}]},
        {
            "Bucket": "b",
            "Delete": {"Objects": [{"Key": "p/a"}, {"Key": "p/b"}], "Quiet": True},
            "RequestPayer": "requester",
        },
    )

    result = await store.delete_batch("b", ["p/a", "p/b"])

    assert result.deleted == 1
    assert [(e.key, e.code) for e in result.errors] == [("p/b", "AccessDenied")]


async def test_delete_batch_rejects_oversized_batches(store):
    with pytest.raises(ValueError):
        await store.delete_batch("b", [f"k{i}" for i in range(1001)])


async def test_delete_empty_batch_makes_no_call(store, stubber):
    result = await store.delete_batch("b", [])
    assert result.deleted == 0


async def test_requester_pays_can_be_disabled(s3_client):
    store = S3ObjectStore(s3_client, requester_pays=False)
    with Stubber(s3_client) as stub:
        stub.add_response("abort_multipart_upload", {}, {"Bucket": "b", "Key": "k", "UploadId": "u"})
        await store.abort_multipart_upload("b", "k", "u")
        stub.assert_no_pending_responses()
