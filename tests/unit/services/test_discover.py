"""Unit tests for DiscoverClient using httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

from rehydration.errors import DiscoverError
from rehydration.config import DiscoverConfig
from rehydration.services.discover import DiscoverClient, create_http_client

HOST = "https://api.pennsieve.test"


def _client(handler) -> DiscoverClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DiscoverClient(http, host=HOST + "/")


async def test_get_dataset_by_version():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(
            200,
            json={"id": 5065, "version": 2, "name": "Brain atlas", "uri": "s3://publish-bucket/5065/", "extra": 1},
        )

    summary = await _client(handler).get_dataset_by_version(5065, 2)

    assert seen == [f"{HOST}/discover/datasets/5065/versions/2"]
    assert summary.uri == "s3://publish-bucket/5065/"
    assert summary.name == "Brain atlas"


async def test_get_dataset_metadata_by_version():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/discover/datasets/5065/versions/2/metadata"
        return httpx.Response(
            200,
            json={
                "files": [
                    {"path": "files/a.txt", "name": "a.txt", "size": 12, "fileType": "Text"},
                    {"path": "files/b.nii", "name": "b.nii", "size": 1024, "fileType": "NIFTI"},
                ]
            },
        )

    metadata = await _client(handler).get_dataset_metadata_by_version(5065, 2)

    assert [(f.path, f.size, f.file_type) for f in metadata.files] == [
        ("files/a.txt", 12, "Text"),
        ("files/b.nii", 1024, "NIFTI"),
    ]


async def test_get_dataset_file_by_version_escapes_path():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/discover/datasets/5065/versions/2/files"
        assert request.url.params["path"] == "files/a b&c.txt"
        return httpx.Response(
            200,
            json={
                "name": "a b&c.txt",
                "path": "files/a b&c.txt",
                "size": 3,
                "fileType": "Text",
                "uri": "s3://publish-bucket/5065/files/a b&c.txt",
                "s3VersionId": "3HL4kqtJlcpXroDTDmJ.rmSpXd3dIbrHY",
            },
        )

    file = await _client(handler).get_dataset_file_by_version(5065, 2, "files/a b&c.txt")

    assert file.uri == "s3://publish-bucket/5065/files/a b&c.txt"
    assert file.s3_version_id == "3HL4kqtJlcpXroDTDmJ.rmSpXd3dIbrHY"


async def test_non_success_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="dataset not found")

    with pytest.raises(DiscoverError) as exc_info:
        await _client(handler).get_dataset_by_version(1, 1)

    assert exc_info.value.status == 404
    assert "dataset not found" in exc_info.value.message


async def test_malformed_body_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"name": "no uri"})

    with pytest.raises(DiscoverError, match="unexpected response"):
        await _client(handler).get_dataset_by_version(1, 1)


async def test_connection_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DiscoverError, match="connection refused") as exc_info:
        await _client(handler).get_dataset_metadata_by_version(1, 1)

    assert exc_info.value.status is None


async def test_create_http_client_uses_configured_timeout():
    async with create_http_client(DiscoverConfig(timeout_seconds=12.5)) as http:
        assert http.timeout == httpx.Timeout(12.5)
        assert http.follow_redirects

    assert http.is_closed
