"""Discover service client.

Resolves a published dataset version to its source bucket, its file list,
and the versioned source object of each file.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from rehydration.errors import DiscoverError

if TYPE_CHECKING:
    from rehydration.config import DiscoverConfig

logger = structlog.get_logger()

_ResponseT = TypeVar("_ResponseT", bound=BaseModel)


class _DiscoverModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DatasetByVersion(_DiscoverModel):
    """Dataset version summary."""

    id: int | None = None
    version: int | None = None
    name: str = ""
    # Source location of the published dataset, s3://bucket/datasetId/
    uri: str


class DatasetFile(_DiscoverModel):
    path: str
    name: str
    size: int
    file_type: str = Field(default="", alias="fileType")


class DatasetMetadata(_DiscoverModel):
    files: list[DatasetFile] = Field(default_factory=list)


class DatasetFileByVersion(_DiscoverModel):
    """Versioned source object of one file."""

    name: str = ""
    path: str = ""
    size: int = 0
    file_type: str = Field(default="", alias="fileType")
    uri: str
    s3_version_id: str = Field(default="", alias="s3VersionId")


class DiscoverClient:
    """HTTP client for the discover API.

    Usage:
        client = DiscoverClient(http_client, host="https://api.pennsieve.net")
        metadata = await client.get_dataset_metadata_by_version(1234, 3)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        host: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._client = client
        self._host = host.rstrip("/")
        self._timeout = timeout_seconds
        self._log = logger.bind(component="discover_client", host=self._host)

    def _version_url(self, dataset_id: int, version_id: int) -> str:
        return f"{self._host}/discover/datasets/{dataset_id}/versions/{version_id}"

    async def get_dataset_by_version(self, dataset_id: int, version_id: int) -> DatasetByVersion:
        return await self._get(
            self._version_url(dataset_id, version_id),
            DatasetByVersion,
        )

    async def get_dataset_metadata_by_version(
        self, dataset_id: int, version_id: int
    ) -> DatasetMetadata:
        return await self._get(
            f"{self._version_url(dataset_id, version_id)}/metadata",
            DatasetMetadata,
        )

    async def get_dataset_file_by_version(
        self, dataset_id: int, version_id: int, path: str
    ) -> DatasetFileByVersion:
        return await self._get(
            f"{self._version_url(dataset_id, version_id)}/files",
            DatasetFileByVersion,
            params={"path": path},
        )

    async def _get(
        self,
        url: str,
        model: type[_ResponseT],
        params: dict[str, str] | None = None,
    ) -> _ResponseT:
        try:
            response = await self._client.get(url, params=params, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise DiscoverError(f"error calling {url}: {e}") from e

        if not response.is_success:
            self._log.warning(
                "discover.request.failed",
                url=url,
                params=params,
                status=response.status_code,
            )
            raise DiscoverError(
                f"{url} returned {response.status_code}: {response.text[:500]}",
                status=response.status_code,
            )

        try:
            return model.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise DiscoverError(
                f"unexpected response from {url}: {e}",
                status=response.status_code,
            ) from e


def create_http_client(config: "DiscoverConfig") -> httpx.AsyncClient:
    """HTTP client for one worker's discover calls. The caller closes it."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_seconds),
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        follow_redirects=True,
    )
