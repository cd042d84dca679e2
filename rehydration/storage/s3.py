"""S3 object store backed by boto3.

boto3 clients are thread-safe; one client is shared per process and every
blocking call runs on the default executor via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from functools import partial
from typing import TYPE_CHECKING, Any

import boto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from rehydration.errors import TransportError
from rehydration.storage.base import (
    MAX_DELETE_BATCH,
    CompletedPart,
    DeleteBatchResult,
    DeleteObjectError,
    ObjectStore,
)
from rehydration.utils.paths import CopySource

if TYPE_CHECKING:
    from rehydration.config import StorageConfig

logger = structlog.get_logger()


def create_s3_client(config: "StorageConfig"):
    """Create a boto3 S3 client from storage configuration."""
    session = boto3.Session(region_name=config.region)
    return session.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        config=BotoConfig(
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            max_pool_connections=config.max_pool_connections,
            retries={"max_attempts": 5, "mode": "standard"},
        ),
    )


class S3ObjectStore(ObjectStore):
    """ObjectStore over the S3 API."""

    def __init__(
        self,
        client: Any,
        *,
        requester_pays: bool = True,
    ) -> None:
        self._client = client
        self._requester_pays = requester_pays
        self._log = logger.bind(component="s3_store")

    @classmethod
    def from_config(cls, storage: "StorageConfig") -> "S3ObjectStore":
        return cls(create_s3_client(storage), requester_pays=storage.requester_pays)

    def _payer(self) -> dict[str, str]:
        return {"RequestPayer": "requester"} if self._requester_pays else {}

    async def _call(self, operation: str, description: str, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(partial(method, **kwargs))
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"{description}: {e}") from e

    async def copy_object(self, source: CopySource, dest_bucket: str, dest_key: str) -> None:
        await self._call(
            "copy_object",
            f"error copying {source} to {dest_bucket}/{dest_key}",
            CopySource=source.as_boto(),
            Bucket=dest_bucket,
            Key=dest_key,
            **self._payer(),
        )

    async def create_multipart_upload(self, bucket: str, key: str) -> str:
        out = await self._call(
            "create_multipart_upload",
            f"error starting multipart upload of {bucket}/{key}",
            Bucket=bucket,
            Key=key,
            **self._payer(),
        )
        upload_id = out.get("UploadId")
        if not upload_id:
            raise TransportError(f"no upload id returned for multipart upload of {bucket}/{key}")
        return upload_id

    async def upload_part_copy(
        self,
        source: CopySource,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        byte_range: str,
    ) -> str:
        out = await self._call(
            "upload_part_copy",
            f"error copying part {part_number} ({byte_range}) to {bucket}/{key}",
            Bucket=bucket,
            Key=key,
            CopySource=source.as_boto(),
            CopySourceRange=byte_range,
            PartNumber=part_number,
            UploadId=upload_id,
            **self._payer(),
        )
        return out["CopyPartResult"]["ETag"]

    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: list[CompletedPart],
    ) -> None:
        await self._call(
            "complete_multipart_upload",
            f"error completing multipart upload of {bucket}/{key}",
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [{"ETag": p.etag, "PartNumber": p.part_number} for p in parts]
            },
            **self._payer(),
        )

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        await self._call(
            "abort_multipart_upload",
            f"error aborting multipart upload {upload_id} of {bucket}/{key}",
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            **self._payer(),
        )

    async def list_under_prefix(self, bucket: str, prefix: str) -> AsyncIterator[list[str]]:
        paginator = self._client.get_paginator("list_objects_v2")
        pages = iter(paginator.paginate(Bucket=bucket, Prefix=prefix, **self._payer()))
        while True:
            # Each page is one request; fetch it off the event loop
            try:
                page = await asyncio.to_thread(next, pages, None)
            except (ClientError, BotoCoreError) as e:
                raise TransportError(f"error listing objects in {bucket} under {prefix}: {e}") from e
            if page is None:
                return
            keys = [obj["Key"] for obj in page.get("Contents", [])]
            if keys:
                yield keys

    async def delete_batch(self, bucket: str, keys: list[str]) -> DeleteBatchResult:
        if len(keys) > MAX_DELETE_BATCH:
            raise ValueError(f"at most {MAX_DELETE_BATCH} keys per delete, got {len(keys)}")
        if not keys:
            return DeleteBatchResult()

        out = await self._call(
            "delete_objects",
            f"error deleting {len(keys)} objects from {bucket}",
            Bucket=bucket,
            Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
            **self._payer(),
        )
        errors = [
            DeleteObjectError(
                key=err.get("Key", ""),
                code=err.get("Code", ""),
                message=err.get("Message", ""),
            )
            for err in out.get("Errors", [])
        ]
        return DeleteBatchResult(deleted=len(keys) - len(errors), errors=errors)
