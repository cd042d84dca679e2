"""Object storage."""

from rehydration.storage.base import (
    MAX_DELETE_BATCH,
    CompletedPart,
    DeleteBatchResult,
    DeleteObjectError,
    ObjectStore,
)
from rehydration.storage.cleaner import CleanResult, PrefixCleaner
from rehydration.storage.multipart import MultipartCopier, PartRange, plan_parts
from rehydration.storage.s3 import S3ObjectStore, create_s3_client

__all__ = [
    "MAX_DELETE_BATCH",
    "CleanResult",
    "CompletedPart",
    "DeleteBatchResult",
    "DeleteObjectError",
    "MultipartCopier",
    "ObjectStore",
    "PartRange",
    "PrefixCleaner",
    "S3ObjectStore",
    "create_s3_client",
    "plan_parts",
]
