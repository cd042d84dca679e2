"""Copies one source object to its destination."""

from __future__ import annotations

import structlog

from rehydration.errors import CopyError
from rehydration.storage.base import ObjectStore
from rehydration.storage.multipart import MultipartCopier
from rehydration.rehydrator.units import DestinationObject, SourceObject

logger = structlog.get_logger()


class CopyProcessor:
    """Chooses simple copy or multipart copy by source size.

    Objects strictly smaller than ``threshold`` use a single CopyObject call.
    """

    def __init__(
        self,
        store: ObjectStore,
        multipart: MultipartCopier,
        threshold: int,
    ) -> None:
        self._store = store
        self._multipart = multipart
        self._threshold = threshold

    def uses_multipart(self, size: int) -> bool:
        return size >= self._threshold

    async def copy(self, src: SourceObject, dest: DestinationObject, log=None) -> None:
        """Copy ``src`` to ``dest``.

        Raises:
            CopyError: Naming the file, wrapping the underlying failure.
        """
        log = (log or logger).bind(file=src.name, path=src.path)
        try:
            source = src.copy_source
            if self.uses_multipart(src.size):
                await self._multipart.copy(source, src.size, dest.bucket, dest.key, log=log)
            else:
                await self._store.copy_object(source, dest.bucket, dest.key)
        except CopyError as e:
            raise CopyError(src.name, f"error copying {src.name}: {e.message}") from e
        except Exception as e:
            raise CopyError(src.name, f"error copying {src.name}: {e}") from e
