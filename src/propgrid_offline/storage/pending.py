from __future__ import annotations

import json
import logging
from typing import Any, Optional

from propgrid_offline.core.errors import CacheStorageError
from propgrid_offline.core.models import Response
from propgrid_offline.storage.cache_storage import CacheStorage

logger = logging.getLogger(__name__)


class PendingSubmissionStore:
    """
    Holds at most one form submission awaiting background sync.

    The payload lives in the dynamic generation under a reserved URL, so it is dropped
    together with that generation when a newer worker version activates.
    """

    def __init__(self, storage: CacheStorage, *, cache_name: str, key_url: str) -> None:
        self._storage = storage
        self._cache_name = cache_name
        self._key_url = key_url

    @property
    def key_url(self) -> str:
        return self._key_url

    async def save(self, payload: Any) -> None:
        cache = await self._storage.open(self._cache_name)
        response = Response.synthetic(json.dumps(payload), content_type="application/json")
        await cache.put(self._key_url, response)
        logger.info("Pending form submission stored. cache=%s", self._cache_name)

    async def load(self) -> Optional[Any]:
        try:
            response = await self._storage.match(self._key_url, generations=[self._cache_name])
            return response.json() if response is not None else None
        except (CacheStorageError, ValueError):
            logger.exception("Error reading pending form submission. cache=%s", self._cache_name)
            return None

    async def clear(self) -> None:
        try:
            await self._storage.generation(self._cache_name).delete(self._key_url)
        except CacheStorageError:
            logger.exception("Error clearing pending form submission. cache=%s", self._cache_name)
