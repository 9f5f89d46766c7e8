"""Disk-backed key-value store using diskcache.

Values are stored as JSON text so a store written by one version of the
engine stays readable (or at worst reads as a miss) in another.
"""

import asyncio
import json
from typing import Any

import diskcache
from loguru import logger

from discovery_cache.lib.kvstore.base import KeyValueStore


class DiskKeyValueStore(KeyValueStore):
    """Persistent per-device store rooted at a directory.

    diskcache is synchronous; every call is pushed to a worker thread so the
    event loop is never blocked on disk I/O.
    """

    def __init__(self, directory: str, size_limit: int = 2**26) -> None:
        self._directory = directory
        self._cache = diskcache.Cache(directory, size_limit=size_limit)

    @property
    def directory(self) -> str:
        return self._directory

    async def get(self, key: str) -> Any | None:
        raw = await asyncio.to_thread(self._cache.get, key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Discarding unreadable value for {key!r}: {e}")
            return None

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        await asyncio.to_thread(self._cache.set, key, payload)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._cache.delete, key)

    async def close(self) -> None:
        await asyncio.to_thread(self._cache.close)
