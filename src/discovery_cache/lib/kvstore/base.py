"""Abstract durable key-value store interface and an in-memory implementation.

Values are small JSON-serializable structures (dicts, lists, scalars).  A
stored value that cannot be decoded is reported as absent, never raised.
"""

import copy
import json
from abc import ABC, abstractmethod
from typing import Any


class KeyValueStore(ABC):
    """Async get/set/delete of JSON-serializable values, persisted per device."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if absent or unreadable."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    async def delete_many(self, keys: list[str]) -> None:
        for key in keys:
            await self.delete(key)

    async def close(self) -> None:  # noqa: B027
        """Release underlying resources.  No-op by default."""


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store; values round-trip through JSON to match disk semantics."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._items.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    async def set(self, key: str, value: Any) -> None:
        self._items[key] = json.dumps(value)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def put_raw(self, key: str, raw: str) -> None:
        """Store an undecoded payload, bypassing serialization."""
        self._items[key] = raw

    def snapshot(self) -> dict[str, Any]:
        """Decoded copy of every readable entry."""
        result: dict[str, Any] = {}
        for key, raw in self._items.items():
            try:
                result[key] = copy.deepcopy(json.loads(raw))
            except json.JSONDecodeError:
                continue
        return result
