"""
Local storage implementations for development and tests.

These are in-memory implementations that work without any external
services. A single asyncio.Lock serialises writes so conditional updates
and increments behave atomically within one event loop.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any

from folio.storage.base import (
    CacheStorage,
    MetadataStorage,
    StorageProvider,
)


# =============================================================================
# In-Memory Metadata Storage
# =============================================================================


class InMemoryMetadataStorage(MetadataStorage):
    """In-memory document storage for development."""

    def __init__(self):
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _stamp(self, id: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            **copy.deepcopy(data),
            "_id": id,
            "_updated_at": datetime.now(timezone.utc).isoformat(),
        }

    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        async with self._lock:
            self._data.setdefault(collection, {})[id] = self._stamp(id, data)

    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        doc = self._data.get(collection, {}).get(id)
        return copy.deepcopy(doc) if doc is not None else None

    async def delete(self, collection: str, id: str) -> bool:
        async with self._lock:
            if collection in self._data and id in self._data[collection]:
                del self._data[collection][id]
                return True
            return False

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        if collection not in self._data:
            return []

        results = list(self._data[collection].values())

        # Apply filters
        if filters:
            results = [
                doc for doc in results
                if all(doc.get(key) == value for key, value in filters.items())
            ]

        # Apply pagination
        return copy.deepcopy(results[offset:offset + limit])

    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        async with self._lock:
            if collection in self._data and id in self._data[collection]:
                self._data[collection][id].update(copy.deepcopy(updates))
                self._data[collection][id]["_updated_at"] = datetime.now(timezone.utc).isoformat()
                return True
            return False

    async def update_where(
        self,
        collection: str,
        id: str,
        expected: dict[str, Any] | None,
        data: dict[str, Any],
    ) -> bool:
        async with self._lock:
            current = self._data.get(collection, {}).get(id)
            if expected is None:
                if current is not None:
                    return False
            elif current is None:
                return False
            elif any(current.get(key) != value for key, value in expected.items()):
                return False
            self._data.setdefault(collection, {})[id] = self._stamp(id, data)
            return True

    async def increment(
        self,
        collection: str,
        id: str,
        field: str,
        amount: float,
    ) -> float:
        async with self._lock:
            doc = self._data.get(collection, {}).get(id)
            if doc is None:
                raise KeyError(f"{collection}/{id} not found")
            doc[field] = (doc.get(field) or 0) + amount
            doc["_updated_at"] = datetime.now(timezone.utc).isoformat()
            return doc[field]


# =============================================================================
# In-Memory Cache Storage
# =============================================================================


class InMemoryCacheStorage(CacheStorage):
    """In-memory cache for development."""

    def __init__(self):
        self._cache: dict[str, tuple[Any, float | None]] = {}

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = None
        if ttl:
            expires_at = datetime.now(timezone.utc).timestamp() + ttl
        self._cache[key] = (value, expires_at)

    async def get(self, key: str) -> Any | None:
        if key not in self._cache:
            return None

        value, expires_at = self._cache[key]
        if expires_at and datetime.now(timezone.utc).timestamp() > expires_at:
            del self._cache[key]
            return None

        return value

    async def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            return True
        return False

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None


# =============================================================================
# Factory
# =============================================================================


def create_local_storage() -> StorageProvider:
    """Create a StorageProvider with local implementations."""
    return StorageProvider(
        metadata=InMemoryMetadataStorage(),
        cache=InMemoryCacheStorage(),
    )
