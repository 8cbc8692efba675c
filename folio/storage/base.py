"""
Storage abstraction layer.

All persistence goes through these interfaces. This allows swapping
implementations (in-memory → PostgreSQL, dict cache → Redis)
without changing pipeline code.

Every pipeline mutation is a single-key write: an upsert keyed by
(content unit, language), a conditional update on one document, or an
atomic increment on one field. No operation locks more than one row.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


# =============================================================================
# Storage Interfaces
# =============================================================================


class MetadataStorage(ABC):
    """
    Storage for structured data (content units, translation records, jobs, budgets).

    Production Implementation: PostgreSQL
    Local Implementation: in-memory
    """

    @abstractmethod
    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """Save (upsert) a document to a collection."""
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        """Get a document by ID."""
        pass

    @abstractmethod
    async def delete(self, collection: str, id: str) -> bool:
        """Delete a document."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Query documents with optional equality filters."""
        pass

    @abstractmethod
    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        """Partial update of a document."""
        pass

    @abstractmethod
    async def update_where(
        self,
        collection: str,
        id: str,
        expected: dict[str, Any] | None,
        data: dict[str, Any],
    ) -> bool:
        """
        Compare-and-set on one document.

        With `expected=None` the write is an insert that only succeeds when
        no document exists. Otherwise the document must exist and its
        current fields must equal `expected`. Returns whether the write
        happened.
        """
        pass

    @abstractmethod
    async def increment(
        self,
        collection: str,
        id: str,
        field: str,
        amount: float,
    ) -> float:
        """Atomically add `amount` to a numeric field and return the new value."""
        pass


class CacheStorage(ABC):
    """
    Fast key-value cache for derived data (segmentation results).

    Production Implementation: Redis
    Local Implementation: In-memory dict
    """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        pass


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for all storage backends.

    Initialize once at app startup with appropriate implementations.
    Pipeline components receive this and use the interfaces without knowing
    the underlying implementation.
    """

    model_config = {"arbitrary_types_allowed": True}

    metadata: MetadataStorage
    cache: CacheStorage


# =============================================================================
# Collection Names (for MetadataStorage)
# =============================================================================


class Collections:
    """Standard collection/table names."""

    BOOKS = "books"
    CONTENT_UNITS = "content_units"
    TRANSLATIONS = "chapter_translations"
    JOBS = "translation_jobs"
    BUDGET_PERIODS = "translation_budget"
    BUDGET_ALERTS = "translation_alerts"
    METRICS = "translation_metrics"
