"""
Content catalog: books, their content units, and cached segmentation.

Source documents are authored elsewhere; the pipeline only reads them.
"""

from __future__ import annotations

import logging

from folio.core.models import Book, ContentUnit, StructuralSegment
from folio.i18n.segmenter import segment_document
from folio.storage.base import Collections, StorageProvider

logger = logging.getLogger(__name__)

SEGMENT_CACHE_TTL = 24 * 60 * 60


class ContentCatalog:
    """Read access to books and content units, plus a segmentation cache."""

    def __init__(self, storage: StorageProvider):
        self.storage = storage

    # =========================================================================
    # Books
    # =========================================================================

    async def add_book(self, book: Book) -> Book:
        await self.storage.metadata.save(Collections.BOOKS, book.id, book.model_dump(mode="json"))
        return book

    async def get_book(self, book_id: str) -> Book | None:
        data = await self.storage.metadata.get(Collections.BOOKS, book_id)
        return Book(**data) if data else None

    # =========================================================================
    # Content units
    # =========================================================================

    async def add_unit(self, unit: ContentUnit) -> ContentUnit:
        await self.storage.metadata.save(
            Collections.CONTENT_UNITS, unit.id, unit.model_dump(mode="json")
        )
        return unit

    async def get_unit(self, unit_id: str) -> ContentUnit | None:
        data = await self.storage.metadata.get(Collections.CONTENT_UNITS, unit_id)
        return ContentUnit(**data) if data else None

    async def list_units(self, book_id: str, limit: int = 10000) -> list[ContentUnit]:
        """Units of a book in chapter order."""
        docs = await self.storage.metadata.query(
            Collections.CONTENT_UNITS, filters={"book_id": book_id}, limit=limit
        )
        return sorted((ContentUnit(**doc) for doc in docs), key=lambda u: (u.number, u.id))

    # =========================================================================
    # Segmentation
    # =========================================================================

    async def segments(self, unit: ContentUnit) -> list[StructuralSegment]:
        """
        Segment a unit's document, cached per (unit, revision).

        Raises:
            NonTranslatableError: the document has no translatable text
        """
        cache_key = f"segments:{unit.id}:{unit.revision}"
        cached = await self.storage.cache.get(cache_key)
        if cached is not None:
            return [StructuralSegment(**s) for s in cached]

        segments = segment_document(unit.document)
        await self.storage.cache.set(
            cache_key, [s.model_dump() for s in segments], ttl=SEGMENT_CACHE_TTL
        )
        logger.debug("Segmented %s r%d into %d segments", unit.id, unit.revision, len(segments))
        return segments
