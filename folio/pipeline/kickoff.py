"""
Job kickoff: the boundary between callers and detached work.

Kickoff validates its input, creates the job, hands orchestration to the
BackgroundRunner and returns an acknowledgement at once. Callers learn the
outcome later by polling the store; they never hold the work open.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel, Field

from folio.config import Settings, get_settings
from folio.core.errors import KickoffValidationError, NotFoundError
from folio.core.models import ContentUnit, TranslationJob, TranslationStatus
from folio.i18n.languages import normalize_language_code, unsupported_languages
from folio.pipeline.background import BackgroundRunner
from folio.pipeline.catalog import ContentCatalog
from folio.pipeline.orchestrator import FanOutOrchestrator
from folio.pipeline.retry import SleepFn
from folio.pipeline.store import JobStore, TranslationStore

logger = logging.getLogger(__name__)


class KickoffAck(BaseModel):
    """Returned before any translation work starts."""

    accepted: bool
    job_id: str | None = None
    book_id: str | None = None
    content_unit_ids: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    message: str = ""

    @property
    def units(self) -> int:
        return len(self.content_unit_ids)


class JobKickoff:
    """
    Usage:
        ack = await kickoff.kickoff_unit("unit_1", ["en", "es"])
        ack.job_id   # poll the job or the unit's records with this
    """

    def __init__(
        self,
        catalog: ContentCatalog,
        store: TranslationStore,
        jobs: JobStore,
        orchestrator: FanOutOrchestrator,
        runner: BackgroundRunner,
        settings: Settings | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.catalog = catalog
        self.store = store
        self.jobs = jobs
        self.orchestrator = orchestrator
        self.runner = runner
        self.settings = settings or get_settings()
        self.sleep = sleep

    def validate_languages(self, languages: list[str] | None) -> list[str]:
        """
        Normalize and de-duplicate requested languages, keeping order.

        Raises:
            KickoffValidationError: empty list or unsupported codes
        """
        if languages is None:
            languages = self.settings.default_target_languages_list
        codes: list[str] = []
        for language in languages:
            code = normalize_language_code(language)
            if code and code not in codes:
                codes.append(code)
        if not codes:
            raise KickoffValidationError("At least one target language is required")
        unsupported = unsupported_languages(codes)
        if unsupported:
            raise KickoffValidationError(f"Unsupported language(s): {', '.join(unsupported)}")
        return codes

    # =========================================================================
    # Single unit
    # =========================================================================

    async def kickoff_unit(
        self,
        content_unit_id: str,
        languages: list[str] | None,
        retranslate: bool = False,
    ) -> KickoffAck:
        """
        Start translating one unit into `languages`.

        Raises:
            KickoffValidationError: unsupported or missing languages
            NotFoundError: unknown content unit
        """
        codes = self.validate_languages(languages)
        unit = await self.catalog.get_unit(content_unit_id)
        if unit is None:
            raise NotFoundError(f"Content unit not found: {content_unit_id}")

        job = await self.jobs.create(TranslationJob(
            book_id=unit.book_id,
            content_unit_ids=[unit.id],
            target_languages=codes,
        ))
        self.runner.submit(
            self.orchestrator.run(job.id, unit, codes, retranslate=retranslate),
            name=f"translate:{unit.id}",
        )
        logger.info("Kicked off %s into %s (job %s)", unit.id, ", ".join(codes), job.id)
        return KickoffAck(
            accepted=True,
            job_id=job.id,
            book_id=unit.book_id,
            content_unit_ids=[unit.id],
            languages=codes,
            message="Translation started",
        )

    # =========================================================================
    # Bulk
    # =========================================================================

    async def incomplete_units(self, book_id: str, languages: list[str]) -> list[ContentUnit]:
        """Units of a book not yet completed in every requested language."""
        incomplete: list[ContentUnit] = []
        for unit in await self.catalog.list_units(book_id):
            records = {r.language: r for r in await self.store.list_for_unit(unit.id)}
            done = all(
                lang in records and records[lang].status == TranslationStatus.COMPLETED
                for lang in languages
            )
            if not done:
                incomplete.append(unit)
        return incomplete

    async def kickoff_book(self, book_id: str, languages: list[str] | None = None) -> KickoffAck:
        """
        Start translating every incomplete unit of a book.

        Units are started one after another in chapter order, spaced by
        settings.bulk_unit_delay, each in its own detached task.

        Raises:
            KickoffValidationError: unsupported languages
            NotFoundError: unknown book
        """
        codes = self.validate_languages(languages)
        book = await self.catalog.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book not found: {book_id}")

        units = await self.incomplete_units(book_id, codes)
        if not units:
            logger.info("Book %s already translated into %s", book_id, ", ".join(codes))
            return KickoffAck(
                accepted=True,
                book_id=book_id,
                languages=codes,
                message="All chapters already translated",
            )

        job = await self.jobs.create(TranslationJob(
            book_id=book_id,
            content_unit_ids=[u.id for u in units],
            target_languages=codes,
        ))
        self.runner.submit(self._run_units(job.id, units, codes), name=f"translate-book:{book_id}")
        logger.info("Kicked off %d chapter(s) of %s (job %s)", len(units), book_id, job.id)
        return KickoffAck(
            accepted=True,
            job_id=job.id,
            book_id=book_id,
            content_unit_ids=[u.id for u in units],
            languages=codes,
            message=f"Translation started for {len(units)} chapter(s)",
        )

    async def _run_units(self, job_id: str, units: list[ContentUnit], languages: list[str]) -> None:
        for index, unit in enumerate(units):
            if index:
                await self.sleep(self.settings.bulk_unit_delay)
            self.runner.submit(
                self.orchestrator.run(job_id, unit, languages),
                name=f"translate:{unit.id}",
            )

    async def kickoff_books(
        self,
        book_ids: list[str],
        languages: list[str] | None = None,
    ) -> list[KickoffAck]:
        """
        Kick off several books in order.

        Books with nothing left to translate are skipped and unknown books
        are reported; neither stops the batch.
        """
        codes = self.validate_languages(languages)
        results: list[KickoffAck] = []
        for book_id in book_ids:
            try:
                results.append(await self.kickoff_book(book_id, codes))
            except NotFoundError as e:
                logger.warning("Skipping %s: %s", book_id, e)
                results.append(KickoffAck(accepted=False, book_id=book_id, message=str(e)))
        return results
