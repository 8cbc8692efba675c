"""
Fan-out orchestrator.

Runs one content unit of a job across all of the job's target languages:
segments the document once, then dispatches one worker per language with
bounded parallelism and a minimum delay between dispatches. Languages are
independent; one language failing never stops another.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel, Field

from folio.core.errors import NonTranslatableError
from folio.core.events import EventBus, job_finished
from folio.core.models import ContentUnit, TranslationJob, TranslationStatus
from folio.i18n.segmenter import content_hash
from folio.pipeline.catalog import ContentCatalog
from folio.pipeline.retry import SleepFn
from folio.pipeline.store import JobStore, TranslationStore
from folio.pipeline.worker import LanguageWorker, WorkerOutcome
from folio.integrations.sentry import capture_exception

logger = logging.getLogger(__name__)


class UnitRunResult(BaseModel):
    """Per-language outcomes for one unit of a job."""

    job_id: str
    content_unit_id: str
    outcomes: dict[str, WorkerOutcome] = Field(default_factory=dict)
    error: str | None = None

    @property
    def completed(self) -> list[str]:
        return [lang for lang, o in self.outcomes.items() if o.status == TranslationStatus.COMPLETED]

    @property
    def failed(self) -> list[str]:
        return [lang for lang, o in self.outcomes.items() if o.status == TranslationStatus.FAILED]


class FanOutOrchestrator:
    """
    Usage:
        orchestrator = FanOutOrchestrator(catalog, store, jobs, worker)
        result = await orchestrator.run(job.id, unit)
    """

    def __init__(
        self,
        catalog: ContentCatalog,
        store: TranslationStore,
        jobs: JobStore,
        worker: LanguageWorker,
        max_parallel: int = 2,
        dispatch_delay: float = 0.7,
        sleep: SleepFn = asyncio.sleep,
        event_bus: EventBus | None = None,
    ):
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.catalog = catalog
        self.store = store
        self.jobs = jobs
        self.worker = worker
        self.max_parallel = max_parallel
        self.dispatch_delay = dispatch_delay
        self.sleep = sleep
        self.event_bus = event_bus

    async def run(
        self,
        job_id: str,
        unit: ContentUnit,
        languages: list[str] | None = None,
        retranslate: bool = False,
    ) -> UnitRunResult:
        job = await self.jobs.get(job_id)
        if job is None:
            raise ValueError(f"Job not found: {job_id}")
        languages = languages or job.target_languages
        result = UnitRunResult(job_id=job_id, content_unit_id=unit.id)

        try:
            segments = await self.catalog.segments(unit)
        except NonTranslatableError as e:
            logger.error("Unit %s is not translatable: %s", unit.id, e)
            result.error = str(e)
            await self.jobs.mark_non_translatable(job_id, unit.id, f"{unit.id}: {e}")
            await self._refresh(job_id)
            return result
        chash = content_hash(segments)

        pending: list[str] = []
        for language in languages:
            record = await self.store.get(unit.id, language)
            if record is not None and (retranslate or record.status == TranslationStatus.FAILED):
                await self.store.reset(unit.id, language, job_id=job_id)
            elif record is not None and record.status == TranslationStatus.COMPLETED:
                result.outcomes[language] = WorkerOutcome(
                    language=language, status=TranslationStatus.COMPLETED, skipped=True
                )
                await self.jobs.record_result(job_id, TranslationStatus.COMPLETED)
                continue
            else:
                await self.store.ensure_pending(unit.id, language, job_id)
            pending.append(language)

        await self._refresh(job_id)
        logger.info(
            "Fanning out %s to %d language(s): %s",
            unit.id, len(pending), ", ".join(pending) or "-",
        )

        semaphore = asyncio.Semaphore(self.max_parallel)

        async def run_one(language: str) -> WorkerOutcome:
            try:
                outcome = await self.worker.run(unit, language, segments, chash, job_id)
            except Exception as e:
                logger.exception("Worker crashed for %s/%s", unit.id, language)
                capture_exception(e, content_unit_id=unit.id, language=language, job_id=job_id)
                outcome = WorkerOutcome(
                    language=language,
                    status=TranslationStatus.FAILED,
                    error=f"{type(e).__name__}: {e}",
                    error_kind="unexpected",
                )
                record = await self.store.get(unit.id, language)
                if record is not None and not record.status.is_terminal:
                    await self.store.fail(record, outcome.error, kind="unexpected")
            finally:
                semaphore.release()

            result.outcomes[language] = outcome
            if not outcome.skipped:
                await self.jobs.record_result(job_id, outcome.status)
            await self._refresh(job_id)
            return outcome

        tasks: list[asyncio.Task] = []
        for index, language in enumerate(pending):
            if index:
                await self.sleep(self.dispatch_delay)
            await semaphore.acquire()
            tasks.append(asyncio.create_task(run_one(language), name=f"{unit.id}:{language}"))

        await asyncio.gather(*tasks)

        logger.info(
            "Unit %s done: %d completed, %d failed",
            unit.id, len(result.completed), len(result.failed),
        )
        return result

    async def _refresh(self, job_id: str) -> TranslationJob | None:
        before = await self.jobs.get(job_id)
        job = await self.jobs.refresh(job_id)
        if job and job.is_finished and before and not before.is_finished:
            logger.info(
                "Job %s %s: %d completed, %d failed",
                job.id, job.status.value, job.completed_count, job.failed_count,
            )
            if self.event_bus:
                await self.event_bus.publish(job_finished(
                    job.id, job.status.value,
                    completed=job.completed_count,
                    failed=job.failed_count,
                ))
        return job
