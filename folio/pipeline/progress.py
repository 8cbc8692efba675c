"""
Progress aggregation.

Read-only rollups over the store for dashboards and polling clients.
Nothing here writes.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from folio.config import Settings, get_settings
from folio.core.errors import NotFoundError
from folio.core.models import JobStatus, TranslationJob, TranslationStatus
from folio.pipeline.budget import BudgetLedger
from folio.pipeline.catalog import ContentCatalog
from folio.pipeline.store import JobStore, MetricsStore, TranslationStore

logger = logging.getLogger(__name__)


class LanguageProgress(BaseModel):
    language: str
    completed: int = 0
    failed: int = 0
    processing: int = 0
    pending: int = 0
    not_started: int = 0


class UnitFailure(BaseModel):
    content_unit_id: str
    language: str
    error: str | None = None
    error_kind: str | None = None


class BookProgress(BaseModel):
    book_id: str
    title: str = ""
    languages: list[str] = Field(default_factory=list)
    total_units: int = 0
    completed_units: int = 0  # Completed in every requested language
    progress: float = 0.0  # completed_units / total_units, 0..1
    by_language: dict[str, LanguageProgress] = Field(default_factory=dict)
    failures: list[UnitFailure] = Field(default_factory=list)


class GlobalStats(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    processing: int = 0
    pending: int = 0
    success_rate: float = 0.0  # completed / (completed + failed), percent
    avg_duration_seconds: float = 0.0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    cache_hits: int = 0


class JobSummary(BaseModel):
    job_id: str
    book_id: str | None = None
    status: JobStatus
    total: int = 0
    completed: int = 0
    failed: int = 0
    progress: float = 0.0
    target_languages: list[str] = Field(default_factory=list)
    content_unit_ids: list[str] = Field(default_factory=list)
    error: str | None = None
    failures: list[UnitFailure] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ProgressAggregator:
    """
    Usage:
        progress = ProgressAggregator(catalog, store, jobs, metrics, ledger)
        await progress.book_progress("book_1")
        await progress.dashboard()
    """

    def __init__(
        self,
        catalog: ContentCatalog,
        store: TranslationStore,
        jobs: JobStore,
        metrics: MetricsStore,
        ledger: BudgetLedger,
        settings: Settings | None = None,
    ):
        self.catalog = catalog
        self.store = store
        self.jobs = jobs
        self.metrics = metrics
        self.ledger = ledger
        self.settings = settings or get_settings()

    async def book_progress(self, book_id: str, languages: list[str] | None = None) -> BookProgress:
        book = await self.catalog.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book not found: {book_id}")
        languages = languages or self.settings.default_target_languages_list
        units = await self.catalog.list_units(book_id)

        by_language = {lang: LanguageProgress(language=lang) for lang in languages}
        failures: list[UnitFailure] = []
        completed_units = 0

        for unit in units:
            records = {r.language: r for r in await self.store.list_for_unit(unit.id)}
            unit_done = True
            for lang in languages:
                counts = by_language[lang]
                record = records.get(lang)
                if record is None:
                    counts.not_started += 1
                    unit_done = False
                    continue
                if record.status == TranslationStatus.COMPLETED:
                    counts.completed += 1
                    continue
                unit_done = False
                if record.status == TranslationStatus.FAILED:
                    counts.failed += 1
                    failures.append(UnitFailure(
                        content_unit_id=unit.id,
                        language=lang,
                        error=record.error,
                        error_kind=record.error_kind,
                    ))
                elif record.status == TranslationStatus.PROCESSING:
                    counts.processing += 1
                else:
                    counts.pending += 1
            if unit_done:
                completed_units += 1

        return BookProgress(
            book_id=book.id,
            title=book.title,
            languages=languages,
            total_units=len(units),
            completed_units=completed_units,
            progress=completed_units / len(units) if units else 0.0,
            by_language=by_language,
            failures=failures,
        )

    async def global_stats(self) -> GlobalStats:
        records = await self.store.list_all()
        stats = GlobalStats(total=len(records))

        durations: list[float] = []
        for record in records:
            if record.status == TranslationStatus.COMPLETED:
                stats.completed += 1
            elif record.status == TranslationStatus.FAILED:
                stats.failed += 1
            elif record.status == TranslationStatus.PROCESSING:
                stats.processing += 1
            else:
                stats.pending += 1

            if record.usage is not None:
                stats.total_tokens += record.usage.total_tokens
                stats.total_cost_usd += record.usage.cost_usd
                if record.usage.cache_hit:
                    stats.cache_hits += 1

            duration = record.duration_seconds
            if record.status == TranslationStatus.COMPLETED and duration is not None:
                durations.append(duration)

        resolved = stats.completed + stats.failed
        stats.success_rate = stats.completed / resolved * 100 if resolved else 0.0
        stats.avg_duration_seconds = sum(durations) / len(durations) if durations else 0.0
        return stats

    async def job_summary(self, job_id: str) -> JobSummary:
        job = await self.jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return await self._summarize(job)

    async def _summarize(self, job: TranslationJob) -> JobSummary:
        failures: list[UnitFailure] = []
        for unit_id in job.content_unit_ids:
            if unit_id in job.non_translatable_unit_ids:
                failures.extend(
                    UnitFailure(content_unit_id=unit_id, language=lang, error=job.error,
                                error_kind="non_translatable")
                    for lang in job.target_languages
                )
                continue
            for lang in job.target_languages:
                record = await self.store.get(unit_id, lang)
                if record is not None and record.status == TranslationStatus.FAILED:
                    failures.append(UnitFailure(
                        content_unit_id=unit_id,
                        language=lang,
                        error=record.error,
                        error_kind=record.error_kind,
                    ))

        return JobSummary(
            job_id=job.id,
            book_id=job.book_id,
            status=job.status,
            total=job.total_units,
            completed=job.completed_count,
            failed=job.failed_count,
            progress=job.resolved_count / job.total_units if job.total_units else 0.0,
            target_languages=job.target_languages,
            content_unit_ids=job.content_unit_ids,
            error=job.error,
            failures=failures,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )

    async def active_jobs(self) -> list[JobSummary]:
        jobs = [
            *await self.jobs.list(status=JobStatus.PROCESSING),
            *await self.jobs.list(status=JobStatus.PENDING),
        ]
        return [await self._summarize(job) for job in jobs]

    async def dashboard(self) -> dict[str, Any]:
        period = await self.ledger.current_period()
        metrics = await self.metrics.recent(hours=24)
        return {
            "stats": (await self.global_stats()).model_dump(),
            "budget": period.snapshot(),
            "active_jobs": [j.model_dump(mode="json") for j in await self.active_jobs()],
            "last_24h": {
                "runs": len(metrics),
                "failed": sum(1 for m in metrics if m.status == TranslationStatus.FAILED),
                "tokens": sum(m.tokens_used for m in metrics),
                "cost_usd": sum(m.cost_usd for m in metrics),
                "retries": sum(m.retries for m in metrics),
            },
            "alerts": [a.model_dump(mode="json") for a in await self.ledger.list_alerts()],
        }
