"""
Status & cache store.

Translation Records keyed by (content unit, language), Translation Jobs and
per-run metrics. The store is the single source of truth for whether a pair
is pending, processing, completed or failed; callers learn outcomes by
reading it.

Concurrency rules:
- a claim is a compare-and-set on the record's status and updated_at
- a fresh processing claim is a soft lock; a stale one can be taken over
- terminal writes are last-write-wins, except that a failure never
  overwrites a completed record
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from folio.core.models import (
    JobStatus,
    TranslatedSegment,
    TranslationJob,
    TranslationMetric,
    TranslationRecord,
    TranslationStatus,
    TranslationUsage,
)
from folio.core.utils import record_key, utc_now
from folio.storage.base import Collections, StorageProvider

logger = logging.getLogger(__name__)

QUERY_LIMIT = 100_000


def _dump(model) -> dict[str, Any]:
    return model.model_dump(mode="json")


# =============================================================================
# Translation Records
# =============================================================================


class TranslationStore:
    """
    Per-(unit, language) records.

    Usage:
        store = TranslationStore(storage)
        record = await store.claim("unit_1", "es", job_id="job_1")
        if record:
            ...
            await store.complete(record, segments, usage, content_hash)
    """

    def __init__(self, storage: StorageProvider, claim_timeout: float = 15 * 60):
        self.storage = storage
        self.claim_timeout = claim_timeout

    @property
    def _db(self):
        return self.storage.metadata

    async def _get_raw(self, unit_id: str, language: str) -> dict[str, Any] | None:
        return await self._db.get(Collections.TRANSLATIONS, record_key(unit_id, language))

    async def get(self, unit_id: str, language: str) -> TranslationRecord | None:
        data = await self._get_raw(unit_id, language)
        return TranslationRecord(**data) if data else None

    async def save(self, record: TranslationRecord) -> None:
        """Unconditional upsert."""
        await self._db.save(Collections.TRANSLATIONS, record.key, _dump(record))

    async def list_for_unit(self, unit_id: str) -> list[TranslationRecord]:
        docs = await self._db.query(
            Collections.TRANSLATIONS, filters={"content_unit_id": unit_id}, limit=QUERY_LIMIT
        )
        return sorted((TranslationRecord(**d) for d in docs), key=lambda r: r.language)

    async def list_all(self, status: TranslationStatus | None = None) -> list[TranslationRecord]:
        filters = {"status": status.value} if status else None
        docs = await self._db.query(Collections.TRANSLATIONS, filters=filters, limit=QUERY_LIMIT)
        return [TranslationRecord(**d) for d in docs]

    async def ensure_pending(
        self,
        unit_id: str,
        language: str,
        job_id: str | None = None,
    ) -> TranslationRecord:
        """Create a pending record for a newly requested pair; existing records are left alone."""
        record = TranslationRecord(content_unit_id=unit_id, language=language, job_id=job_id)
        if await self._db.update_where(Collections.TRANSLATIONS, record.key, None, _dump(record)):
            return record
        existing = await self.get(unit_id, language)
        return existing or record

    def is_stale(self, record: TranslationRecord, now: datetime | None = None) -> bool:
        now = now or utc_now()
        return (now - record.updated_at).total_seconds() > self.claim_timeout

    async def claim(
        self,
        unit_id: str,
        language: str,
        job_id: str | None = None,
    ) -> TranslationRecord | None:
        """
        Move a pair to processing for this worker.

        Returns None when the pair is already completed or another worker
        holds a fresh claim.
        """
        raw = await self._get_raw(unit_id, language)
        if raw is None:
            record = TranslationRecord(content_unit_id=unit_id, language=language)
            record.claim(job_id)
            if await self._db.update_where(Collections.TRANSLATIONS, record.key, None, _dump(record)):
                return record
            logger.debug("Lost creation race for %s", record.key)
            return None

        current = TranslationRecord(**raw)
        if current.status == TranslationStatus.COMPLETED:
            return None
        if current.status == TranslationStatus.PROCESSING and not self.is_stale(current):
            return None
        if current.status == TranslationStatus.PROCESSING:
            logger.warning("Taking over stale claim on %s (job %s)", current.key, current.job_id)

        expected = {"status": raw["status"], "updated_at": raw["updated_at"]}
        record = current.model_copy(deep=True)
        record.claim(job_id)
        if await self._db.update_where(Collections.TRANSLATIONS, record.key, expected, _dump(record)):
            return record
        logger.debug("Lost claim race for %s", record.key)
        return None

    async def record_attempt(self, record: TranslationRecord, attempt: int) -> None:
        """Persist the attempt counter while the claim is held."""
        record.attempts = attempt
        record.updated_at = utc_now()
        await self.save(record)

    async def complete(
        self,
        record: TranslationRecord,
        segments: list[TranslatedSegment],
        usage: TranslationUsage | None,
        content_hash: str | None,
    ) -> TranslationRecord:
        """Terminal success. Segments and status land in one write."""
        record.complete(segments, usage=usage, content_hash=content_hash)
        await self.save(record)
        return record

    async def fail(
        self,
        record: TranslationRecord,
        error: str,
        usage: TranslationUsage | None = None,
        kind: str | None = None,
    ) -> bool:
        """
        Terminal failure unless someone else already completed the pair.

        Returns whether the failure was written.
        """
        raw = await self._get_raw(record.content_unit_id, record.language)
        if raw is not None and raw.get("status") == TranslationStatus.COMPLETED.value:
            logger.info("Not overwriting completed %s with failure: %s", record.key, error)
            return False

        record.fail(error, usage=usage, kind=kind)
        if raw is None:
            return await self._db.update_where(
                Collections.TRANSLATIONS, record.key, None, _dump(record)
            )
        expected = {"status": raw["status"], "updated_at": raw["updated_at"]}
        written = await self._db.update_where(
            Collections.TRANSLATIONS, record.key, expected, _dump(record)
        )
        if not written:
            # Changed underneath us; retry once against the new state
            return await self.fail(record, error, usage=usage, kind=kind)
        return True

    async def reset(
        self,
        unit_id: str,
        language: str,
        count_retry: bool = False,
        job_id: str | None = None,
    ) -> TranslationRecord:
        """
        Explicitly return a pair to pending.

        The only way a completed or failed record goes back to pending.
        """
        record = await self.get(unit_id, language)
        if record is None:
            return await self.ensure_pending(unit_id, language, job_id)
        record.reset()
        record.job_id = job_id or record.job_id
        if count_retry:
            record.retry_count += 1
        await self.save(record)
        return record

    async def find_completed_by_hash(
        self,
        content_hash: str,
        language: str,
        exclude_unit_id: str | None = None,
    ) -> TranslationRecord | None:
        """A completed translation of identical content, if one exists."""
        docs = await self._db.query(
            Collections.TRANSLATIONS,
            filters={
                "content_hash": content_hash,
                "language": language,
                "status": TranslationStatus.COMPLETED.value,
            },
            limit=10,
        )
        for doc in docs:
            if doc.get("content_unit_id") != exclude_unit_id:
                return TranslationRecord(**doc)
        return None

    async def stuck_since(self, cutoff: datetime) -> list[TranslationRecord]:
        """Processing records not touched since `cutoff`."""
        records = await self.list_all(TranslationStatus.PROCESSING)
        return [r for r in records if r.updated_at < cutoff]


# =============================================================================
# Translation Jobs
# =============================================================================


class JobStore:
    """Translation Jobs and their counters."""

    def __init__(self, storage: StorageProvider, translations: TranslationStore):
        self.storage = storage
        self.translations = translations

    @property
    def _db(self):
        return self.storage.metadata

    async def create(self, job: TranslationJob) -> TranslationJob:
        if not job.total_units:
            job.total_units = len(job.content_unit_ids) * len(job.target_languages)
        await self._db.save(Collections.JOBS, job.id, _dump(job))
        logger.info(
            "Created job %s: %d unit(s) x %d language(s)",
            job.id, len(job.content_unit_ids), len(job.target_languages),
        )
        return job

    async def get(self, job_id: str) -> TranslationJob | None:
        data = await self._db.get(Collections.JOBS, job_id)
        return TranslationJob(**data) if data else None

    async def list(
        self,
        status: JobStatus | None = None,
        book_id: str | None = None,
        limit: int = 1000,
    ) -> list[TranslationJob]:
        filters: dict[str, Any] = {}
        if status:
            filters["status"] = status.value
        if book_id:
            filters["book_id"] = book_id
        docs = await self._db.query(Collections.JOBS, filters=filters or None, limit=QUERY_LIMIT)
        jobs = sorted((TranslationJob(**d) for d in docs), key=lambda j: j.started_at, reverse=True)
        return jobs[:limit]

    async def record_result(self, job_id: str, status: TranslationStatus, count: int = 1) -> None:
        """Bump the completed or failed counter as a child resolves."""
        if status == TranslationStatus.COMPLETED:
            field = "completed_count"
        elif status == TranslationStatus.FAILED:
            field = "failed_count"
        else:
            return
        await self._db.increment(Collections.JOBS, job_id, field, count)

    async def mark_non_translatable(self, job_id: str, unit_id: str, error: str) -> None:
        job = await self.get(job_id)
        if job is None:
            return
        if unit_id not in job.non_translatable_unit_ids:
            await self._db.update(Collections.JOBS, job_id, {
                "non_translatable_unit_ids": [*job.non_translatable_unit_ids, unit_id],
                "error": error,
            })
            await self.record_result(job_id, TranslationStatus.FAILED, len(job.target_languages))

    async def child_statuses(self, job: TranslationJob) -> list[TranslationStatus]:
        statuses: list[TranslationStatus] = []
        for unit_id in job.content_unit_ids:
            if unit_id in job.non_translatable_unit_ids:
                statuses.extend([TranslationStatus.FAILED] * len(job.target_languages))
                continue
            for language in job.target_languages:
                record = await self.translations.get(unit_id, language)
                statuses.append(record.status if record else TranslationStatus.PENDING)
        return statuses

    async def refresh(self, job_id: str) -> TranslationJob | None:
        """Re-derive the job status from its records and persist it."""
        job = await self.get(job_id)
        if job is None:
            return None

        status = TranslationJob.derive_status(await self.child_statuses(job))
        now = utc_now()
        updates: dict[str, Any] = {"status": status.value, "updated_at": now.isoformat()}
        if status in (JobStatus.COMPLETED, JobStatus.FAILED):
            updates["completed_at"] = (job.completed_at or now).isoformat()
        else:
            updates["completed_at"] = None
        await self._db.update(Collections.JOBS, job_id, updates)
        return await self.get(job_id)

    async def fail(self, job_id: str, error: str) -> None:
        now = utc_now().isoformat()
        await self._db.update(Collections.JOBS, job_id, {
            "status": JobStatus.FAILED.value,
            "error": error,
            "updated_at": now,
            "completed_at": now,
        })

    async def stale(self, cutoff: datetime) -> list[TranslationJob]:
        """Jobs still marked processing that started before `cutoff`."""
        jobs = await self.list(status=JobStatus.PROCESSING, limit=QUERY_LIMIT)
        return [j for j in jobs if j.started_at < cutoff]


# =============================================================================
# Metrics
# =============================================================================


class MetricsStore:
    """One row per resolved worker run."""

    def __init__(self, storage: StorageProvider):
        self.storage = storage

    async def record(self, metric: TranslationMetric) -> None:
        await self.storage.metadata.save(Collections.METRICS, metric.id, _dump(metric))

    async def list(self, since: datetime | None = None) -> list[TranslationMetric]:
        docs = await self.storage.metadata.query(Collections.METRICS, limit=QUERY_LIMIT)
        metrics = [TranslationMetric(**d) for d in docs]
        if since is not None:
            metrics = [m for m in metrics if m.created_at >= since]
        return sorted(metrics, key=lambda m: m.created_at)

    async def recent(self, hours: int = 24) -> list[TranslationMetric]:
        return await self.list(since=utc_now() - timedelta(hours=hours))
