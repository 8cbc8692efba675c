"""
Tests for the status & cache store: the record state machine, the soft
lock, and job status derivation.
"""

from datetime import timedelta

import pytest

from folio.core.models import (
    JobStatus,
    TranslatedSegment,
    TranslationJob,
    TranslationRecord,
    TranslationStatus,
    TranslationUsage,
)
from folio.pipeline.store import JobStore, TranslationStore


@pytest.fixture
def store(storage):
    return TranslationStore(storage, claim_timeout=900)


@pytest.fixture
def jobs(storage, store):
    return JobStore(storage, store)


SEGMENTS = [TranslatedSegment(id="a", html="<p>Hello</p>")]


# =============================================================================
# TranslationRecord state machine
# =============================================================================


class TestRecordModel:
    def test_transitions(self):
        record = TranslationRecord(content_unit_id="u1", language="es")
        assert record.status == TranslationStatus.PENDING
        assert record.key == "u1:es"

        record.claim("job_1")
        assert record.status == TranslationStatus.PROCESSING
        assert record.job_id == "job_1"

        record.complete(SEGMENTS, TranslationUsage(cost_usd=0.01), "hash")
        assert record.status == TranslationStatus.COMPLETED
        assert record.segments and record.error is None
        assert record.duration_seconds is not None

        record.reset()
        assert record.status == TranslationStatus.PENDING
        assert record.segments == []

    def test_failed_has_error_and_no_segments(self):
        record = TranslationRecord(content_unit_id="u1", language="es", segments=SEGMENTS)
        record.fail("boom", kind="fatal")

        assert record.status == TranslationStatus.FAILED
        assert record.segments == []
        assert record.error == "boom"
        assert record.error_kind == "fatal"


# =============================================================================
# Claims
# =============================================================================


class TestClaim:
    @pytest.mark.asyncio
    async def test_claim_creates_processing_record(self, store):
        record = await store.claim("u1", "es", job_id="job_1")

        assert record.status == TranslationStatus.PROCESSING
        stored = await store.get("u1", "es")
        assert stored.status == TranslationStatus.PROCESSING
        assert stored.job_id == "job_1"

    @pytest.mark.asyncio
    async def test_fresh_claim_is_a_soft_lock(self, store):
        assert await store.claim("u1", "es") is not None
        assert await store.claim("u1", "es") is None

    @pytest.mark.asyncio
    async def test_stale_claim_taken_over(self, store):
        record = await store.claim("u1", "es", job_id="job_old")
        record.updated_at = record.updated_at - timedelta(hours=1)
        await store.save(record)

        taken = await store.claim("u1", "es", job_id="job_new")

        assert taken is not None
        assert taken.job_id == "job_new"

    @pytest.mark.asyncio
    async def test_completed_not_claimable(self, store):
        record = await store.claim("u1", "es")
        await store.complete(record, SEGMENTS, TranslationUsage(), "hash")

        assert await store.claim("u1", "es") is None

    @pytest.mark.asyncio
    async def test_failed_and_pending_claimable(self, store):
        record = await store.claim("u1", "es")
        await store.fail(record, "boom")
        assert await store.claim("u1", "es") is not None

        await store.ensure_pending("u1", "de")
        assert await store.claim("u1", "de") is not None


# =============================================================================
# Terminal writes
# =============================================================================


class TestTerminalWrites:
    @pytest.mark.asyncio
    async def test_fail_never_overwrites_completed(self, store):
        first = await store.claim("u1", "es")
        duplicate = first.model_copy(deep=True)
        await store.complete(first, SEGMENTS, TranslationUsage(), "hash")

        written = await store.fail(duplicate, "late failure")

        assert written is False
        stored = await store.get("u1", "es")
        assert stored.status == TranslationStatus.COMPLETED
        assert stored.segments == SEGMENTS

    @pytest.mark.asyncio
    async def test_duplicate_completion_is_idempotent(self, store):
        first = await store.claim("u1", "es")
        duplicate = first.model_copy(deep=True)

        await store.complete(first, SEGMENTS, TranslationUsage(), "hash")
        await store.complete(duplicate, SEGMENTS, TranslationUsage(), "hash")

        stored = await store.get("u1", "es")
        assert stored.status == TranslationStatus.COMPLETED
        assert len(await store.list_for_unit("u1")) == 1

    @pytest.mark.asyncio
    async def test_reset_is_the_only_way_back(self, store):
        record = await store.claim("u1", "es")
        await store.complete(record, SEGMENTS, TranslationUsage(), "hash")

        reset = await store.reset("u1", "es", count_retry=True)

        assert reset.status == TranslationStatus.PENDING
        assert reset.retry_count == 1
        assert (await store.get("u1", "es")).segments == []

    @pytest.mark.asyncio
    async def test_reset_failed_record_joins_new_job(self, store):
        record = await store.claim("u1", "es", "job_1")
        await store.fail(record, "boom")

        reset = await store.reset("u1", "es", job_id="job_2")

        assert reset.status == TranslationStatus.PENDING
        assert reset.error is None
        assert (await store.get("u1", "es")).job_id == "job_2"

    @pytest.mark.asyncio
    async def test_ensure_pending_leaves_existing_alone(self, store):
        record = await store.claim("u1", "es")
        await store.complete(record, SEGMENTS, TranslationUsage(), "hash")

        existing = await store.ensure_pending("u1", "es")

        assert existing.status == TranslationStatus.COMPLETED


# =============================================================================
# Cache lookup
# =============================================================================


class TestFindByHash:
    @pytest.mark.asyncio
    async def test_finds_other_units_only(self, store):
        record = await store.claim("u1", "es")
        await store.complete(record, SEGMENTS, TranslationUsage(model="m"), "same-hash")

        assert await store.find_completed_by_hash("same-hash", "es", exclude_unit_id="u1") is None
        found = await store.find_completed_by_hash("same-hash", "es", exclude_unit_id="u2")
        assert found.content_unit_id == "u1"

    @pytest.mark.asyncio
    async def test_language_must_match(self, store):
        record = await store.claim("u1", "es")
        await store.complete(record, SEGMENTS, TranslationUsage(), "same-hash")

        assert await store.find_completed_by_hash("same-hash", "de") is None


# =============================================================================
# Jobs
# =============================================================================


class TestJobStore:
    @pytest.mark.asyncio
    async def test_total_units_computed(self, jobs):
        job = await jobs.create(TranslationJob(content_unit_ids=["u1", "u2"], target_languages=["en", "es"]))
        assert job.total_units == 4

    @pytest.mark.asyncio
    async def test_status_derived_from_records(self, jobs, store):
        job = await jobs.create(TranslationJob(content_unit_ids=["u1"], target_languages=["en", "es"]))
        assert (await jobs.refresh(job.id)).status == JobStatus.PENDING

        en = await store.claim("u1", "en", job.id)
        assert (await jobs.refresh(job.id)).status == JobStatus.PROCESSING

        await store.complete(en, SEGMENTS, TranslationUsage(), "h")
        assert (await jobs.refresh(job.id)).status == JobStatus.PROCESSING

        es = await store.claim("u1", "es", job.id)
        await store.fail(es, "boom")
        refreshed = await jobs.refresh(job.id)

        assert refreshed.status == JobStatus.FAILED
        assert refreshed.completed_at is not None

    @pytest.mark.asyncio
    async def test_reopened_job_clears_completed_at(self, jobs, store):
        job = await jobs.create(TranslationJob(content_unit_ids=["u1"], target_languages=["en"]))
        record = await store.claim("u1", "en", job.id)
        await store.fail(record, "boom")
        assert (await jobs.refresh(job.id)).completed_at is not None

        await store.reset("u1", "en", job_id=job.id)
        refreshed = await jobs.refresh(job.id)

        assert refreshed.status == JobStatus.PENDING
        assert refreshed.completed_at is None

    @pytest.mark.asyncio
    async def test_all_completed(self, jobs, store):
        job = await jobs.create(TranslationJob(content_unit_ids=["u1"], target_languages=["en"]))
        record = await store.claim("u1", "en", job.id)
        await store.complete(record, SEGMENTS, TranslationUsage(), "h")

        assert (await jobs.refresh(job.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_counters(self, jobs):
        job = await jobs.create(TranslationJob(content_unit_ids=["u1"], target_languages=["en", "es", "de"]))

        await jobs.record_result(job.id, TranslationStatus.COMPLETED)
        await jobs.record_result(job.id, TranslationStatus.FAILED)
        await jobs.record_result(job.id, TranslationStatus.PROCESSING)

        stored = await jobs.get(job.id)
        assert (stored.completed_count, stored.failed_count) == (1, 1)
        assert stored.resolved_count == 2

    @pytest.mark.asyncio
    async def test_non_translatable_unit_counts_as_failed(self, jobs):
        job = await jobs.create(TranslationJob(content_unit_ids=["u1"], target_languages=["en", "es"]))

        await jobs.mark_non_translatable(job.id, "u1", "no text")
        refreshed = await jobs.refresh(job.id)

        assert refreshed.status == JobStatus.FAILED
        assert refreshed.failed_count == 2
        assert refreshed.error == "no text"
