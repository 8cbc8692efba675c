"""
Tests for the per-language worker.
"""

import pytest

from folio.core.errors import FatalTranslationError, RetryableTranslationError
from folio.core.models import ContentUnit, TranslationStatus
from folio.i18n.segmenter import content_hash

from conftest import CHAPTER_HTML, THREE_SECTION_HTML, add_book


async def prepare(pipeline, document=CHAPTER_HTML):
    book, (unit,) = await add_book(pipeline, document=document)
    segments = await pipeline.catalog.segments(unit)
    return unit, segments, content_hash(segments)


# =============================================================================
# Success paths
# =============================================================================


class TestWorkerSuccess:
    @pytest.mark.asyncio
    async def test_translates_and_records(self, pipeline, translator, event_bus):
        unit, segments, chash = await prepare(pipeline)

        outcome = await pipeline.worker.run(unit, "es", segments, chash, job_id="job_1")

        assert outcome.status == TranslationStatus.COMPLETED
        assert outcome.attempts == 1
        record = await pipeline.store.get(unit.id, "es")
        assert record.status == TranslationStatus.COMPLETED
        assert [s.id for s in record.segments] == ["intro", "body"]
        assert record.content_hash == chash
        assert record.error is None

        period = await pipeline.ledger.current_period()
        assert period.spent_usd == pytest.approx(0.01)

        metrics = await pipeline.metrics.list()
        assert len(metrics) == 1
        assert metrics[0].status == TranslationStatus.COMPLETED

        events = [e.event_type for e in event_bus.get_history(event_type="translation.*")]
        assert events == ["translation.claimed", "translation.completed"]

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, pipeline, translator, sleeper):
        unit, segments, chash = await prepare(pipeline)
        translator.failure_cost = 0.001
        translator.script = {"es": [RetryableTranslationError("429"), RetryableTranslationError("429")]}

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.status == TranslationStatus.COMPLETED
        assert outcome.attempts == 3
        assert sleeper.delays == [2.0, 4.0]
        # Failed attempts are billed too
        assert outcome.usage.cost_usd == pytest.approx(0.012)
        assert (await pipeline.ledger.current_period()).spent_usd == pytest.approx(0.012)
        assert (await pipeline.store.get(unit.id, "es")).attempts == 3

    @pytest.mark.asyncio
    async def test_unclassified_errors_are_retried(self, pipeline, translator):
        unit, segments, chash = await prepare(pipeline)
        translator.script = {"es": [RuntimeError("connection reset")]}

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.status == TranslationStatus.COMPLETED
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_cache_hit_skips_translator(self, pipeline, translator):
        book, _ = await add_book(pipeline, chapters=0)
        first = await pipeline.catalog.add_unit(ContentUnit(book_id=book.id, number=1, document=CHAPTER_HTML))
        second = await pipeline.catalog.add_unit(ContentUnit(book_id=book.id, number=2, document=CHAPTER_HTML))
        segments = await pipeline.catalog.segments(first)
        chash = content_hash(segments)

        await pipeline.worker.run(first, "es", segments, chash)
        outcome = await pipeline.worker.run(second, "es", segments, chash)

        assert outcome.cache_hit
        assert translator.calls == ["es"]
        record = await pipeline.store.get(second.id, "es")
        assert record.status == TranslationStatus.COMPLETED
        assert record.usage.cache_hit
        assert record.usage.cost_usd == 0.0

    @pytest.mark.asyncio
    async def test_completed_pair_skipped(self, pipeline, translator):
        unit, segments, chash = await prepare(pipeline)
        await pipeline.worker.run(unit, "es", segments, chash)

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.skipped
        assert outcome.status == TranslationStatus.COMPLETED
        assert translator.calls == ["es"]


# =============================================================================
# Failure paths
# =============================================================================


class TestWorkerFailure:
    @pytest.mark.asyncio
    async def test_fatal_is_single_attempt(self, pipeline, translator, sleeper, event_bus):
        unit, segments, chash = await prepare(pipeline)
        translator.script = {"es": [FatalTranslationError("bad input")]}

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.status == TranslationStatus.FAILED
        assert outcome.attempts == 1
        assert outcome.error_kind == "fatal"
        assert translator.calls == ["es"]
        assert sleeper.delays == []
        assert event_bus.get_history(event_type="translation.failed")

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, pipeline, translator):
        unit, segments, chash = await prepare(pipeline)
        translator.script = {"es": [
            RetryableTranslationError("first"),
            RetryableTranslationError("second"),
            RetryableTranslationError("third"),
        ]}

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.status == TranslationStatus.FAILED
        assert outcome.attempts == 3
        record = await pipeline.store.get(unit.id, "es")
        assert record.status == TranslationStatus.FAILED
        assert record.error == "third"
        assert record.segments == []

    @pytest.mark.asyncio
    async def test_missing_segment_fails_whole_language(self, pipeline, translator):
        unit, segments, chash = await prepare(pipeline, THREE_SECTION_HTML)
        translator.missing = {"es": {"body"}}

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.status == TranslationStatus.FAILED
        assert outcome.error_kind == "partial"
        assert translator.calls == ["es", "es", "es"]
        record = await pipeline.store.get(unit.id, "es")
        assert record.segments == []
        assert "body" in record.error
        assert "outro" not in record.error
        # Each partial response was billed
        assert (await pipeline.ledger.current_period()).spent_usd == pytest.approx(0.03)

    @pytest.mark.asyncio
    async def test_budget_exhausted_before_call(self, pipeline, translator):
        unit, segments, chash = await prepare(pipeline)
        await pipeline.ledger.record_spend(10.0)

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.status == TranslationStatus.FAILED
        assert outcome.error_kind == "budget"
        assert translator.calls == []
        assert "budget exceeded" in (await pipeline.store.get(unit.id, "es")).error

    @pytest.mark.asyncio
    async def test_budget_checked_before_each_attempt(self, pipeline, translator):
        unit, segments, chash = await prepare(pipeline)
        translator.failure_cost = 10.0
        translator.script = {"es": [RetryableTranslationError("429")]}

        outcome = await pipeline.worker.run(unit, "es", segments, chash)

        assert outcome.status == TranslationStatus.FAILED
        assert outcome.error_kind == "budget"
        # The refused second attempt never reached the translator
        assert outcome.attempts == 1
        assert (await pipeline.store.get(unit.id, "es")).attempts == 1
        assert translator.calls == ["es"]
        assert (await pipeline.ledger.current_period()).spent_usd == pytest.approx(10.0)
