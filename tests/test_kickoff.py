"""
Tests for kickoff, detachment and bulk translation.
"""

import asyncio
import logging

import pytest

from folio.core.errors import FatalTranslationError, KickoffValidationError, NotFoundError
from folio.core.models import Book, ContentUnit, JobStatus, TranslationStatus
from folio.pipeline.background import BackgroundRunner

from conftest import CHAPTER_HTML, add_book


# =============================================================================
# Single unit
# =============================================================================


class TestKickoffUnit:
    @pytest.mark.asyncio
    async def test_acknowledges_before_work(self, pipeline, translator):
        _, (unit,) = await add_book(pipeline)

        ack = await pipeline.kickoff.kickoff_unit(unit.id, ["en", "es"])

        assert ack.accepted
        assert ack.job_id
        assert translator.calls == []
        assert (await pipeline.jobs.get(ack.job_id)).status == JobStatus.PENDING

        await pipeline.runner.drain()

        assert sorted(translator.calls) == ["en", "es"]
        assert (await pipeline.jobs.get(ack.job_id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_languages_normalized(self, pipeline):
        _, (unit,) = await add_book(pipeline)

        ack = await pipeline.kickoff.kickoff_unit(unit.id, ["EN", "spanish", "en"])

        assert ack.languages == ["en", "es"]
        await pipeline.runner.drain()

    @pytest.mark.asyncio
    async def test_unsupported_language_rejected_synchronously(self, pipeline):
        _, (unit,) = await add_book(pipeline)

        with pytest.raises(KickoffValidationError, match="xx"):
            await pipeline.kickoff.kickoff_unit(unit.id, ["en", "xx"])

        assert await pipeline.jobs.list() == []
        assert pipeline.runner.active == 0

    @pytest.mark.asyncio
    async def test_empty_language_list_rejected(self, pipeline):
        _, (unit,) = await add_book(pipeline)

        with pytest.raises(KickoffValidationError):
            await pipeline.kickoff.kickoff_unit(unit.id, [])

    @pytest.mark.asyncio
    async def test_unknown_unit(self, pipeline):
        with pytest.raises(NotFoundError):
            await pipeline.kickoff.kickoff_unit("unit_missing", ["en"])

    @pytest.mark.asyncio
    async def test_poll_after_failure(self, pipeline, translator):
        _, (unit,) = await add_book(pipeline)
        translator.script = {"es": [FatalTranslationError("bad")]}

        await pipeline.kickoff.kickoff_unit(unit.id, ["en", "es"])
        await pipeline.runner.drain()

        statuses = {r.language: r.status for r in await pipeline.store.list_for_unit(unit.id)}
        assert statuses == {"en": TranslationStatus.COMPLETED, "es": TranslationStatus.FAILED}


# =============================================================================
# Books
# =============================================================================


class TestKickoffBook:
    @pytest.mark.asyncio
    async def test_units_started_in_order_with_delay(self, pipeline, sleeper):
        book = await pipeline.catalog.add_book(Book(title="Le Voyage"))
        for number in (3, 1, 2):
            await pipeline.catalog.add_unit(ContentUnit(
                id=f"unit_{number}",
                book_id=book.id,
                number=number,
                document=CHAPTER_HTML.replace("Il était", f"{number}: il était"),
            ))

        ack = await pipeline.kickoff.kickoff_book(book.id, ["en"])
        await pipeline.runner.drain()

        assert ack.content_unit_ids == ["unit_1", "unit_2", "unit_3"]
        assert sleeper.delays.count(5.0) == 2
        job = await pipeline.jobs.get(ack.job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.completed_count == 3

    @pytest.mark.asyncio
    async def test_only_incomplete_units(self, pipeline, translator):
        book, units = await add_book(pipeline, chapters=3)
        await pipeline.kickoff.kickoff_unit(units[0].id, ["en", "es"])
        await pipeline.runner.drain()
        translator.calls.clear()

        ack = await pipeline.kickoff.kickoff_book(book.id, ["en", "es"])
        await pipeline.runner.drain()

        assert ack.content_unit_ids == [units[1].id, units[2].id]
        assert len(translator.calls) == 4

    @pytest.mark.asyncio
    async def test_nothing_to_do_is_not_an_error(self, pipeline):
        book, units = await add_book(pipeline, chapters=2)
        await pipeline.kickoff.kickoff_book(book.id, ["en"])
        await pipeline.runner.drain()

        ack = await pipeline.kickoff.kickoff_book(book.id, ["en"])

        assert ack.accepted
        assert ack.job_id is None
        assert ack.units == 0

    @pytest.mark.asyncio
    async def test_default_languages(self, pipeline, settings):
        book, _ = await add_book(pipeline)

        ack = await pipeline.kickoff.kickoff_book(book.id)
        await pipeline.runner.drain()

        assert ack.languages == settings.default_target_languages_list

    @pytest.mark.asyncio
    async def test_unknown_book(self, pipeline):
        with pytest.raises(NotFoundError):
            await pipeline.kickoff.kickoff_book("book_missing", ["en"])

    @pytest.mark.asyncio
    async def test_bulk_over_books(self, pipeline, translator):
        books = []
        for index in range(5):
            book, _ = await add_book(pipeline, chapters=2, title=f"Livre {index + 1}")
            books.append(book)

        # Book #3 is already fully translated
        await pipeline.kickoff.kickoff_book(books[2].id, ["en"])
        await pipeline.runner.drain()
        translator.calls.clear()

        acks = await pipeline.kickoff.kickoff_books([b.id for b in books] + ["book_missing"], ["en"])
        await pipeline.runner.drain()

        assert [a.accepted for a in acks] == [True, True, True, True, True, False]
        assert acks[2].job_id is None
        assert all(a.job_id for i, a in enumerate(acks[:5]) if i != 2)
        assert "not found" in acks[5].message
        assert len(translator.calls) == 8


# =============================================================================
# Background runner
# =============================================================================


class TestBackgroundRunner:
    @pytest.mark.asyncio
    async def test_failure_logged_not_raised(self, caplog):
        runner = BackgroundRunner()

        async def explode():
            raise RuntimeError("kaboom")

        with caplog.at_level(logging.ERROR):
            runner.submit(explode(), name="explode")
            await runner.drain()

        assert runner.active == 0
        assert "kaboom" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_waits_for_nested_tasks(self):
        runner = BackgroundRunner()
        done = []

        async def child():
            await asyncio.sleep(0)
            done.append("child")

        async def parent():
            runner.submit(child())
            done.append("parent")

        runner.submit(parent())
        await runner.drain()

        assert done == ["parent", "child"]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stragglers(self):
        runner = BackgroundRunner()
        runner.submit(asyncio.sleep(60), name="slow")

        await runner.shutdown(timeout=0.01)

        assert runner.active == 0
