"""
Shared fixtures: settings, in-memory storage, fake translators, and a
sleep that records delays instead of waiting.
"""

import asyncio

import pytest

from folio.config import Settings
from folio.core.events import EventBus
from folio.core.models import Book, ContentUnit, StructuralSegment, TranslationUsage
from folio.core.errors import TranslationError
from folio.i18n.translator import TranslationResult, TranslatorAdapter, reconcile
from folio.pipeline import TranslationPipeline
from folio.storage import create_local_storage


# =============================================================================
# Fakes
# =============================================================================


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays and yields once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(float(delay))
        await asyncio.sleep(0)


class ScriptedTranslator(TranslatorAdapter):
    """
    Translator whose per-language behaviour is scripted.

    `script` maps a language to a list of exceptions raised on successive
    calls; once the list is used up, calls succeed. `missing` maps a
    language to segment ids left out of every response.
    """

    name = "scripted"

    def __init__(
        self,
        script: dict[str, list[Exception]] | None = None,
        cost_per_call: float = 0.01,
        failure_cost: float = 0.0,
        missing: dict[str, set[str]] | None = None,
        delay: float = 0.0,
    ):
        self.script = {lang: list(steps) for lang, steps in (script or {}).items()}
        self.cost_per_call = cost_per_call
        self.failure_cost = failure_cost
        self.missing = missing or {}
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def translate(
        self,
        segments: list[StructuralSegment],
        target: str,
        source: str = "fr",
    ) -> TranslationResult:
        target = self._validate(segments, target)
        self.calls.append(target)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)

            steps = self.script.get(target)
            if steps:
                error = steps.pop(0)
                if isinstance(error, TranslationError) and error.usage is None:
                    error.usage = TranslationUsage(model="fake", cost_usd=self.failure_cost)
                raise error

            usage = TranslationUsage(model="fake", total_tokens=100, cost_usd=self.cost_per_call)
            dropped = self.missing.get(target, set())
            markup = "\n".join(
                f'<section data-id="{s.id}">[{target}] {s.html}</section>'
                for s in segments
                if s.translatable and s.id not in dropped
            )
            return TranslationResult(segments=reconcile(segments, markup, usage), usage=usage)
        finally:
            self.in_flight -= 1


# =============================================================================
# Fixtures
# =============================================================================


CHAPTER_HTML = (
    '<section data-id="intro"><p>Il était une fois.</p></section>'
    '<section data-id="body"><h2>Le matin</h2><p>Le soleil se levait.</p></section>'
)

THREE_SECTION_HTML = CHAPTER_HTML + '<section data-id="outro"><p>Et la nuit tomba.</p></section>'


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        translator_backend="debug",
        budget_ceiling_usd=10.0,
        budget_alert_threshold_pct=80.0,
        translation_max_parallel=2,
        translation_dispatch_delay=0.7,
        bulk_unit_delay=5.0,
        translation_max_attempts=3,
        translation_retry_base_delay=2.0,
        translation_retry_jitter=0.0,
    )


@pytest.fixture
def storage():
    return create_local_storage()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def translator():
    return ScriptedTranslator()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def pipeline(storage, translator, settings, sleeper, event_bus):
    """A fully wired pipeline on in-memory storage with a scripted translator."""
    return TranslationPipeline(
        storage=storage,
        translator=translator,
        settings=settings,
        sleep=sleeper,
        event_bus=event_bus,
    )


async def add_book(pipeline, chapters=1, document=CHAPTER_HTML, title="Le Voyage"):
    """Create a book with `chapters` units sharing the same kind of document."""
    book = await pipeline.catalog.add_book(Book(title=title))
    units = []
    for number in range(1, chapters + 1):
        unit = await pipeline.catalog.add_unit(ContentUnit(
            book_id=book.id,
            title=f"Chapitre {number}",
            number=number,
            document=document.replace("Il était", f"{title}, chapitre {number}: il était"),
        ))
        units.append(unit)
    return book, units
