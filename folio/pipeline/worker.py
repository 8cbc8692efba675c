"""
Per-language worker.

Drives one (content unit, language) pair through its state machine:

    pending ──claim──▶ processing ──success──▶ completed
                          │
                          └──fatal / retries exhausted / budget──▶ failed

Within a claim, retryable failures are retried in place with backoff; the
record stays processing throughout. Every attempt's cost is recorded in
the budget ledger whether it succeeded or not.
"""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel, Field

from folio.core.errors import (
    BudgetExceededError,
    PartialReconciliationError,
    TranslationError,
)
from folio.core.events import (
    EventBus,
    translation_claimed,
    translation_completed,
    translation_failed,
)
from folio.core.models import (
    ContentUnit,
    StructuralSegment,
    TranslationMetric,
    TranslationRecord,
    TranslationStatus,
    TranslationUsage,
)
from folio.i18n.translator import TranslationResult, TranslatorAdapter, classify_exception
from folio.pipeline.budget import BudgetLedger
from folio.pipeline.retry import RetryPolicy
from folio.pipeline.store import MetricsStore, TranslationStore

logger = logging.getLogger(__name__)


class WorkerOutcome(BaseModel):
    """What one worker run did for its language."""

    language: str
    status: TranslationStatus
    attempts: int = 0
    error: str | None = None
    error_kind: str | None = None
    usage: TranslationUsage = Field(default_factory=TranslationUsage)
    cache_hit: bool = False
    skipped: bool = False  # Already completed, or claimed by another worker


def error_kind(error: Exception) -> str:
    if isinstance(error, BudgetExceededError):
        return "budget"
    if isinstance(error, PartialReconciliationError):
        return "partial"
    if isinstance(error, TranslationError):
        return "retryable" if error.retryable else "fatal"
    return "unexpected"


class LanguageWorker:
    """
    Translates one content unit into one language.

    Usage:
        worker = LanguageWorker(store, metrics, ledger, translator, RetryPolicy())
        outcome = await worker.run(unit, "es", segments, content_hash, job_id)
    """

    def __init__(
        self,
        store: TranslationStore,
        metrics: MetricsStore,
        ledger: BudgetLedger,
        translator: TranslatorAdapter,
        retry_policy: RetryPolicy,
        event_bus: EventBus | None = None,
    ):
        self.store = store
        self.metrics = metrics
        self.ledger = ledger
        self.translator = translator
        self.retry_policy = retry_policy
        self.event_bus = event_bus

    async def run(
        self,
        unit: ContentUnit,
        language: str,
        segments: list[StructuralSegment],
        content_hash: str,
        job_id: str | None = None,
    ) -> WorkerOutcome:
        record = await self.store.claim(unit.id, language, job_id)
        if record is None:
            current = await self.store.get(unit.id, language)
            status = current.status if current else TranslationStatus.PENDING
            logger.info("Skipping %s/%s: already %s", unit.id, language, status.value)
            return WorkerOutcome(language=language, status=status, skipped=True)

        await self._publish(translation_claimed(unit.id, language, job_id))
        started = time.monotonic()

        cached = await self.store.find_completed_by_hash(content_hash, language, exclude_unit_id=unit.id)
        if cached is not None:
            usage = TranslationUsage(
                model=cached.usage.model if cached.usage else "",
                cache_hit=True,
            )
            await self.store.complete(record, cached.segments, usage, content_hash)
            logger.info("Cache hit for %s/%s from %s", unit.id, language, cached.content_unit_id)
            outcome = WorkerOutcome(
                language=language,
                status=TranslationStatus.COMPLETED,
                usage=usage,
                cache_hit=True,
            )
            await self._finish(unit, record, outcome, started)
            return outcome

        outcome = await self._translate(unit, record, segments, content_hash)
        await self._finish(unit, record, outcome, started)
        return outcome

    async def _attempt(
        self,
        unit: ContentUnit,
        record: TranslationRecord,
        segments: list[StructuralSegment],
        number: int,
    ) -> TranslationResult:
        await self.ledger.check_available()
        await self.store.record_attempt(record, number)

        try:
            result = await self.translator.translate(segments, record.language, unit.source_language)
        except Exception as e:
            error = classify_exception(e)
            cost = error.usage.cost_usd if error.usage else 0.0
            await self.ledger.record_spend(cost)
            logger.warning(
                "Attempt %d for %s/%s failed (%s): %s",
                number, unit.id, record.language, error_kind(error), error,
            )
            if error is e:
                raise
            raise error from e

        await self.ledger.record_spend(result.usage.cost_usd)
        return result

    async def _translate(
        self,
        unit: ContentUnit,
        record: TranslationRecord,
        segments: list[StructuralSegment],
        content_hash: str,
    ) -> WorkerOutcome:
        usage = TranslationUsage()
        try:
            async for attempt in self.retry_policy.retrying():
                with attempt:
                    number = attempt.retry_state.attempt_number
                    try:
                        result = await self._attempt(unit, record, segments, number)
                    except TranslationError as e:
                        usage = usage.combined_with(e.usage)
                        raise
                    usage = usage.combined_with(result.usage)
        except (BudgetExceededError, TranslationError) as e:
            attempts = record.attempts
            kind = error_kind(e)
            await self.store.fail(record, str(e), usage=usage, kind=kind)
            logger.error(
                "Translation failed for %s/%s after %d attempt(s): %s",
                unit.id, record.language, attempts, e,
            )
            return WorkerOutcome(
                language=record.language,
                status=TranslationStatus.FAILED,
                attempts=attempts,
                error=str(e),
                error_kind=kind,
                usage=usage,
            )

        attempts = record.attempts
        await self.store.complete(record, result.segments, usage, content_hash)
        logger.info(
            "Translated %s into %s in %d attempt(s), $%.6f",
            unit.id, record.language, attempts, usage.cost_usd,
        )
        return WorkerOutcome(
            language=record.language,
            status=TranslationStatus.COMPLETED,
            attempts=attempts,
            usage=usage,
        )

    async def _finish(
        self,
        unit: ContentUnit,
        record: TranslationRecord,
        outcome: WorkerOutcome,
        started: float,
    ) -> None:
        await self.metrics.record(TranslationMetric(
            content_unit_id=unit.id,
            language=outcome.language,
            duration_ms=int((time.monotonic() - started) * 1000),
            tokens_used=outcome.usage.total_tokens,
            cost_usd=outcome.usage.cost_usd,
            retries=max(outcome.attempts - 1, 0),
            status=outcome.status,
            cache_hit=outcome.cache_hit,
            error=outcome.error,
        ))

        if outcome.status == TranslationStatus.COMPLETED:
            event = translation_completed(
                unit.id, outcome.language, record.job_id,
                attempts=outcome.attempts,
                cost_usd=outcome.usage.cost_usd,
                cache_hit=outcome.cache_hit,
            )
        else:
            event = translation_failed(
                unit.id, outcome.language, record.job_id, outcome.error or "",
                attempts=outcome.attempts,
                error_kind=outcome.error_kind,
            )
        await self._publish(event)

    async def _publish(self, event) -> None:
        if self.event_bus:
            await self.event_bus.publish(event)
