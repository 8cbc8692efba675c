"""
Pipeline assembly.

Wires storage, translator, ledger, workers, orchestrator, kickoff, progress
and recovery together. Build one per process (the API does it in its
lifespan); tests build one per test with fakes injected.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

from folio.config import Settings, get_settings
from folio.core.events import Event, EventBus, get_event_bus
from folio.core.utils import utc_now
from folio.i18n.translator import TranslatorAdapter, get_translator
from folio.integrations.sentry import capture_message
from folio.pipeline.background import BackgroundRunner
from folio.pipeline.budget import BudgetLedger
from folio.pipeline.catalog import ContentCatalog
from folio.pipeline.kickoff import JobKickoff
from folio.pipeline.orchestrator import FanOutOrchestrator
from folio.pipeline.progress import ProgressAggregator
from folio.pipeline.recovery import TranslationRecovery
from folio.pipeline.retry import RetryPolicy, SleepFn
from folio.pipeline.store import JobStore, MetricsStore, TranslationStore
from folio.pipeline.worker import LanguageWorker
from folio.storage import StorageProvider, create_local_storage


async def report_budget_alert(event: Event) -> list[Event]:
    """Forward budget alerts to error reporting (logged when Sentry is off)."""
    capture_message(
        f"Budget alert {event.payload.get('alert_type')} for {event.subject_id}",
        level="warning",
        **event.payload,
    )
    return []


class TranslationPipeline:
    """
    Usage:
        pipeline = TranslationPipeline(translator=DebugTranslator())
        await pipeline.catalog.add_book(book)
        ack = await pipeline.kickoff.kickoff_unit(unit.id, ["en", "es"])
        await pipeline.runner.drain()
    """

    def __init__(
        self,
        storage: StorageProvider | None = None,
        translator: TranslatorAdapter | None = None,
        settings: Settings | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
        event_bus: EventBus | None = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage or create_local_storage()
        self.translator = translator or get_translator(self.settings)
        self.event_bus = event_bus or get_event_bus()
        self.event_bus.subscribe("budget.alert", report_budget_alert)

        self.catalog = ContentCatalog(self.storage)
        self.store = TranslationStore(self.storage, claim_timeout=self.settings.translation_claim_timeout)
        self.jobs = JobStore(self.storage, self.store)
        self.metrics = MetricsStore(self.storage)
        self.ledger = BudgetLedger(self.storage, self.settings, clock=clock, event_bus=self.event_bus)
        self.retry_policy = RetryPolicy.from_settings(self.settings, sleep=sleep)

        self.worker = LanguageWorker(
            self.store,
            self.metrics,
            self.ledger,
            self.translator,
            self.retry_policy,
            event_bus=self.event_bus,
        )
        self.orchestrator = FanOutOrchestrator(
            self.catalog,
            self.store,
            self.jobs,
            self.worker,
            max_parallel=self.settings.translation_max_parallel,
            dispatch_delay=self.settings.translation_dispatch_delay,
            sleep=sleep,
            event_bus=self.event_bus,
        )
        self.runner = BackgroundRunner()
        self.kickoff = JobKickoff(
            self.catalog,
            self.store,
            self.jobs,
            self.orchestrator,
            self.runner,
            settings=self.settings,
            sleep=sleep,
        )
        self.progress = ProgressAggregator(
            self.catalog, self.store, self.jobs, self.metrics, self.ledger, settings=self.settings
        )
        self.recovery = TranslationRecovery(
            self.store, self.jobs, settings=self.settings, clock=clock, kickoff=self.kickoff
        )
