"""
Translation pipeline.

- catalog: books, content units and cached segmentation
- store: translation records, jobs and metrics
- budget: monthly spend ledger and alerts
- retry: shared retry policy
- worker: per-language state machine
- orchestrator: fan-out across languages for one unit
- background / kickoff: detached execution behind an immediate acknowledgement
- progress: read-only rollups
- recovery: cleanup of abandoned work
"""

from folio.pipeline.background import BackgroundRunner
from folio.pipeline.budget import BudgetLedger
from folio.pipeline.catalog import ContentCatalog
from folio.pipeline.kickoff import JobKickoff, KickoffAck
from folio.pipeline.orchestrator import FanOutOrchestrator, UnitRunResult
from folio.pipeline.progress import ProgressAggregator
from folio.pipeline.recovery import RecoveryReport, TranslationRecovery
from folio.pipeline.retry import RetryPolicy
from folio.pipeline.service import TranslationPipeline
from folio.pipeline.store import JobStore, MetricsStore, TranslationStore
from folio.pipeline.worker import LanguageWorker, WorkerOutcome

__all__ = [
    "BackgroundRunner",
    "BudgetLedger",
    "ContentCatalog",
    "JobKickoff",
    "KickoffAck",
    "FanOutOrchestrator",
    "UnitRunResult",
    "ProgressAggregator",
    "RecoveryReport",
    "TranslationRecovery",
    "RetryPolicy",
    "TranslationPipeline",
    "JobStore",
    "MetricsStore",
    "TranslationStore",
    "LanguageWorker",
    "WorkerOutcome",
]
