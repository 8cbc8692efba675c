"""
Core module - fundamental data models and infrastructure.

This module contains:
- models: Pipeline data models (ContentUnit, TranslationRecord, TranslationJob, BudgetPeriod)
- errors: Error taxonomy shared by every pipeline stage
- events: Event system for pipeline lifecycle notifications
- utils: Shared utility functions
"""

from folio.core.models import (
    Book,
    ContentUnit,
    StructuralSegment,
    TranslatedSegment,
    TranslationUsage,
    TranslationRecord,
    TranslationStatus,
    TranslationJob,
    JobStatus,
    BudgetPeriod,
    BudgetAlert,
    AlertKind,
    TranslationMetric,
)

from folio.core.errors import (
    FolioError,
    NotFoundError,
    KickoffValidationError,
    NonTranslatableError,
    BudgetExceededError,
    TranslationError,
    RetryableTranslationError,
    PartialReconciliationError,
    FatalTranslationError,
)

from folio.core.events import (
    Event,
    EventBus,
    get_event_bus,
    reset_event_bus,
)

from folio.core.utils import (
    generate_id,
    utc_now,
)

__all__ = [
    # Models
    "Book",
    "ContentUnit",
    "StructuralSegment",
    "TranslatedSegment",
    "TranslationUsage",
    "TranslationRecord",
    "TranslationStatus",
    "TranslationJob",
    "JobStatus",
    "BudgetPeriod",
    "BudgetAlert",
    "AlertKind",
    "TranslationMetric",
    # Errors
    "FolioError",
    "NotFoundError",
    "KickoffValidationError",
    "NonTranslatableError",
    "BudgetExceededError",
    "TranslationError",
    "RetryableTranslationError",
    "PartialReconciliationError",
    "FatalTranslationError",
    # Events
    "Event",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    # Utils
    "generate_id",
    "utc_now",
]
