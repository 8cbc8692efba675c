"""
Core data models for the translation pipeline.

These models represent the fundamental entities: content units and their
segments, per-language Translation Records, Translation Jobs and the
monthly Budget Period. Records carry their own state transitions so every
writer goes through the same state machine.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from folio.core.utils import generate_id, record_key, utc_now


# =============================================================================
# Enums
# =============================================================================


class TranslationStatus(str, Enum):
    """Status of one (content unit, language) translation."""

    PENDING = "pending"  # Requested, not yet claimed by a worker
    PROCESSING = "processing"  # Claimed; translator call in flight or backing off
    COMPLETED = "completed"  # Has translated segments, no error
    FAILED = "failed"  # Has an error, segments empty

    @property
    def is_terminal(self) -> bool:
        return self in (TranslationStatus.COMPLETED, TranslationStatus.FAILED)


class JobStatus(str, Enum):
    """Overall status of a Translation Job, derived from its records."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AlertKind(str, Enum):
    """Kinds of budget alert raised by the ledger."""

    THRESHOLD = "budget_threshold"
    EXCEEDED = "budget_exceeded"


# =============================================================================
# Source content
# =============================================================================


class Book(BaseModel):
    """A long-form work that owns ordered content units."""

    id: str = Field(default_factory=lambda: generate_id("book"))
    title: str
    author: str = ""


class ContentUnit(BaseModel):
    """
    A chapter (or equivalent document) subject to translation.

    Immutable once authored. A new revision number means a new document.
    """

    id: str = Field(default_factory=lambda: generate_id("unit"))
    book_id: str
    title: str = ""
    number: int = 0  # Chapter order within the book
    source_language: str = "fr"
    document: str  # Source markup (HTML)
    revision: int = 1


class StructuralSegment(BaseModel):
    """A fragment of a unit's markup with an identifier stable across translation."""

    id: str
    html: str
    kind: str = "section"  # "section" (inner markup of a <section>) or "block"
    translatable: bool = True  # False for markup-only fragments (images, rules)


class TranslatedSegment(BaseModel):
    """A translated fragment matched back to its source segment id."""

    id: str
    html: str


# =============================================================================
# Usage / cost
# =============================================================================


class TranslationUsage(BaseModel):
    """
    Cost and token usage for one translator call.

    Every adapter result and every adapter failure carries one of these, so
    the ledger never depends on a provider's response shape.
    """

    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    cache_hit: bool = False

    def combined_with(self, other: TranslationUsage | None) -> TranslationUsage:
        """Accumulate usage across attempts."""
        if other is None:
            return self.model_copy()
        return TranslationUsage(
            model=other.model or self.model,
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost_usd=self.cost_usd + other.cost_usd,
            cache_hit=self.cache_hit and other.cache_hit,
        )


# =============================================================================
# Translation Record (Status & Cache Store row)
# =============================================================================


class TranslationRecord(BaseModel):
    """
    Persistent status/result for one (content unit, language) pair.

    At most one record exists per pair; all writes are upserts on that key.
    """

    content_unit_id: str
    language: str

    status: TranslationStatus = TranslationStatus.PENDING
    segments: list[TranslatedSegment] = Field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None  # retryable / fatal / partial / budget / recovery
    usage: TranslationUsage | None = None

    # Hash of the outbound envelope; identical documents share translations
    content_hash: str | None = None

    attempts: int = 0  # Translator calls made by the last worker run
    retry_count: int = 0  # Times recovery has reset this record
    job_id: str | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def key(self) -> str:
        return record_key(self.content_unit_id, self.language)

    @property
    def duration_seconds(self) -> float | None:
        """Wall time from claim (or creation) to the terminal write."""
        if not self.status.is_terminal:
            return None
        end = self.completed_at or self.updated_at
        start = self.started_at or self.created_at
        return max((end - start).total_seconds(), 0.0)

    def claim(self, job_id: str | None = None) -> None:
        """Move to processing. Callers check the soft lock first."""
        now = utc_now()
        self.status = TranslationStatus.PROCESSING
        self.error = None
        self.error_kind = None
        self.attempts = 0
        self.job_id = job_id or self.job_id
        self.started_at = now
        self.completed_at = None
        self.updated_at = now

    def complete(
        self,
        segments: list[TranslatedSegment],
        usage: TranslationUsage | None = None,
        content_hash: str | None = None,
    ) -> None:
        """Terminal success: segments and usage land in the same write."""
        now = utc_now()
        self.status = TranslationStatus.COMPLETED
        self.segments = list(segments)
        self.usage = usage
        self.error = None
        self.error_kind = None
        if content_hash:
            self.content_hash = content_hash
        self.completed_at = now
        self.updated_at = now

    def fail(
        self,
        error: str,
        usage: TranslationUsage | None = None,
        kind: str | None = None,
    ) -> None:
        """Terminal failure with the last error preserved."""
        now = utc_now()
        self.status = TranslationStatus.FAILED
        self.segments = []
        self.error = error
        self.error_kind = kind
        if usage is not None:
            self.usage = usage
        self.completed_at = now
        self.updated_at = now

    def reset(self) -> None:
        """Back to pending; used by explicit retranslation and recovery."""
        self.status = TranslationStatus.PENDING
        self.segments = []
        self.error = None
        self.error_kind = None
        self.usage = None
        self.attempts = 0
        self.started_at = None
        self.completed_at = None
        self.updated_at = utc_now()


# =============================================================================
# Translation Job
# =============================================================================


class TranslationJob(BaseModel):
    """
    A bulk translation request: one or many units across many languages.

    Counters are updated as each (unit, language) child resolves. Owned by
    the orchestration layer; read-only to monitoring.
    """

    id: str = Field(default_factory=lambda: generate_id("job"))
    book_id: str | None = None
    content_unit_ids: list[str] = Field(default_factory=list)
    target_languages: list[str] = Field(default_factory=list)

    # Units rejected at segmentation; they count as failed for every language
    non_translatable_unit_ids: list[str] = Field(default_factory=list)

    total_units: int = 0  # Number of (unit, language) pairs
    completed_count: int = 0
    failed_count: int = 0

    status: JobStatus = JobStatus.PENDING
    error: str | None = None

    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def resolved_count(self) -> int:
        return self.completed_count + self.failed_count

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @staticmethod
    def derive_status(statuses: list[TranslationStatus]) -> JobStatus:
        """
        Overall status from constituent record statuses.

        pending/processing while any child is incomplete, completed when all
        children completed, failed when any failed and none are in flight.
        """
        if not statuses:
            return JobStatus.PENDING
        if any(not s.is_terminal for s in statuses):
            started = any(s != TranslationStatus.PENDING for s in statuses)
            return JobStatus.PROCESSING if started else JobStatus.PENDING
        if all(s == TranslationStatus.COMPLETED for s in statuses):
            return JobStatus.COMPLETED
        return JobStatus.FAILED


# =============================================================================
# Budget
# =============================================================================


class BudgetPeriod(BaseModel):
    """One accounting month of translation spend."""

    month: str  # "YYYY-MM"
    ceiling_usd: float
    spent_usd: float = 0.0
    alert_threshold_pct: float = 80.0

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def remaining_usd(self) -> float:
        return self.ceiling_usd - self.spent_usd

    @property
    def spent_pct(self) -> float:
        if self.ceiling_usd <= 0:
            return 100.0
        return self.spent_usd / self.ceiling_usd * 100

    @property
    def is_over_threshold(self) -> bool:
        return self.spent_usd >= self.ceiling_usd * self.alert_threshold_pct / 100

    @property
    def is_exhausted(self) -> bool:
        return self.spent_usd >= self.ceiling_usd

    def snapshot(self) -> dict[str, Any]:
        """Shape read by dashboards and the budget endpoint."""
        return {
            "month": self.month,
            "ceiling_usd": self.ceiling_usd,
            "spent_usd": self.spent_usd,
            "alert_threshold_pct": self.alert_threshold_pct,
            "remaining_usd": self.remaining_usd,
            "is_over_threshold": self.is_over_threshold,
            "is_exhausted": self.is_exhausted,
        }


class BudgetAlert(BaseModel):
    """An observable alert raised when spend crosses a budget line."""

    id: str = Field(default_factory=lambda: generate_id("alert"))
    month: str
    alert_type: AlertKind
    severity: str = "warning"
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_resolved: bool = False
    resolved_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def resolve(self) -> None:
        self.is_resolved = True
        self.resolved_at = utc_now()


# =============================================================================
# Metrics
# =============================================================================


class TranslationMetric(BaseModel):
    """One resolved worker run, for monitoring."""

    id: str = Field(default_factory=lambda: generate_id("metric"))
    content_unit_id: str
    language: str
    duration_ms: int = 0
    tokens_used: int = 0
    cost_usd: float = 0.0
    retries: int = 0
    status: TranslationStatus
    cache_hit: bool = False
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
