"""
Error taxonomy for the translation pipeline.

Validation errors surface synchronously at the kickoff boundary. Everything
else is recorded on the Translation Record and read back by polling.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from folio.core.models import TranslationUsage


class FolioError(Exception):
    """Base class for all pipeline errors."""
    pass


class NotFoundError(FolioError):
    """A book, content unit or job does not exist."""
    pass


class KickoffValidationError(FolioError):
    """Bad input at the kickoff boundary (unknown unit, unsupported language)."""
    pass


class NonTranslatableError(FolioError):
    """The source document could not be parsed into any segment."""
    pass


class BudgetExceededError(FolioError):
    """Monthly spend has reached the ceiling; no call is attempted."""

    def __init__(self, spent_usd: float, ceiling_usd: float, month: str):
        self.spent_usd = spent_usd
        self.ceiling_usd = ceiling_usd
        self.month = month
        super().__init__(
            f"Monthly translation budget exceeded for {month}: "
            f"${spent_usd:.4f} spent of ${ceiling_usd:.2f}"
        )


class TranslationError(FolioError):
    """
    A classified failure from the translator adapter.

    Every failure carries the usage consumed by the call (possibly zero)
    so the budget ledger stays accurate even when nothing came back.
    """

    retryable: bool = False

    def __init__(self, message: str, usage: TranslationUsage | None = None):
        super().__init__(message)
        self.usage = usage


class RetryableTranslationError(TranslationError):
    """Rate limit, transient service error or malformed response."""

    retryable = True


class PartialReconciliationError(RetryableTranslationError):
    """The response did not echo every requested segment identifier."""

    def __init__(
        self,
        missing_ids: list[str],
        usage: TranslationUsage | None = None,
    ):
        self.missing_ids = missing_ids
        super().__init__(
            f"Translation missing {len(missing_ids)} segment(s): {', '.join(missing_ids)}",
            usage=usage,
        )


class FatalTranslationError(TranslationError):
    """Invalid input or unsupported language; never retried."""

    retryable = False
