"""
Translator adapters.

An adapter translates the segments of one content unit into one target
language. It either returns every segment the caller sent, matched back by
identifier, with a usage/cost report, or raises a classified
TranslationError that also carries a usage report.

Uses the same DSPy/LLM infrastructure as the rest of the system.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Any

import dspy
from bs4 import BeautifulSoup, NavigableString
from pydantic import BaseModel, Field

from folio.config import Settings, get_settings
from folio.core.errors import (
    FatalTranslationError,
    PartialReconciliationError,
    RetryableTranslationError,
    TranslationError,
)
from folio.core.models import StructuralSegment, TranslatedSegment, TranslationUsage
from folio.i18n.languages import get_language_name, is_supported, normalize_language_code
from folio.i18n.segmenter import combine, parse_envelope
from folio.services.ai.client import get_lm
from folio.services.ai.signatures import TranslateMarkup

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {402, 408, 409, 429, 500, 502, 503, 504}

RETRYABLE_ERROR_NAMES = (
    "RateLimit",
    "Timeout",
    "ServiceUnavailable",
    "APIConnection",
    "InternalServer",
    "AdapterParse",
)


class TranslationResult(BaseModel):
    """Every requested segment, translated, plus what the call cost."""

    segments: list[TranslatedSegment] = Field(default_factory=list)
    usage: TranslationUsage = Field(default_factory=TranslationUsage)


# =============================================================================
# Shared helpers
# =============================================================================


def reconcile(
    segments: list[StructuralSegment],
    translated_markup: str,
    usage: TranslationUsage,
) -> list[TranslatedSegment]:
    """
    Match a translated envelope back onto the requested segments.

    Raises:
        PartialReconciliationError: any translatable segment id was not echoed
    """
    fragments = parse_envelope(translated_markup)
    expected = [segment.id for segment in segments if segment.translatable]
    missing = [seg_id for seg_id in expected if seg_id not in fragments]
    if missing:
        raise PartialReconciliationError(missing, usage=usage)
    return [TranslatedSegment(id=seg_id, html=fragments[seg_id]) for seg_id in expected]


def classify_exception(exc: Exception, usage: TranslationUsage | None = None) -> TranslationError:
    """Map a provider/client exception onto the retryable/fatal taxonomy."""
    if isinstance(exc, TranslationError):
        return exc

    message = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, asyncio.TimeoutError):
        return RetryableTranslationError(f"Translation timed out: {message}", usage=usage)

    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        if status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
            return RetryableTranslationError(f"Retryable error: {status_code} {message}", usage=usage)
        return FatalTranslationError(f"Translation API error: {status_code} {message}", usage=usage)

    if any(name in type(exc).__name__ for name in RETRYABLE_ERROR_NAMES):
        return RetryableTranslationError(message, usage=usage)

    # Unknown failures get the bounded retry budget rather than failing outright
    return RetryableTranslationError(message, usage=usage)


# =============================================================================
# Adapter interface
# =============================================================================


class TranslatorAdapter(ABC):
    """
    Text-in/text-out translation capability with a cost and a failure mode.
    """

    name: str = "translator"

    @abstractmethod
    async def translate(
        self,
        segments: list[StructuralSegment],
        target: str,
        source: str = "fr",
    ) -> TranslationResult:
        """
        Translate one content unit's segments into `target`.

        Raises:
            RetryableTranslationError: rate limit, transient error, malformed or partial response
            FatalTranslationError: invalid input or unsupported language
        """
        pass

    def _validate(self, segments: list[StructuralSegment], target: str) -> str:
        target = normalize_language_code(target)
        if not is_supported(target):
            raise FatalTranslationError(
                f"Unsupported language: {target}", usage=TranslationUsage()
            )
        if not any(segment.translatable for segment in segments):
            raise FatalTranslationError(
                "Nothing to translate: no translatable segments", usage=TranslationUsage()
            )
        return target

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"


# =============================================================================
# LLM adapter
# =============================================================================


class LLMTranslator(TranslatorAdapter):
    """
    DSPy-backed translator.

    Picks the lite model for small chapters and the standard model for
    large ones, and prices each call per 1K tokens.

    Usage:
        translator = LLMTranslator()
        result = await translator.translate(segments, target="es")
        result.usage.cost_usd
    """

    name = "llm"

    def __init__(self, settings: Settings | None = None, timeout: float = 180.0):
        self.settings = settings or get_settings()
        self.timeout = timeout

        # DSPy module (lazy initialized)
        self._translate_module: dspy.Predict | None = None

    @property
    def translate_module(self) -> dspy.Predict:
        if self._translate_module is None:
            self._translate_module = dspy.Predict(TranslateMarkup)
        return self._translate_module

    def estimate_tokens(self, markup: str) -> int:
        return -(-len(markup) // self.settings.translation_chars_per_token)

    def select_model(self, estimated_tokens: int) -> str:
        if estimated_tokens < self.settings.translation_lite_threshold_tokens:
            return self.settings.translation_model_lite
        return self.settings.translation_model_standard

    def price(self, model: str, tokens: int) -> float:
        if model == self.settings.translation_model_lite:
            rate = self.settings.translation_cost_per_1k_lite
        else:
            rate = self.settings.translation_cost_per_1k_standard
        return tokens / 1000 * rate

    def _usage_from(self, result: Any, model: str, estimated_tokens: int) -> TranslationUsage:
        prompt_tokens = completion_tokens = total_tokens = 0
        get_usage = getattr(result, "get_lm_usage", None)
        reported = get_usage() if callable(get_usage) else None
        for entry in (reported or {}).values():
            prompt_tokens += int(entry.get("prompt_tokens") or 0)
            completion_tokens += int(entry.get("completion_tokens") or 0)
            total_tokens += int(entry.get("total_tokens") or 0)
        if not total_tokens:
            # Provider did not report usage: fall back to the size estimate
            total_tokens = prompt_tokens + completion_tokens or estimated_tokens
        return TranslationUsage(
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            cost_usd=self.price(model, total_tokens),
        )

    def _call(self, markup: str, source: str, target: str, model: str) -> Any:
        lm = get_lm(model=model)
        with dspy.context(lm=lm, track_usage=True):
            return self.translate_module(
                markup=markup,
                source_language=get_language_name(source),
                target_language=get_language_name(target),
            )

    async def translate(
        self,
        segments: list[StructuralSegment],
        target: str,
        source: str = "fr",
    ) -> TranslationResult:
        target = self._validate(segments, target)
        source = normalize_language_code(source)

        markup = combine(segments)
        if source == target:
            # Already in the target language: identity, no cost
            return TranslationResult(
                segments=[
                    TranslatedSegment(id=s.id, html=s.html) for s in segments if s.translatable
                ],
                usage=TranslationUsage(),
            )

        estimated_tokens = self.estimate_tokens(markup)
        model = self.select_model(estimated_tokens)
        logger.info(
            "Translation API call: %s→%s model=%s estimated_tokens=%d",
            source, target, model, estimated_tokens,
        )

        loop = asyncio.get_running_loop()
        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(None, partial(self._call, markup, source, target, model)),
                timeout=self.timeout,
            )
        except Exception as e:
            # The request was rejected or never completed: nothing billed
            raise classify_exception(e, usage=TranslationUsage(model=model)) from e

        usage = self._usage_from(result, model, estimated_tokens)
        translated_markup = getattr(result, "translated_markup", None)
        if not translated_markup:
            raise RetryableTranslationError("No translation received", usage=usage)

        return TranslationResult(
            segments=reconcile(segments, translated_markup, usage),
            usage=usage,
        )


# =============================================================================
# Offline adapter
# =============================================================================


class DebugTranslator(TranslatorAdapter):
    """
    Deterministic offline translator for development and demos.

    Prefixes every text node with the target code, keeping markup intact.
    """

    name = "debug"

    def __init__(self, cost_per_call: float = 0.0, delay: float = 0.0):
        self.cost_per_call = cost_per_call
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    def _translate_fragment(self, fragment: str, target: str) -> str:
        soup = BeautifulSoup(fragment, "html.parser")
        for node in list(soup.find_all(string=True)):
            if isinstance(node, NavigableString) and node.strip():
                node.replace_with(f"[{target}] {node}")
        return soup.decode()

    async def translate(
        self,
        segments: list[StructuralSegment],
        target: str,
        source: str = "fr",
    ) -> TranslationResult:
        target = self._validate(segments, target)
        self.calls.append((",".join(s.id for s in segments), target))
        if self.delay:
            await asyncio.sleep(self.delay)

        markup = "\n".join(
            f'<section data-id="{s.id}">{self._translate_fragment(s.html, target)}</section>'
            for s in segments
            if s.translatable
        )
        usage = TranslationUsage(
            model=self.name,
            total_tokens=len(markup) // 4,
            cost_usd=self.cost_per_call,
        )
        return TranslationResult(segments=reconcile(segments, markup, usage), usage=usage)


# =============================================================================
# Factory
# =============================================================================


def get_translator(settings: Settings | None = None) -> TranslatorAdapter:
    """Build the translator configured by settings.translator_backend."""
    settings = settings or get_settings()
    if settings.translator_backend == "debug":
        return DebugTranslator()
    if settings.translator_backend == "llm":
        return LLMTranslator(settings)
    raise ValueError(f"Unknown translator backend: {settings.translator_backend}")
