"""
Internationalization - document segmentation and LLM-powered translation.

Design:
1. Split a chapter into identifiable structural segments
2. Send them to the translator in one id-tagged envelope
3. Match the response back by id; anything missing is a retryable failure
4. Price every call, successful or not

Usage:
    from folio.i18n import segment_document, get_translator

    segments = segment_document(chapter_html)
    result = await get_translator().translate(segments, target="es")
    result.usage.cost_usd
"""

from folio.i18n.translator import (
    TranslatorAdapter,
    TranslationResult,
    LLMTranslator,
    DebugTranslator,
    get_translator,
    classify_exception,
    reconcile,
)
from folio.i18n.segmenter import (
    segment_document,
    combine,
    content_hash,
    parse_envelope,
    reassemble,
)
from folio.i18n.languages import (
    Language,
    SUPPORTED_LANGUAGES,
    RTL_LANGUAGES,
    get_language_name,
    normalize_language_code,
    is_supported,
    is_rtl,
)

__all__ = [
    # Translation
    "TranslatorAdapter",
    "TranslationResult",
    "LLMTranslator",
    "DebugTranslator",
    "get_translator",
    "classify_exception",
    "reconcile",
    # Segmentation
    "segment_document",
    "combine",
    "content_hash",
    "parse_envelope",
    "reassemble",
    # Language utilities
    "Language",
    "SUPPORTED_LANGUAGES",
    "RTL_LANGUAGES",
    "get_language_name",
    "normalize_language_code",
    "is_supported",
    "is_rtl",
]
