"""
Supported languages and utilities.

The catalogue is authored in French and published in fourteen target
languages. Requests naming anything else are rejected at the kickoff
boundary, never deep inside the pipeline.
"""

from enum import Enum


class Language(str, Enum):
    """Supported target languages."""

    EN = "en"      # English
    ES = "es"      # Spanish
    DE = "de"      # German
    RU = "ru"      # Russian
    ZH = "zh"      # Chinese (Simplified)
    JA = "ja"      # Japanese
    AR = "ar"      # Arabic - RTL
    PT = "pt"      # Portuguese
    IT = "it"      # Italian
    NL = "nl"      # Dutch
    PL = "pl"      # Polish
    TR = "tr"      # Turkish
    KO = "ko"      # Korean
    HI = "hi"      # Hindi


# Human-readable names, with the endonym to steer the model
LANGUAGE_NAMES: dict[str, str] = {
    "fr": "French (Français)",
    "en": "English",
    "es": "Spanish (Español)",
    "de": "German (Deutsch)",
    "ru": "Russian (Русский)",
    "zh": "Chinese (中文)",
    "ja": "Japanese (日本語)",
    "ar": "Arabic (العربية)",
    "pt": "Portuguese (Português)",
    "it": "Italian (Italiano)",
    "nl": "Dutch (Nederlands)",
    "pl": "Polish (Polski)",
    "tr": "Turkish (Türkçe)",
    "ko": "Korean (한국어)",
    "hi": "Hindi (हिन्दी)",
}


# All supported targets (for API)
SUPPORTED_LANGUAGES: list[str] = [lang.value for lang in Language]

RTL_LANGUAGES: list[Language] = [Language.AR]


# =============================================================================
# Utilities
# =============================================================================


def get_language_name(code: str) -> str:
    """Get human-readable language name."""
    return LANGUAGE_NAMES.get(code.lower(), code)


def normalize_language_code(code: str) -> str:
    """Normalize language code to standard form."""
    code = code.lower().strip()

    # Handle common variants
    variants = {
        "english": "en",
        "spanish": "es",
        "german": "de",
        "russian": "ru",
        "chinese": "zh",
        "zh-cn": "zh",
        "japanese": "ja",
        "arabic": "ar",
        "portuguese": "pt",
        "pt-br": "pt",
        "italian": "it",
        "dutch": "nl",
        "polish": "pl",
        "turkish": "tr",
        "korean": "ko",
        "hindi": "hi",
        "french": "fr",
    }

    return variants.get(code, code)


def is_supported(code: str) -> bool:
    """Whether a code names a supported target language."""
    return normalize_language_code(code) in SUPPORTED_LANGUAGES


def unsupported_languages(codes: list[str]) -> list[str]:
    """Return the codes from `codes` that are not supported targets."""
    return [code for code in codes if not is_supported(code)]


def is_rtl(code: str) -> bool:
    """Check if language is right-to-left."""
    return normalize_language_code(code) in [lang.value for lang in RTL_LANGUAGES]
